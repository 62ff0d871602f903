import json

from lotion_insights.models import TranscriptSentence
from lotion_insights.utils.files import read_jsonl_file, read_sentences_file, write_jsonl_file


def test_jsonl_round_trip_skips_blank_lines(tmp_path):
    path = tmp_path / "rows.jsonl"
    write_jsonl_file(path, [{"index": 0}, {"index": 1}])
    path.write_text(path.read_text() + "\n\n")

    assert read_jsonl_file(path) == [{"index": 0}, {"index": 1}]


def test_read_sentences_from_assemblyai_payload(tmp_path):
    path = tmp_path / "sentences.json"
    path.write_text(
        json.dumps(
            {
                "id": "transcript-1",
                "sentences": [{"text": "Hello.", "start": 0, "end": 300, "speaker": "A"}],
            }
        )
    )

    assert read_sentences_file(path) == [
        TranscriptSentence(text="Hello.", start=0, end=300, speaker="A")
    ]


def test_read_sentences_from_plain_list(tmp_path):
    path = tmp_path / "sentences.json"
    path.write_text(json.dumps(["First.", {"text": "Second."}]))

    assert [sentence.text for sentence in read_sentences_file(path)] == ["First.", "Second."]
