import json
from pathlib import Path

from lotion_insights.models import TranscriptSentence


def write_jsonl_file(file_path: str | Path, data: list[dict]) -> None:
    """Write a list of JSON objects to a JSONL file

    Args:
        file_path (str | Path): The path to the file to write
        data (list[dict]): The objects to write, one per line
    """
    with open(file_path, "w") as f:
        for sample in data:
            f.write(json.dumps(sample) + "\n")


def read_jsonl_file(file_path: str | Path) -> list[dict]:
    """Read a JSONL file and return its JSON objects, skipping blank lines

    Args:
        file_path (str | Path): The path to the file to read
    """
    with open(file_path, "r") as f:
        return [json.loads(line) for line in f if line.strip()]


def read_sentences_file(file_path: str | Path) -> list[TranscriptSentence]:
    """Read sentences from a JSON sentences payload or a JSONL file

    A ``.json`` file may hold either the AssemblyAI ``{"sentences": [...]}``
    payload or a plain list. Plain strings are accepted as sentence text.

    Args:
        file_path (str | Path): The path to the file to read
    """
    path = Path(file_path)
    if path.suffix == ".json":
        data = json.loads(path.read_text())
        items = data.get("sentences", []) if isinstance(data, dict) else data
    else:
        items = read_jsonl_file(path)
    return [
        TranscriptSentence(text=item)
        if isinstance(item, str)
        else TranscriptSentence.model_validate(item)
        for item in items
    ]
