import pytest

from lotion_insights.extraction import extract_json_object


def test_extracts_object_surrounded_by_prose():
    text = 'Here is my review:\n{"ai_insight": "Good rapport", "red_flags": []}\nHope it helps.'
    assert extract_json_object(text) == {"ai_insight": "Good rapport", "red_flags": []}


def test_extracts_object_from_markdown_fence():
    text = '```json\n{"missed_opportunities": ["No next step"]}\n```'
    assert extract_json_object(text) == {"missed_opportunities": ["No next step"]}


def test_empty_object_means_nothing_notable():
    assert extract_json_object("Nothing to report: {}") == {}


def test_returns_first_well_formed_object():
    text = 'first {"a": 1} then {"b": 2}'
    assert extract_json_object(text) == {"a": 1}


def test_skips_broken_braces_before_a_valid_object():
    text = 'the {rep} said {"ai_insight": "ok"}'
    assert extract_json_object(text) == {"ai_insight": "ok"}


def test_nested_objects_are_kept_whole():
    text = 'result: {"red_flags": [{"title": "Price", "details": "Caved early"}]}'
    assert extract_json_object(text) == {
        "red_flags": [{"title": "Price", "details": "Caved early"}]
    }


@pytest.mark.parametrize("text", [None, "", "no json here", "[1, 2, 3]", '{"unterminated": '])
def test_returns_none_without_object(text):
    assert extract_json_object(text) is None
