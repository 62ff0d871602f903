"""
Extraction of JSON objects embedded in free-form model output.
"""

import json
import typing as t

_DECODER = json.JSONDecoder()


def extract_json_object(text: str | None) -> dict[str, t.Any] | None:
    """
    Return the first well-formed JSON object found in ``text``.

    Parameters
    ----------
    text : str | None
        Raw response body, possibly wrapping the object in prose or
        markdown fences.

    Returns
    -------
    dict[str, typing.Any] | None
        Decoded object, or ``None`` when no object can be decoded.
    """
    if not text:
        return None
    position = text.find("{")
    while position != -1:
        try:
            value, _ = _DECODER.raw_decode(text, position)
        except json.JSONDecodeError:
            value = None
        if isinstance(value, dict):
            return value
        position = text.find("{", position + 1)
    return None
