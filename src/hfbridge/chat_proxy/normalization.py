"""Upstream payload shapes returned by the Hugging Face text-generation API.

The inference endpoint answers with one of:

- ``[{"generated_text": "..."}]``  (list of generations)
- ``{"generated_text": "..."}``    (single generation object)
- ``"..."``                        (bare string, some community backends)

Each shape is a variant below; :func:`classify_payload` inspects the raw JSON
once and :func:`payload_text` dispatches to that variant's normalizer.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, Union


@dataclass(frozen=True)
class ListPayload:
    items: list


@dataclass(frozen=True)
class ObjectPayload:
    data: dict


@dataclass(frozen=True)
class TextPayload:
    text: str


@dataclass(frozen=True)
class UnrecognizedPayload:
    raw: Any


UpstreamPayload = Union[ListPayload, ObjectPayload, TextPayload, UnrecognizedPayload]


def _coerce_str(val) -> str:
    """Coerce None to empty string and non-strings to str."""
    if val is None:
        return ""
    return val if isinstance(val, str) else str(val)


def classify_payload(raw: Any) -> UpstreamPayload:
    if isinstance(raw, list):
        return ListPayload(raw)
    if isinstance(raw, dict) and "generated_text" in raw:
        return ObjectPayload(raw)
    if isinstance(raw, str):
        return TextPayload(raw)
    return UnrecognizedPayload(raw)


def _text_from_list(payload: ListPayload) -> str:
    if not payload.items:
        return ""
    first = payload.items[0]
    if isinstance(first, dict):
        return _coerce_str(first.get("generated_text"))
    return ""


def _text_from_object(payload: ObjectPayload) -> str:
    return _coerce_str(payload.data.get("generated_text"))


def _text_from_string(payload: TextPayload) -> str:
    return payload.text


def _text_from_unrecognized(payload: UnrecognizedPayload) -> str:
    return ""


_NORMALIZERS: Dict[type, Callable[[Any], str]] = {
    ListPayload: _text_from_list,
    ObjectPayload: _text_from_object,
    TextPayload: _text_from_string,
    UnrecognizedPayload: _text_from_unrecognized,
}


def payload_text(payload: UpstreamPayload) -> str:
    """Return the generated text carried by ``payload`` ("" when none)."""
    return _NORMALIZERS[type(payload)](payload)
