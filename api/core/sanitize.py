"""
Input sanitization.

Pure normalization of request payloads: it never rejects a request.
Validation stays with the handlers (pydantic / SQL constraints).

Coerced values stay JSON-representable because the sanitized body is
re-encoded before it reaches the router.
"""

from __future__ import annotations

import re
from datetime import date
from typing import Any, Mapping

# Column kinds a resource can declare for scalar coercion.
TEXT = "text"
INTEGER = "integer"
NUMERIC = "numeric"
BOOLEAN = "boolean"
DATE = "date"

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_HTML_TAGS = re.compile(r"</?[A-Za-z][^<>]*>|<!--.*?-->", re.DOTALL)
_INTEGER = re.compile(r"[-+]?\d+")
_NUMBER = re.compile(r"[-+]?(\d+(\.\d*)?|\.\d+)")
_TRUE = {"true", "1", "yes", "on"}
_FALSE = {"false", "0", "no", "off"}


def clean_string(value: str) -> str:
    value = _CONTROL_CHARS.sub("", value)
    value = _HTML_TAGS.sub("", value)
    return value.strip()


def coerce_scalar(value: Any, kind: str) -> Any:
    """
    Convert `value` to `kind` when it converts cleanly; otherwise return it
    unchanged.
    """
    if value is None or kind == TEXT:
        return value

    if kind == BOOLEAN:
        if isinstance(value, str):
            lowered = value.lower()
            if lowered in _TRUE:
                return True
            if lowered in _FALSE:
                return False
        elif isinstance(value, int) and not isinstance(value, bool) and value in (0, 1):
            return bool(value)
        return value

    if isinstance(value, str) and value == "":
        return None

    if kind == INTEGER:
        if isinstance(value, str) and _INTEGER.fullmatch(value):
            return int(value)
        if isinstance(value, float) and value.is_integer():
            return int(value)
        return value

    if kind == NUMERIC:
        if isinstance(value, str) and _NUMBER.fullmatch(value):
            number = float(value)
            return int(number) if number.is_integer() and "." not in value else number
        return value

    if kind == DATE:
        if isinstance(value, str):
            try:
                return date.fromisoformat(value[:10]).isoformat()
            except ValueError:
                return value
        return value

    return value


def sanitize_value(value: Any) -> Any:
    if isinstance(value, str):
        return clean_string(value)
    if isinstance(value, list):
        return [sanitize_value(item) for item in value]
    if isinstance(value, dict):
        return {
            key: sanitize_value(item)
            for key, item in value.items()
            if not str(key).startswith("__")
        }
    return value


def sanitize_payload(
    payload: Any,
    *,
    fields: Mapping[str, str] | None = None,
    allow_list: frozenset[str] | None = None,
    preserve: frozenset[str] = frozenset(),
) -> Any:
    """
    Sanitize a parsed JSON body.

    `fields` maps known field names to a column kind for scalar coercion.
    `allow_list`, when given, drops top-level keys not in it.
    `preserve` names top-level keys passed through byte for byte (secrets).
    """
    cleaned = sanitize_value(payload)
    if not isinstance(cleaned, dict):
        return cleaned

    for key in preserve:
        if isinstance(payload, dict) and key in payload:
            cleaned[key] = payload[key]

    if allow_list is not None:
        cleaned = {key: value for key, value in cleaned.items() if key in allow_list}

    if fields:
        for key, kind in fields.items():
            if key in cleaned:
                cleaned[key] = coerce_scalar(cleaned[key], kind)
    return cleaned


def sanitize_query(pairs: list[tuple[str, str]]) -> list[tuple[str, str]]:
    return [
        (key, clean_string(value))
        for key, value in pairs
        if not key.startswith("__")
    ]
