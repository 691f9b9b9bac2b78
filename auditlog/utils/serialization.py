"""Tagged encoding for metadata values.

Every value is wrapped as ``{"t": <tag>, "v": <payload>}`` so that the stored
text decodes back to the exact Python type: ``True`` never turns into ``1``,
``"1"`` never turns into ``1`` and nested containers keep their shape.
"""
from __future__ import annotations

import json
import math
from collections.abc import Mapping
from typing import Any

from auditlog.utils.errors import InvalidEventDataError, MetaValueError

TAG_NULL = "null"
TAG_BOOL = "bool"
TAG_INT = "int"
TAG_FLOAT = "float"
TAG_STR = "str"
TAG_LIST = "list"
TAG_MAP = "map"


def to_tagged(value: Any) -> dict[str, Any]:
    """Return the tagged tree for ``value``."""

    if value is None:
        return {"t": TAG_NULL}
    # bool is a subclass of int, test it first.
    if isinstance(value, bool):
        return {"t": TAG_BOOL, "v": value}
    if isinstance(value, int):
        return {"t": TAG_INT, "v": value}
    if isinstance(value, float):
        if not math.isfinite(value):
            raise MetaValueError(f"Non-finite float cannot be stored: {value!r}")
        return {"t": TAG_FLOAT, "v": value}
    if isinstance(value, str):
        return {"t": TAG_STR, "v": value}
    if isinstance(value, Mapping):
        items: dict[str, Any] = {}
        for key, item in value.items():
            if not isinstance(key, str):
                raise MetaValueError(f"Map keys must be strings, got {type(key).__name__}")
            items[key] = to_tagged(item)
        return {"t": TAG_MAP, "v": items}
    if isinstance(value, (list, tuple)):
        return {"t": TAG_LIST, "v": [to_tagged(item) for item in value]}
    raise MetaValueError(f"Unsupported metadata value type: {type(value).__name__}")


def from_tagged(node: Any) -> Any:
    """Rebuild a Python value from a tagged tree."""

    if not isinstance(node, Mapping) or "t" not in node:
        raise MetaValueError("Malformed tagged value")
    tag = node["t"]
    if tag == TAG_NULL:
        return None
    if "v" not in node:
        raise MetaValueError(f"Tagged value {tag!r} has no payload")
    payload = node["v"]
    if tag == TAG_BOOL and isinstance(payload, bool):
        return payload
    if tag == TAG_INT and isinstance(payload, int) and not isinstance(payload, bool):
        return payload
    if tag == TAG_FLOAT and isinstance(payload, (int, float)) and not isinstance(payload, bool):
        return float(payload)
    if tag == TAG_STR and isinstance(payload, str):
        return payload
    if tag == TAG_LIST and isinstance(payload, list):
        return [from_tagged(item) for item in payload]
    if tag == TAG_MAP and isinstance(payload, Mapping):
        return {key: from_tagged(item) for key, item in payload.items()}
    raise MetaValueError(f"Unknown or inconsistent tag {tag!r}")


def encode_meta_value(value: Any) -> str:
    """Serialize a metadata value to its stored text form."""

    return json.dumps(to_tagged(value), ensure_ascii=False, separators=(",", ":"))


def decode_meta_value(text: str) -> Any:
    """Inverse of :func:`encode_meta_value`."""

    try:
        node = json.loads(text)
    except (TypeError, ValueError) as exc:
        raise MetaValueError("Stored metadata is not valid JSON") from exc
    return from_tagged(node)


def encode_meta_map(data: Mapping[str, Any]) -> dict[str, str]:
    """Encode every value of an event data mapping, validating its names."""

    if not isinstance(data, Mapping):
        raise InvalidEventDataError(f"Event data must be a mapping, got {type(data).__name__}")
    encoded: dict[str, str] = {}
    for name, value in data.items():
        if not isinstance(name, str) or not name:
            raise InvalidEventDataError(f"Metadata names must be non-empty strings, got {name!r}")
        if len(name) > 100:
            raise InvalidEventDataError(f"Metadata name too long: {name[:20]}...")
        encoded[name] = encode_meta_value(value)
    return encoded


def decode_meta_map(encoded: Mapping[str, str]) -> dict[str, Any]:
    return {name: decode_meta_value(text) for name, text in encoded.items()}


__all__ = [
    "to_tagged",
    "from_tagged",
    "encode_meta_value",
    "decode_meta_value",
    "encode_meta_map",
    "decode_meta_map",
]
