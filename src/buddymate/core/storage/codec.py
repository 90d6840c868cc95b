"""Typed record codec: dataclass records to and from stored JSON strings.

Persisted documents use camelCase keys and ISO-8601 UTC timestamps with
millisecond precision. ``decode`` never raises on malformed input; it
returns a :class:`DecodeError` value the caller can test with ``isinstance``.
"""

from __future__ import annotations

import dataclasses
import functools
import json
import logging
import re
import types
import typing
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal, TypeVar, Union

from buddymate.core.errors import DecodeError

logger = logging.getLogger(__name__)

T = TypeVar("T")

_CAMEL_RE = re.compile(r"_([a-z0-9])")


def camel_case(name: str) -> str:
    """``medication_name`` -> ``medicationName``."""
    return _CAMEL_RE.sub(lambda m: m.group(1).upper(), name)


# ---------------------------------------------------------------------------
# Timestamps
# ---------------------------------------------------------------------------

def format_datetime(value: datetime) -> str:
    """ISO-8601 UTC string truncated to milliseconds, ``Z`` suffix."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    text = value.astimezone(timezone.utc).isoformat(timespec="milliseconds")
    return text.replace("+00:00", "Z")


def parse_datetime(value: str) -> datetime:
    """Parse an ISO-8601 string. Naive values are taken as UTC.

    Raises:
        ValueError: If the string is not a recognisable timestamp.
    """
    if not isinstance(value, str):
        raise ValueError(f"Expected ISO timestamp string, got {type(value).__name__}")
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def truncate_to_millis(value: datetime) -> datetime:
    return value.replace(microsecond=(value.microsecond // 1000) * 1000)


# ---------------------------------------------------------------------------
# Encoding
# ---------------------------------------------------------------------------

def to_primitive(value: Any) -> Any:
    """Convert a record tree into JSON-compatible primitives.

    ``None`` dataclass fields are omitted so optional fields stay absent,
    matching the documents written by earlier app versions.
    """
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        out: dict[str, Any] = {}
        for f in dataclasses.fields(value):
            item = getattr(value, f.name)
            if item is None:
                continue
            out[camel_case(f.name)] = to_primitive(item)
        return out
    if isinstance(value, datetime):
        return format_datetime(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {str(k): to_primitive(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_primitive(v) for v in value]
    return value


def encode(record: Any) -> str:
    """Serialize a record (or list of records) to stable JSON."""
    return json.dumps(to_primitive(record), sort_keys=True, separators=(",", ":"))


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------

@functools.lru_cache(maxsize=None)
def _type_hints(cls: type) -> dict[str, Any]:
    return typing.get_type_hints(cls)


def _is_union(tp: Any) -> bool:
    origin = typing.get_origin(tp)
    return origin is Union or origin is types.UnionType


def from_primitive(data: Any, tp: Any) -> Any:
    """Rebuild a typed value from JSON primitives.

    Raises:
        TypeError / ValueError: On shape or type mismatches.
    """
    if tp is Any:
        return data

    if _is_union(tp):
        args = typing.get_args(tp)
        if data is None:
            if type(None) in args:
                return None
            raise TypeError("null is not allowed here")
        last_exc: Exception | None = None
        for arg in args:
            if arg is type(None):
                continue
            try:
                return from_primitive(data, arg)
            except (TypeError, ValueError) as exc:
                last_exc = exc
        raise TypeError(f"No union member accepted {data!r}: {last_exc}")

    origin = typing.get_origin(tp)

    if origin is Literal:
        allowed = typing.get_args(tp)
        if data not in allowed:
            raise ValueError(f"{data!r} is not one of {allowed}")
        return data

    if origin is list:
        if not isinstance(data, list):
            raise TypeError(f"Expected list, got {type(data).__name__}")
        (item_type,) = typing.get_args(tp) or (Any,)
        return [from_primitive(item, item_type) for item in data]

    if origin is dict:
        if not isinstance(data, dict):
            raise TypeError(f"Expected object, got {type(data).__name__}")
        args = typing.get_args(tp)
        value_type = args[1] if len(args) == 2 else Any
        return {str(k): from_primitive(v, value_type) for k, v in data.items()}

    if isinstance(tp, type):
        if dataclasses.is_dataclass(tp):
            return _decode_dataclass(data, tp)
        if issubclass(tp, datetime):
            return parse_datetime(data)
        if issubclass(tp, Enum):
            return tp(data)
        if tp is bool:
            if not isinstance(data, bool):
                raise TypeError(f"Expected bool, got {type(data).__name__}")
            return data
        if tp is int:
            if isinstance(data, bool) or not isinstance(data, (int, float)):
                raise TypeError(f"Expected int, got {type(data).__name__}")
            if isinstance(data, float) and not data.is_integer():
                raise ValueError(f"Expected whole number, got {data!r}")
            return int(data)
        if tp is float:
            if isinstance(data, bool) or not isinstance(data, (int, float)):
                raise TypeError(f"Expected number, got {type(data).__name__}")
            return float(data)
        if tp is str:
            if not isinstance(data, str):
                raise TypeError(f"Expected string, got {type(data).__name__}")
            return data

    return data


def _decode_dataclass(data: Any, cls: type) -> Any:
    if not isinstance(data, dict):
        raise TypeError(f"Expected object for {cls.__name__}, got {type(data).__name__}")

    hints = _type_hints(cls)
    kwargs: dict[str, Any] = {}
    for f in dataclasses.fields(cls):
        if not f.init:
            continue
        key = camel_case(f.name)
        if key in data:
            raw = data[key]
        elif f.name in data:
            raw = data[f.name]
        else:
            has_default = (
                f.default is not dataclasses.MISSING
                or f.default_factory is not dataclasses.MISSING
            )
            if has_default:
                continue
            raise TypeError(f"{cls.__name__} is missing required field {key!r}")
        kwargs[f.name] = from_primitive(raw, hints[f.name])
    return cls(**kwargs)


def decode(raw: str | None, record_type: type[T]) -> T | DecodeError:
    """Deserialize ``raw`` into ``record_type``.

    Returns a :class:`DecodeError` instead of raising on malformed or
    mismatched payloads.
    """
    if raw is None:
        return DecodeError("No stored payload")
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, TypeError) as exc:
        return DecodeError(f"Malformed JSON: {exc}", raw=raw)
    return decode_data(data, record_type, raw=raw)


def decode_data(data: Any, record_type: Any, *, raw: str | None = None) -> Any:
    """Like :func:`decode` but starting from already-parsed JSON."""
    name = getattr(record_type, "__name__", str(record_type))
    try:
        return from_primitive(data, record_type)
    except (TypeError, ValueError, KeyError) as exc:
        return DecodeError(f"Cannot decode {name}: {exc}", raw=raw)
