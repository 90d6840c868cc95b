"""Tests for the typed record codec."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Literal

from buddymate.core.errors import DecodeError
from buddymate.core.storage.codec import (
    camel_case,
    decode,
    encode,
    format_datetime,
    parse_datetime,
    to_primitive,
)


@dataclass
class _Inner:
    label: str


@dataclass
class _Record:
    id: str
    created_at: datetime
    status: Literal["taken", "missed"] = "taken"
    times: list[str] = field(default_factory=list)
    inner: _Inner | None = None
    notes: str | None = None


class TestNames:
    def test_camel_case(self):
        assert camel_case("medication_name") == "medicationName"
        assert camel_case("is_emergency_contact") == "isEmergencyContact"
        assert camel_case("id") == "id"


class TestTimestamps:
    def test_format_is_utc_millis_with_z(self):
        moment = datetime(2026, 3, 1, 8, 30, 15, 123456, tzinfo=timezone.utc)
        assert format_datetime(moment) == "2026-03-01T08:30:15.123Z"

    def test_naive_datetime_taken_as_utc(self):
        assert format_datetime(datetime(2026, 1, 1)) == "2026-01-01T00:00:00.000Z"

    def test_parse_z_suffix(self):
        parsed = parse_datetime("2026-03-01T08:30:15.123Z")
        assert parsed == datetime(2026, 3, 1, 8, 30, 15, 123000, tzinfo=timezone.utc)

    def test_parse_offset_converted_to_utc(self):
        parsed = parse_datetime("2026-03-01T10:00:00+02:00")
        assert parsed.hour == 8
        assert parsed.tzinfo == timezone.utc


class TestEncode:
    def test_keys_are_camel_case_and_none_omitted(self):
        record = _Record(id="r1", created_at=datetime(2026, 1, 1, tzinfo=timezone.utc))
        data = to_primitive(record)
        assert data == {
            "id": "r1",
            "createdAt": "2026-01-01T00:00:00.000Z",
            "status": "taken",
            "times": [],
        }

    def test_encode_is_compact_json(self):
        text = encode([_Inner(label="x")])
        assert text == '[{"label":"x"}]'


class TestDecode:
    def test_decodes_nested_record(self):
        raw = json.dumps({
            "id": "r1",
            "createdAt": "2026-01-01T00:00:00.000Z",
            "status": "missed",
            "times": ["08:00"],
            "inner": {"label": "x"},
        })
        record = decode(raw, _Record)
        assert isinstance(record, _Record)
        assert record.status == "missed"
        assert record.inner == _Inner(label="x")
        assert record.created_at.tzinfo == timezone.utc

    def test_accepts_snake_case_keys(self):
        raw = json.dumps({"id": "r1", "created_at": "2026-01-01T00:00:00Z"})
        record = decode(raw, _Record)
        assert isinstance(record, _Record)

    def test_missing_optional_fields_use_defaults(self):
        record = decode('{"id": "r1", "createdAt": "2026-01-01T00:00:00Z"}', _Record)
        assert record.times == []
        assert record.notes is None

    def test_malformed_json_returns_decode_error(self):
        result = decode("{not json", _Record)
        assert isinstance(result, DecodeError)
        assert result.raw == "{not json"

    def test_missing_required_field_returns_decode_error(self):
        result = decode('{"id": "r1"}', _Record)
        assert isinstance(result, DecodeError)
        assert "createdAt" in str(result)

    def test_bad_literal_returns_decode_error(self):
        result = decode('{"id": "r1", "createdAt": "2026-01-01T00:00:00Z", "status": "eaten"}', _Record)
        assert isinstance(result, DecodeError)

    def test_bad_timestamp_returns_decode_error(self):
        result = decode('{"id": "r1", "createdAt": "yesterday"}', _Record)
        assert isinstance(result, DecodeError)

    def test_none_payload_returns_decode_error(self):
        assert isinstance(decode(None, _Record), DecodeError)

    def test_list_of_records(self):
        records = decode('[{"label": "a"}, {"label": "b"}]', list[_Inner])
        assert [r.label for r in records] == ["a", "b"]

    def test_datetime_survives_encode_decode_at_millisecond_precision(self):
        moment = datetime(2026, 3, 1, 8, 30, 15, 123999, tzinfo=timezone.utc)
        record = decode(encode(_Record(id="r", created_at=moment)), _Record)
        assert record.created_at == moment.replace(microsecond=123000)
