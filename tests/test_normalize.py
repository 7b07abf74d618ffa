"""Unit tests for value normalization and the record document codec.

Each case focuses on one conversion rule so regressions are easy to diagnose.
"""

from __future__ import annotations

from datetime import date, datetime, timezone

import pytest

from inventory_snapshot.codec import decode_value, encode_value, record_from_document, record_to_document
from inventory_snapshot.models import Record, StoreTimestamp, TemporalValue
from inventory_snapshot.normalize import normalize_fields, normalize_value, parse_temporal, to_iso_string

# 2025-01-15T10:30:00Z
EPOCH_SECONDS = 1736937000


def test_to_iso_string_uses_millisecond_utc_form() -> None:
    """Datetimes should render as `YYYY-MM-DDTHH:MM:SS.mmmZ` in UTC."""
    aware = datetime(2025, 1, 15, 10, 30, 0, 123456, tzinfo=timezone.utc)
    naive = datetime(2025, 1, 15, 10, 30)

    assert to_iso_string(aware) == "2025-01-15T10:30:00.123Z"
    assert to_iso_string(naive) == "2025-01-15T10:30:00.000Z"
    assert to_iso_string(date(2025, 1, 15)) == "2025-01-15T00:00:00.000Z"


def test_store_timestamp_becomes_temporal_value_with_components() -> None:
    """Store timestamps should keep seconds and nanoseconds alongside the ISO string."""
    value = normalize_value(StoreTimestamp(seconds=EPOCH_SECONDS, nanoseconds=5_000_000))

    assert value == TemporalValue(iso="2025-01-15T10:30:00.005Z")
    assert value.kind == "timestamp"
    assert value.seconds == EPOCH_SECONDS
    assert value.nanoseconds == 5_000_000


def test_temporal_equality_ignores_origin() -> None:
    """Values from different temporal sources should compare equal by instant."""
    from_store = normalize_value(StoreTimestamp(seconds=EPOCH_SECONDS))
    from_datetime = normalize_value(datetime(2025, 1, 15, 10, 30, tzinfo=timezone.utc))

    assert from_store.kind != from_datetime.kind
    assert from_store == from_datetime


def test_normalize_recurses_into_lists_and_mappings() -> None:
    """Nested temporal leaves should be converted while other values pass through."""
    raw = {
        "history": [{"at": datetime(2025, 1, 15, tzinfo=timezone.utc), "note": "sold"}],
        "price": 100,
        "flags": [True, None],
    }

    normalized = normalize_fields(raw)

    assert normalized["history"][0]["at"] == TemporalValue(iso="2025-01-15T00:00:00.000Z")
    assert normalized["history"][0]["note"] == "sold"
    assert normalized["price"] == 100
    assert normalized["flags"] == [True, None]


def test_encoded_temporal_is_decoded_and_malformed_passes_through() -> None:
    """Only well-formed `{_type, dateString}` objects should decode to temporal values."""
    encoded = {"_type": "timestamp", "seconds": EPOCH_SECONDS, "nanoseconds": 0, "dateString": "2025-01-15T10:30:00.000Z"}
    malformed = {"_type": "timestamp", "seconds": EPOCH_SECONDS}

    assert decode_value(encoded) == TemporalValue(iso="2025-01-15T10:30:00.000Z")
    assert decode_value(malformed) == malformed


def test_encode_value_writes_timestamp_and_date_forms() -> None:
    """Timestamps carry seconds/nanoseconds; plain dates only carry the ISO string."""
    timestamp = encode_value(StoreTimestamp(seconds=EPOCH_SECONDS, nanoseconds=0))
    native = encode_value(datetime(2025, 1, 15, 10, 30, tzinfo=timezone.utc))

    assert timestamp == {
        "_type": "timestamp",
        "seconds": EPOCH_SECONDS,
        "nanoseconds": 0,
        "dateString": "2025-01-15T10:30:00.000Z",
    }
    assert native == {"_type": "date", "dateString": "2025-01-15T10:30:00.000Z"}


def test_record_document_puts_id_first_and_round_trips() -> None:
    """Documents should lead with the id and decode back into an equal record."""
    record = Record(id="car-1", fields={"model": "Civic", "lastUpdated": StoreTimestamp(seconds=EPOCH_SECONDS)})

    document = record_to_document(record)
    restored = record_from_document(document)

    assert list(document) == ["id", "model", "lastUpdated"]
    assert restored.id == "car-1"
    assert restored.fields == {"model": "Civic", "lastUpdated": TemporalValue(iso="2025-01-15T10:30:00.000Z")}


def test_record_from_document_requires_an_id() -> None:
    """Entries without an id or that are not objects should be rejected."""
    with pytest.raises(ValueError, match="Document has no id"):
        record_from_document({"model": "Civic"})

    with pytest.raises(ValueError, match="Document must be an object"):
        record_from_document(["car-1"])


def test_parse_temporal_accepts_strings_and_rejects_garbage() -> None:
    """ISO strings with a trailing Z parse to aware UTC; unparseable input returns None."""
    parsed = parse_temporal("2025-01-15T10:30:00.000Z")

    assert parsed == datetime(2025, 1, 15, 10, 30, tzinfo=timezone.utc)
    assert parse_temporal("not a date") is None
    assert parse_temporal("") is None
    assert parse_temporal(None) is None
    assert parse_temporal(42) is None
