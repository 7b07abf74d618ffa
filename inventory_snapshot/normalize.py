"""Value-level normalization of store records into comparable form."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import date, datetime, timezone
from typing import Any

from .models import Fields, Record, StoreTimestamp, TemporalValue

ENCODED_TEMPORAL_TYPES = frozenset({"timestamp", "date"})


def to_iso_string(value: datetime | date) -> str:
    """Render a date or datetime as `YYYY-MM-DDTHH:MM:SS.mmmZ` in UTC.

    Naive datetimes are taken as UTC; plain dates become UTC midnight.
    """

    if not isinstance(value, datetime):
        value = datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    elif value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def _from_encoded(value: Mapping[str, Any]) -> TemporalValue | None:
    """Decode the artifact form `{"_type": ..., "dateString": ...}` when it is well formed."""

    kind = value.get("_type")
    iso = value.get("dateString")
    if kind not in ENCODED_TEMPORAL_TYPES or not isinstance(iso, str):
        return None

    seconds = value.get("seconds")
    nanoseconds = value.get("nanoseconds")
    return TemporalValue(
        iso=iso,
        kind=kind,
        seconds=seconds if isinstance(seconds, int) else None,
        nanoseconds=nanoseconds if isinstance(nanoseconds, int) else None,
    )


def normalize_value(value: Any) -> Any:
    """Return `value` with every temporal leaf replaced by a `TemporalValue`.

    Lists and nested mappings are normalized recursively. Anything that is not
    recognized, including malformed temporal encodings, passes through as-is.
    """

    if isinstance(value, TemporalValue):
        return value
    if isinstance(value, StoreTimestamp):
        return TemporalValue(
            iso=to_iso_string(value.to_datetime()),
            kind="timestamp",
            seconds=value.seconds,
            nanoseconds=value.nanoseconds,
        )
    if isinstance(value, (datetime, date)):
        return TemporalValue(iso=to_iso_string(value), kind="date")
    if isinstance(value, list):
        return [normalize_value(item) for item in value]
    if isinstance(value, Mapping):
        decoded = _from_encoded(value)
        if decoded is not None:
            return decoded
        return {str(key): normalize_value(item) for key, item in value.items()}
    return value


def normalize_fields(raw: Mapping[str, Any]) -> Fields:
    """Normalize every field of a raw document, keeping field order."""

    return {str(name): normalize_value(value) for name, value in raw.items()}


def normalize_record(record: Record) -> Record:
    """Return a normalized copy of `record`.

    A field named `id` is dropped: the document id lives on the record and
    never appears among its fields.
    """

    fields = {name: value for name, value in record.fields.items() if name != "id"}
    return Record(id=record.id, fields=normalize_fields(fields))


def parse_temporal(value: Any) -> datetime | None:
    """Interpret `value` as an aware UTC datetime, or return None.

    Accepts temporal values in any supported representation as well as
    ISO-8601 strings (a trailing `Z` is accepted).
    """

    if value is None:
        return None

    if isinstance(value, str):
        cleaned = value.strip()
        if not cleaned:
            return None
        try:
            parsed = datetime.fromisoformat(cleaned.replace("Z", "+00:00"))
        except ValueError:
            return None
        if parsed.tzinfo is None:
            return parsed.replace(tzinfo=timezone.utc)
        return parsed.astimezone(timezone.utc)

    normalized = normalize_value(value)
    if isinstance(normalized, TemporalValue):
        try:
            return normalized.to_datetime()
        except ValueError:
            return None
    return None
