"""Conversion between records and their JSON document form."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from .models import Record, TemporalValue
from .normalize import normalize_fields, normalize_value


def encode_value(value: Any) -> Any:
    """Encode a field value into JSON-compatible form.

    A `TemporalValue` becomes `{"_type", ["seconds", "nanoseconds",] "dateString"}`;
    native temporal types are normalized first.
    """

    value = normalize_value(value)

    if isinstance(value, TemporalValue):
        encoded: dict[str, Any] = {"_type": value.kind}
        if value.seconds is not None:
            encoded["seconds"] = value.seconds
            encoded["nanoseconds"] = value.nanoseconds or 0
        encoded["dateString"] = value.iso
        return encoded
    if isinstance(value, list):
        return [encode_value(item) for item in value]
    if isinstance(value, Mapping):
        return {str(key): encode_value(item) for key, item in value.items()}
    return value


def record_to_document(record: Record) -> dict[str, Any]:
    """Return `{"id": ..., **fields}` with every value encoded."""

    document: dict[str, Any] = {"id": record.id}
    for name, value in record.fields.items():
        if name == "id":
            continue
        document[name] = encode_value(value)
    return document


def record_from_document(document: Mapping[str, Any]) -> Record:
    """Rebuild a normalized record from its document form."""

    if not isinstance(document, Mapping):
        raise ValueError(f"Document must be an object, got {type(document).__name__}")

    record_id = document.get("id")
    if record_id is None or record_id == "":
        raise ValueError("Document has no id")

    fields = {name: value for name, value in document.items() if name != "id"}
    return Record(id=str(record_id), fields=normalize_fields(fields))


def decode_value(value: Any) -> Any:
    """Decode a JSON value read from an artifact; encoded temporals become `TemporalValue`."""

    return normalize_value(value)
