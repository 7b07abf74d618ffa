"""Deterministic, order-sensitive fingerprint of a record list.

This is a tripwire for accidental corruption of a saved snapshot, not a
security control: there is no collision resistance.
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from typing import Any

from .codec import record_to_document
from .models import Record

_MASK_32 = 0xFFFFFFFF


def serialize_documents(documents: Iterable[Mapping[str, Any]]) -> str:
    """Serialize documents compactly, keeping list and key order.

    Export and verification must both go through this function.
    """

    return json.dumps(list(documents), separators=(",", ":"), ensure_ascii=False)


def rolling_hash(text: str) -> int:
    """Fold `text` through `hash * 31 + code_unit`, wrapped to a signed 32-bit int.

    Code units are UTF-16, so non-BMP characters contribute two units.
    """

    value = 0
    data = text.encode("utf-16-le", "surrogatepass")
    for index in range(0, len(data), 2):
        code_unit = data[index] | (data[index + 1] << 8)
        value = (value * 31 + code_unit) & _MASK_32
    if value & 0x80000000:
        value -= 1 << 32
    return value


def checksum_documents(documents: Iterable[Mapping[str, Any]]) -> str:
    """Return the lowercase hex checksum of already-encoded documents."""

    return format(abs(rolling_hash(serialize_documents(documents))), "x")


def checksum_records(records: Iterable[Record]) -> str:
    """Return the checksum of records as they would appear in an artifact."""

    return checksum_documents(record_to_document(record) for record in records)
