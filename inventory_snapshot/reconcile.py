"""Field-level reconciliation of a snapshot against the live collection."""

from __future__ import annotations

import logging
import math
from collections import Counter
from collections.abc import Iterable, Mapping
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from .config import DEFAULT_SCHEMA, TEMPORAL_BOOKKEEPING_FIELDS, InventorySchema
from .models import (
    AddedRecord,
    ComparisonCounts,
    ComparisonResult,
    ComparisonStatus,
    DeletedRecord,
    FieldDifference,
    FieldMismatch,
    ModifiedRecord,
    Record,
    Snapshot,
    TemporalValue,
)
from .normalize import normalize_record, to_iso_string
from .store import RecordStore, fetch_collection

logger = logging.getLogger(__name__)

_MISSING = object()


def values_equal(left: Any, right: Any) -> bool:
    """Deep structural equality over normalized field values.

    Temporal values compare by ISO string only. Booleans never equal numbers,
    lists are order-sensitive, and nested mappings compare key by key.
    """

    if isinstance(left, TemporalValue) or isinstance(right, TemporalValue):
        return isinstance(left, TemporalValue) and isinstance(right, TemporalValue) and left.iso == right.iso

    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left == right

    if isinstance(left, (int, float)) and isinstance(right, (int, float)):
        if isinstance(left, float) and isinstance(right, float) and math.isnan(left) and math.isnan(right):
            return True
        return left == right

    if isinstance(left, list) and isinstance(right, list):
        return len(left) == len(right) and all(values_equal(a, b) for a, b in zip(left, right))

    if isinstance(left, Mapping) and isinstance(right, Mapping):
        if set(left) != set(right):
            return False
        return all(values_equal(left[key], right[key]) for key in left)

    return type(left) is type(right) and left == right


def _reported(value: Any) -> Any:
    return None if value is _MISSING else value


def field_diff(backup_fields: Mapping[str, Any], current_fields: Mapping[str, Any]) -> list[FieldDifference]:
    """Return one `FieldDifference` per differing field.

    Field names are visited in backup order, then names that only exist in the
    live record. Temporal bookkeeping keys are never diffed at the top level.
    """

    differences: list[FieldDifference] = []
    for name in dict.fromkeys([*backup_fields, *current_fields]):
        if name in TEMPORAL_BOOKKEEPING_FIELDS:
            continue

        backup_value = backup_fields.get(name, _MISSING)
        current_value = current_fields.get(name, _MISSING)

        if isinstance(backup_value, TemporalValue) and isinstance(current_value, TemporalValue):
            if backup_value.iso != current_value.iso:
                differences.append(FieldDifference(field=name, backup_value=backup_value.iso, current_value=current_value.iso))
            continue

        if not values_equal(backup_value, current_value):
            differences.append(
                FieldDifference(field=name, backup_value=_reported(backup_value), current_value=_reported(current_value))
            )
    return differences


def derive_status(counts: ComparisonCounts) -> ComparisonStatus:
    """Map comparison counters to an overall status."""

    if counts.matching == counts.backup and counts.backup == counts.current and counts.modified == 0:
        return "PERFECT_MATCH"
    if counts.deleted > 0 or counts.added > 0:
        return "STRUCTURAL_CHANGES"
    if counts.modified > 0:
        return "DATA_CHANGES"

    logger.error("Comparison counters fit no status, this is a defect: %s", counts)
    return "UNKNOWN"


def integrity_score(matching: int, backup_count: int, current_count: int) -> float:
    """Percentage of unchanged records relative to the larger side, one decimal.

    Two empty collections score 0.0.
    """

    total = max(backup_count, current_count)
    if total <= 0:
        return 0.0
    score = Decimal(matching) * 100 / Decimal(total)
    return float(score.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def _status_message(status: ComparisonStatus, counts: ComparisonCounts) -> str:
    if status == "PERFECT_MATCH":
        return "Backup perfectly matches current collection"
    if status == "STRUCTURAL_CHANGES":
        return f"Collection structure has changed: {counts.added} added, {counts.deleted} deleted"
    if status == "DATA_CHANGES":
        return f"{counts.modified} records have been modified since backup"
    return "Comparison status could not be determined"


def compare_snapshot(
    snapshot: Snapshot,
    live_records: Iterable[Record],
    *,
    schema: InventorySchema = DEFAULT_SCHEMA,
    now: datetime | None = None,
) -> ComparisonResult:
    """Compare a verified snapshot with already-fetched live records.

    Every id in the union of both sides lands in exactly one of matching,
    modified, deleted, or added.
    """

    backup_by_id = {record.id: record for record in snapshot.records}
    current_by_id: dict[str, Record] = {}
    for record in live_records:
        normalized = normalize_record(record)
        current_by_id[normalized.id] = normalized

    counts = ComparisonCounts(backup=len(backup_by_id), current=len(current_by_id))
    result = ComparisonResult(
        timestamp=to_iso_string(now or datetime.now(timezone.utc)),
        backup_date=snapshot.metadata.created_at or "Unknown",
        status="UNKNOWN",
        counts=counts,
    )
    mismatches: Counter[str] = Counter()

    for record_id, backup in backup_by_id.items():
        current = current_by_id.get(record_id)
        if current is None:
            result.deleted.append(
                DeletedRecord(id=record_id, label=backup.get(schema.label), status=backup.get(schema.status))
            )
            continue

        differences = field_diff(backup.fields, current.fields)
        if not differences:
            result.matching.append(record_id)
            continue

        result.modified.append(ModifiedRecord(id=record_id, label=current.get(schema.label), differences=differences))
        for difference in differences:
            mismatches[difference.field] += 1

    for record_id, current in current_by_id.items():
        if record_id in backup_by_id:
            continue
        result.added.append(
            AddedRecord(
                id=record_id,
                label=current.get(schema.label),
                status=current.get(schema.status),
                date_added=current.get(schema.date_added),
            )
        )

    counts.matching = len(result.matching)
    counts.modified = len(result.modified)
    counts.deleted = len(result.deleted)
    counts.added = len(result.added)

    result.field_mismatches = [FieldMismatch(field=name, count=count) for name, count in mismatches.most_common()]
    result.status = derive_status(counts)
    result.integrity_score = integrity_score(counts.matching, counts.backup, counts.current)
    result.message = _status_message(result.status, counts)

    logger.info("Comparison complete: %s", result.message)
    logger.info(
        "Integrity score %.1f%%: %d identical, %d modified, %d added, %d deleted",
        result.integrity_score,
        counts.matching,
        counts.modified,
        counts.added,
        counts.deleted,
    )
    return result


def compare_with_store(
    snapshot: Snapshot,
    store: RecordStore,
    collection: str | None = None,
    *,
    schema: InventorySchema = DEFAULT_SCHEMA,
    now: datetime | None = None,
) -> ComparisonResult:
    """Fetch the live collection and compare it with `snapshot`.

    The collection defaults to the one recorded in the snapshot metadata. A
    fetch failure raises `SourceUnavailable` and no result is produced.
    """

    name = collection or snapshot.metadata.collection
    if not name:
        raise ValueError("No collection given and the snapshot does not name one")
    live_records = fetch_collection(store, name)
    return compare_snapshot(snapshot, live_records, schema=schema, now=now)


def partition_ids(result: ComparisonResult) -> dict[str, set[str]]:
    """Return the id set of each comparison category."""

    return {
        "matching": set(result.matching),
        "modified": {item.id for item in result.modified},
        "added": {item.id for item in result.added},
        "deleted": {item.id for item in result.deleted},
    }
