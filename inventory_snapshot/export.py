"""Snapshot export: fetch, normalize, summarize, fingerprint, and persist a collection."""

from __future__ import annotations

import json
import logging
import math
import re
import time
from collections.abc import Callable, Iterable, Mapping
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from .checksum import checksum_records
from .codec import record_from_document, record_to_document
from .config import DEFAULT_SCHEMA, SNAPSHOT_VERSION, InventorySchema
from .errors import ExportInProgress, MalformedSnapshot
from .models import DataIssue, ExportResult, Record, Snapshot, SnapshotMetadata, SnapshotStatistics, TemporalValue
from .normalize import normalize_record, parse_temporal, to_iso_string
from .store import RecordStore, fetch_collection

logger = logging.getLogger(__name__)

DEFAULT_OUTPUT_DIR = Path("backups")
PROGRESS_EVERY = 100

_FLOAT_PREFIX_RE = re.compile(r"^[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_price(value: Any) -> float:
    """Parse a monetary field leniently; missing or invalid values count as 0.

    Strings contribute their leading numeric prefix ("12.5 USD" -> 12.5).
    """

    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        match = _FLOAT_PREFIX_RE.match(value.strip())
        if match is None:
            return 0.0
        number = float(match.group(0))
    else:
        return 0.0
    return number if math.isfinite(number) else 0.0


def _date_label(value: Any) -> str:
    """Return the string reported for a date-added value in statistics."""

    if isinstance(value, TemporalValue):
        return value.iso
    return str(value)


def compute_statistics(records: Iterable[Record], schema: InventorySchema = DEFAULT_SCHEMA) -> SnapshotStatistics:
    """Count by status and manufacturer, total retail value, and date-added range."""

    stats = SnapshotStatistics()
    oldest: datetime | None = None
    newest: datetime | None = None

    for record in records:
        stats.total_items += 1

        status = record.get(schema.status)
        if status:
            key = str(status)
            stats.by_status[key] = stats.by_status.get(key, 0) + 1

        manufacturer = record.get(schema.manufacturer)
        if manufacturer:
            key = str(manufacturer)
            stats.by_manufacturer[key] = stats.by_manufacturer.get(key, 0) + 1

        stats.total_value += parse_price(record.get(schema.retail_price))

        date_added = record.get(schema.date_added)
        added_at = parse_temporal(date_added)
        if added_at is None:
            continue
        if oldest is None or added_at < oldest:
            oldest = added_at
            stats.oldest_item = _date_label(date_added)
        if newest is None or added_at > newest:
            newest = added_at
            stats.newest_item = _date_label(date_added)

    return stats


def snapshot_filename(collection: str, when: datetime) -> str:
    """Return `<collection>_backup_YYYY-MM-DD_HH-MM-SS.json` for `when` in UTC."""

    if when.tzinfo is not None:
        when = when.astimezone(timezone.utc)
    return f"{collection}_backup_{when.strftime('%Y-%m-%d_%H-%M-%S')}.json"


def _statistics_to_dict(stats: SnapshotStatistics) -> dict[str, Any]:
    return {
        "totalItems": stats.total_items,
        "byStatus": dict(stats.by_status),
        "byManufacturer": dict(stats.by_manufacturer),
        "totalValue": stats.total_value,
        "oldestItem": stats.oldest_item,
        "newestItem": stats.newest_item,
    }


def _statistics_from_dict(payload: Mapping[str, Any] | None) -> SnapshotStatistics:
    payload = payload or {}
    return SnapshotStatistics(
        total_items=int(payload.get("totalItems", 0) or 0),
        by_status=dict(payload.get("byStatus") or {}),
        by_manufacturer=dict(payload.get("byManufacturer") or {}),
        total_value=parse_price(payload.get("totalValue")),
        oldest_item=payload.get("oldestItem"),
        newest_item=payload.get("newestItem"),
    )


def snapshot_to_document(snapshot: Snapshot) -> dict[str, Any]:
    """Return the artifact form: `{"metadata": {...}, "data": [...]}`."""

    metadata = snapshot.metadata
    meta: dict[str, Any] = {
        "version": metadata.version,
        "createdAt": metadata.created_at,
        "createdBy": metadata.created_by,
        "collection": metadata.collection,
        "documentCount": metadata.document_count,
        "exportDuration": metadata.export_duration_ms,
        "checksum": metadata.checksum,
        "statistics": _statistics_to_dict(metadata.statistics),
    }
    if metadata.snapshot_type != "full":
        meta["type"] = metadata.snapshot_type
        meta["requestedCount"] = metadata.requested_count

    return {
        "metadata": meta,
        "data": [record_to_document(record) for record in snapshot.records],
    }


def snapshot_from_document(document: Mapping[str, Any]) -> Snapshot:
    """Rebuild a `Snapshot` from its artifact form.

    Raises `MalformedSnapshot` when a section is missing or a data entry cannot
    be read as a record. Integrity checks belong to `verify_snapshot`.
    """

    metadata = document.get("metadata") if isinstance(document, Mapping) else None
    data = document.get("data") if isinstance(document, Mapping) else None
    if not isinstance(metadata, Mapping) or not isinstance(data, list):
        raise MalformedSnapshot(
            "Invalid snapshot structure",
            [DataIssue(code="malformed_snapshot", message="Snapshot needs a metadata object and a data list")],
        )

    records: list[Record] = []
    for position, entry in enumerate(data):
        try:
            records.append(record_from_document(entry))
        except ValueError as exc:
            raise MalformedSnapshot(
                f"Invalid record at position {position}: {exc}",
                [DataIssue(code="malformed_record", message=str(exc), field=f"data[{position}]")],
            ) from exc

    snapshot_type = metadata.get("type", "full")
    return Snapshot(
        metadata=SnapshotMetadata(
            version=str(metadata.get("version", SNAPSHOT_VERSION)),
            created_at=str(metadata.get("createdAt", "Unknown")),
            collection=str(metadata.get("collection", "")),
            document_count=int(metadata.get("documentCount", len(records)) or 0),
            export_duration_ms=int(metadata.get("exportDuration", 0) or 0),
            checksum=str(metadata.get("checksum", "")),
            statistics=_statistics_from_dict(metadata.get("statistics")),
            created_by=str(metadata.get("createdBy", "unknown")),
            snapshot_type="partial" if snapshot_type == "partial" else "full",
            requested_count=metadata.get("requestedCount"),
        ),
        records=records,
    )


def write_snapshot(snapshot: Snapshot, path: Path) -> Path:
    """Write the snapshot artifact as pretty-printed JSON, creating parent directories."""

    path.parent.mkdir(parents=True, exist_ok=True)
    payload = json.dumps(snapshot_to_document(snapshot), indent=2)
    path.write_text(payload + "\n", encoding="utf-8")
    return path


class SnapshotExporter:
    """
    Exports whole collections to snapshot artifacts.

    One instance runs at most one export at a time; a second call while an
    export is in flight raises `ExportInProgress`.
    """

    def __init__(
        self,
        store: RecordStore,
        output_dir: str | Path = DEFAULT_OUTPUT_DIR,
        *,
        schema: InventorySchema = DEFAULT_SCHEMA,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.store = store
        self.output_dir = Path(output_dir)
        self.schema = schema
        self.clock = clock
        self._export_in_progress = False

    @property
    def export_in_progress(self) -> bool:
        return self._export_in_progress

    def export(self, collection: str, *, statistics_only: bool = False) -> ExportResult:
        """Export `collection` and write the artifact unless `statistics_only` is set."""

        if self._export_in_progress:
            raise ExportInProgress("Export already in progress")

        self._export_in_progress = True
        started = time.monotonic()
        try:
            logger.info("Starting export of collection %s", collection)
            fetched = fetch_collection(self.store, collection)
            logger.info("Found %d records to export", len(fetched))

            records: list[Record] = []
            for index, record in enumerate(fetched, start=1):
                records.append(normalize_record(record))
                if index % PROGRESS_EVERY == 0:
                    logger.info("Processed %d/%d records", index, len(fetched))

            created_at = self.clock()
            metadata = SnapshotMetadata(
                version=SNAPSHOT_VERSION,
                created_at=to_iso_string(created_at),
                collection=collection,
                document_count=len(records),
                export_duration_ms=int((time.monotonic() - started) * 1000),
                checksum=checksum_records(records),
                statistics=compute_statistics(records, self.schema),
            )
            snapshot = Snapshot(metadata=metadata, records=records)
            filename = snapshot_filename(collection, created_at)

            path: Path | None = None
            if not statistics_only:
                path = write_snapshot(snapshot, self.output_dir / filename)

            logger.info(
                "Export of %s complete: %d records, checksum %s, file %s",
                collection,
                metadata.document_count,
                metadata.checksum,
                path if path is not None else "(statistics only)",
            )
            return ExportResult(filename=filename, path=path, snapshot=snapshot)
        finally:
            self._export_in_progress = False

    def export_selected(self, collection: str, record_ids: Iterable[str]) -> Snapshot:
        """Build a partial snapshot holding only `record_ids`, in store order."""

        requested = list(dict.fromkeys(record_ids))
        wanted = set(requested)
        logger.info("Exporting %d selected records from %s", len(requested), collection)

        records = [normalize_record(record) for record in fetch_collection(self.store, collection) if record.id in wanted]
        metadata = SnapshotMetadata(
            version=SNAPSHOT_VERSION,
            created_at=to_iso_string(self.clock()),
            collection=collection,
            document_count=len(records),
            export_duration_ms=0,
            checksum=checksum_records(records),
            statistics=compute_statistics(records, self.schema),
            snapshot_type="partial",
            requested_count=len(requested),
        )
        return Snapshot(metadata=metadata, records=records)
