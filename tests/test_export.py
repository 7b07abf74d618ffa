"""Tests for snapshot export: statistics, artifacts, and the single-flight guard."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path

import pytest

from inventory_snapshot.errors import ExportInProgress, SourceUnavailable
from inventory_snapshot.export import (
    SnapshotExporter,
    compute_statistics,
    parse_price,
    snapshot_filename,
    snapshot_from_document,
    snapshot_to_document,
)
from inventory_snapshot.models import Record, StoreTimestamp, TemporalValue
from inventory_snapshot.store import InMemoryRecordStore
from inventory_snapshot.verify import verify_snapshot

EXPORTED_AT = datetime(2025, 1, 15, 10, 30, tzinfo=timezone.utc)


def _clock() -> datetime:
    return EXPORTED_AT


def _inventory_store() -> InMemoryRecordStore:
    """Build a store holding a small inventory collection."""
    return InMemoryRecordStore(
        {
            "inventory": {
                "car-1": {
                    "model": "Civic",
                    "status": "Available",
                    "manufacturer": "Honda",
                    "retailPrice": 25000,
                    "dateAdded": StoreTimestamp(seconds=1736937000),
                },
                "car-2": {
                    "model": "Corolla",
                    "status": "Sold",
                    "manufacturer": "Toyota",
                    "retailPrice": "18000",
                    "dateAdded": "2024-03-01T00:00:00.000Z",
                },
            }
        }
    )


class _FailingStore(InMemoryRecordStore):
    def fetch_all(self, collection: str) -> list[Record]:
        raise OSError("connection reset")


class _ReentrantStore(InMemoryRecordStore):
    """Store that tries to start a second export from inside the first fetch."""

    def __init__(self, collections: dict) -> None:
        super().__init__(collections)
        self.exporter: SnapshotExporter | None = None
        self.attempted = False
        self.nested_errors: list[ExportInProgress] = []

    def fetch_all(self, collection: str) -> list[Record]:
        if self.exporter is not None and not self.attempted:
            self.attempted = True
            try:
                self.exporter.export(collection)
            except ExportInProgress as exc:
                self.nested_errors.append(exc)
        return super().fetch_all(collection)


def test_parse_price_is_lenient() -> None:
    """Numeric prefixes count; missing, boolean, and non-numeric values count as 0."""
    assert parse_price(100) == 100.0
    assert parse_price("12.5 USD") == 12.5
    assert parse_price(" 7") == 7.0
    assert parse_price("abc") == 0.0
    assert parse_price(None) == 0.0
    assert parse_price(True) == 0.0
    assert parse_price(float("nan")) == 0.0


def test_compute_statistics_counts_totals_and_date_range() -> None:
    """Statistics should skip empty keys and ignore unparseable prices and dates."""
    records = [
        Record(
            id="a",
            fields={
                "status": "Available",
                "manufacturer": "Honda",
                "retailPrice": 25000,
                "dateAdded": "2024-06-01T00:00:00.000Z",
            },
        ),
        Record(
            id="b",
            fields={
                "status": "Sold",
                "manufacturer": "Honda",
                "retailPrice": "12.5 USD",
                "dateAdded": TemporalValue(iso="2023-01-01T00:00:00.000Z"),
            },
        ),
        Record(id="c", fields={"status": "Sold", "manufacturer": "", "retailPrice": "abc"}),
        Record(id="d", fields={"manufacturer": "Toyota", "retailPrice": None, "dateAdded": "garbage"}),
    ]

    stats = compute_statistics(records)

    assert stats.total_items == 4
    assert stats.by_status == {"Available": 1, "Sold": 2}
    assert stats.by_manufacturer == {"Honda": 2, "Toyota": 1}
    assert stats.total_value == 25012.5
    assert stats.oldest_item == "2023-01-01T00:00:00.000Z"
    assert stats.newest_item == "2024-06-01T00:00:00.000Z"


def test_snapshot_filename_uses_utc_timestamp() -> None:
    """Artifact names should embed the collection and export time."""
    assert snapshot_filename("inventory", EXPORTED_AT) == "inventory_backup_2025-01-15_10-30-00.json"


def test_export_writes_verifiable_artifact(tmp_path: Path) -> None:
    """An exported artifact should verify and carry metadata plus statistics."""
    exporter = SnapshotExporter(_inventory_store(), tmp_path, clock=_clock)

    result = exporter.export("inventory")

    assert result.path == tmp_path / "inventory_backup_2025-01-15_10-30-00.json"
    document = json.loads(result.path.read_text(encoding="utf-8"))
    metadata = document["metadata"]
    assert metadata["version"] == "1.0.0"
    assert metadata["createdAt"] == "2025-01-15T10:30:00.000Z"
    assert metadata["collection"] == "inventory"
    assert metadata["documentCount"] == 2
    assert metadata["statistics"]["byStatus"] == {"Available": 1, "Sold": 1}
    assert metadata["statistics"]["totalValue"] == 43000.0
    assert document["data"][0]["dateAdded"]["_type"] == "timestamp"

    verification = verify_snapshot(document)
    assert verification.valid
    assert verification.checksum == metadata["checksum"]
    assert not exporter.export_in_progress


def test_export_statistics_only_writes_nothing(tmp_path: Path) -> None:
    """Statistics-only runs should compute metadata without creating a file."""
    exporter = SnapshotExporter(_inventory_store(), tmp_path / "backups", clock=_clock)

    result = exporter.export("inventory", statistics_only=True)

    assert result.path is None
    assert result.snapshot.metadata.document_count == 2
    assert not (tmp_path / "backups").exists()


def test_second_export_while_running_is_rejected(tmp_path: Path) -> None:
    """A nested export on the same exporter should raise and leave the first one intact."""
    store = _ReentrantStore({"inventory": {"car-1": {"model": "Civic"}}})
    exporter = SnapshotExporter(store, tmp_path, clock=_clock)
    store.exporter = exporter

    result = exporter.export("inventory")

    assert len(store.nested_errors) == 1
    assert "already in progress" in str(store.nested_errors[0])
    assert result.snapshot.metadata.document_count == 1
    assert not exporter.export_in_progress


def test_failed_fetch_raises_source_unavailable_and_clears_guard(tmp_path: Path) -> None:
    """Store failures should surface as `SourceUnavailable` and release the guard."""
    exporter = SnapshotExporter(_FailingStore(), tmp_path, clock=_clock)

    with pytest.raises(SourceUnavailable, match="connection reset"):
        exporter.export("inventory")

    assert not exporter.export_in_progress
    assert list(tmp_path.iterdir()) == []


def test_export_selected_builds_partial_snapshot(tmp_path: Path) -> None:
    """Selected exports should keep store order and record the requested count."""
    exporter = SnapshotExporter(_inventory_store(), tmp_path, clock=_clock)

    snapshot = exporter.export_selected("inventory", ["car-2", "missing", "car-2"])

    assert [record.id for record in snapshot.records] == ["car-2"]
    assert snapshot.metadata.snapshot_type == "partial"
    assert snapshot.metadata.requested_count == 2

    document = snapshot_to_document(snapshot)
    assert document["metadata"]["type"] == "partial"
    assert verify_snapshot(document).document_count == 1
    assert snapshot_from_document(document).metadata.snapshot_type == "partial"
