"""Tests for snapshot verification on untouched and tampered artifacts."""

from __future__ import annotations

import copy
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import pytest

from inventory_snapshot.errors import ChecksumMismatch, CountMismatch, MalformedSnapshot, SnapshotInvalid
from inventory_snapshot.export import SnapshotExporter
from inventory_snapshot.models import StoreTimestamp, TemporalValue
from inventory_snapshot.reconcile import compare_with_store
from inventory_snapshot.store import InMemoryRecordStore
from inventory_snapshot.verify import load_and_verify, verify_snapshot


def _clock() -> datetime:
    return datetime(2025, 2, 1, 8, 0, tzinfo=timezone.utc)


def _export(tmp_path: Path) -> Path:
    """Export a three-record collection and return the artifact path."""
    store = InMemoryRecordStore(
        {
            "inventory": {
                "car-1": {"model": "Civic", "status": "Sold", "lastUpdated": StoreTimestamp(seconds=1736937000)},
                "car-2": {"model": "Accord", "status": "Available", "options": ["sunroof", "tow hitch"]},
                "car-3": {"model": "Fit", "status": "Sold", "retailPrice": 15999.99},
            }
        }
    )
    result = SnapshotExporter(store, tmp_path, clock=_clock).export("inventory")
    assert result.path is not None
    return result.path


def _load(path: Path) -> dict[str, Any]:
    return json.loads(path.read_text(encoding="utf-8"))


def test_exported_artifact_round_trips_through_file(tmp_path: Path) -> None:
    """Reading an artifact back from disk should verify and restore temporal values."""
    snapshot, verification = load_and_verify(_export(tmp_path))

    assert verification.valid
    assert verification.document_count == 3
    assert snapshot.metadata.checksum == verification.checksum
    assert [record.id for record in snapshot.records] == ["car-1", "car-2", "car-3"]
    assert snapshot.records[0].get("lastUpdated") == TemporalValue(iso="2025-01-15T10:30:00.000Z")


def test_changed_field_fails_checksum(tmp_path: Path) -> None:
    """Editing a record after export should raise `ChecksumMismatch`."""
    document = _load(_export(tmp_path))
    document["data"][1]["model"] = "Accord Hybrid"

    with pytest.raises(ChecksumMismatch, match="Checksum mismatch") as excinfo:
        verify_snapshot(document)

    assert [issue.code for issue in excinfo.value.issues] == ["checksum_mismatch"]


def test_wrong_document_count_fails_count_check(tmp_path: Path) -> None:
    """A count that disagrees with the data should raise `CountMismatch`."""
    document = _load(_export(tmp_path))
    document["metadata"]["documentCount"] = 4

    with pytest.raises(CountMismatch, match="Document count mismatch"):
        verify_snapshot(document)


def test_checksum_failure_wins_but_all_failures_are_listed(tmp_path: Path) -> None:
    """When several checks fail, the first one selects the error and every one is reported."""
    document = _load(_export(tmp_path))
    del document["data"][0]

    with pytest.raises(ChecksumMismatch) as excinfo:
        verify_snapshot(document)

    assert [issue.code for issue in excinfo.value.issues] == ["checksum_mismatch", "count_mismatch"]


@pytest.mark.parametrize(
    ("document", "codes"),
    [
        ({"data": []}, ["missing_metadata"]),
        ({"metadata": {"checksum": "b62", "documentCount": 0}}, ["missing_data"]),
        ({"metadata": "oops", "data": {}}, ["missing_metadata", "missing_data"]),
        ([], ["missing_metadata", "missing_data"]),
    ],
)
def test_missing_sections_are_malformed(document: Any, codes: list[str]) -> None:
    """Artifacts without a metadata mapping or data list are structurally invalid."""
    with pytest.raises(MalformedSnapshot, match="Invalid backup structure") as excinfo:
        verify_snapshot(copy.deepcopy(document))

    assert [issue.code for issue in excinfo.value.issues] == codes


def test_empty_collection_verifies() -> None:
    """An empty data list with its matching checksum should pass."""
    result = verify_snapshot({"metadata": {"checksum": "b62", "documentCount": 0}, "data": []})
    assert result.valid
    assert result.document_count == 0


def test_unparseable_file_is_malformed(tmp_path: Path) -> None:
    """Files that are not JSON should be reported as malformed snapshots."""
    path = tmp_path / "broken.json"
    path.write_text("{not json", encoding="utf-8")

    with pytest.raises(MalformedSnapshot, match="not valid JSON"):
        load_and_verify(path)


def test_verification_errors_share_a_base_class(tmp_path: Path) -> None:
    """Callers can catch every verification failure through `SnapshotInvalid`."""
    document = _load(_export(tmp_path))
    document["metadata"]["checksum"] = "0"

    with pytest.raises(SnapshotInvalid):
        verify_snapshot(document)


def test_documents_carrying_their_own_id_round_trip_as_a_perfect_match(tmp_path: Path) -> None:
    """An `id` field inside a document should not show up as a change after reloading."""
    store = InMemoryRecordStore({"inventory": {"A": {"id": "A", "status": "Sold"}, "B": {"id": "B", "model": "Fit"}}})
    result = SnapshotExporter(store, tmp_path, clock=_clock).export("inventory")
    assert result.path is not None

    reloaded, _ = load_and_verify(result.path)

    for snapshot in (result.snapshot, reloaded):
        comparison = compare_with_store(snapshot, store)
        assert comparison.status == "PERFECT_MATCH"
        assert comparison.integrity_score == 100.0
        assert comparison.modified == []


def test_lone_surrogate_survives_export_and_verification(tmp_path: Path) -> None:
    """Strings holding unpaired surrogates should be written and read back unchanged."""
    model = json.loads('"x\\ud800"')
    store = InMemoryRecordStore({"inventory": {"A": {"model": model}}})
    result = SnapshotExporter(store, tmp_path, clock=_clock).export("inventory")
    assert result.path is not None

    snapshot, verification = load_and_verify(result.path)

    assert verification.checksum == result.snapshot.metadata.checksum
    assert snapshot.records[0].get("model") == model
