"""Public API exports for inventory snapshots, reconciliation, and archiving."""

from .archive import (
    ArchiveCommitter,
    archive_statistics,
    classify_records,
    days_since,
    estimate_record_size,
    pack_batches,
    plan_archive,
    preview_archive,
    validate_selection,
)
from .checksum import checksum_documents, checksum_records
from .config import ArchivePolicy, CollectionNames, InventorySchema
from .errors import (
    ArchiveInProgress,
    ChecksumMismatch,
    ConfirmationRequired,
    CountMismatch,
    ExportInProgress,
    InventorySnapshotError,
    MalformedSnapshot,
    SnapshotInvalid,
    SourceUnavailable,
    ValidationFailed,
)
from .export import SnapshotExporter, compute_statistics
from .models import (
    ArchiveCandidate,
    ArchivePlan,
    Batch,
    ComparisonResult,
    DataIssue,
    PreviewResult,
    Record,
    Snapshot,
    StoreTimestamp,
    TemporalValue,
)
from .normalize import normalize_fields, normalize_record, normalize_value
from .reconcile import compare_snapshot, compare_with_store, field_diff, integrity_score
from .report import comparison_to_dict, render_comparison_report
from .store import InMemoryRecordStore, JsonDirectoryStore, RecordStore, build_lookup
from .verify import load_and_verify, verify_snapshot

__all__ = [
    "ArchiveCandidate",
    "ArchiveCommitter",
    "ArchiveInProgress",
    "ArchivePlan",
    "ArchivePolicy",
    "Batch",
    "ChecksumMismatch",
    "CollectionNames",
    "ComparisonResult",
    "ConfirmationRequired",
    "CountMismatch",
    "DataIssue",
    "ExportInProgress",
    "InMemoryRecordStore",
    "InventorySchema",
    "InventorySnapshotError",
    "JsonDirectoryStore",
    "MalformedSnapshot",
    "PreviewResult",
    "Record",
    "RecordStore",
    "Snapshot",
    "SnapshotExporter",
    "SnapshotInvalid",
    "SourceUnavailable",
    "StoreTimestamp",
    "TemporalValue",
    "ValidationFailed",
    "archive_statistics",
    "build_lookup",
    "checksum_documents",
    "checksum_records",
    "classify_records",
    "compare_snapshot",
    "compare_with_store",
    "comparison_to_dict",
    "compute_statistics",
    "days_since",
    "estimate_record_size",
    "field_diff",
    "integrity_score",
    "load_and_verify",
    "normalize_fields",
    "normalize_record",
    "normalize_value",
    "pack_batches",
    "plan_archive",
    "preview_archive",
    "render_comparison_report",
    "validate_selection",
    "verify_snapshot",
]
