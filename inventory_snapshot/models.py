"""Core typed models shared by snapshot, reconciliation, and archive modules."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Literal, TypeAlias

ComparisonStatus: TypeAlias = Literal[
    "PERFECT_MATCH",
    "STRUCTURAL_CHANGES",
    "DATA_CHANGES",
    "UNKNOWN",
]
TemporalKind: TypeAlias = Literal["timestamp", "date"]


@dataclass(frozen=True, slots=True)
class DataIssue:
    """Structured issue emitted during verification or validation."""

    code: str
    message: str
    field: str | None = None


@dataclass(frozen=True, slots=True)
class TemporalValue:
    """A point in time in canonical ISO-8601 form.

    Only `iso` takes part in equality, so values captured through different
    paths (store timestamps, native dates, decoded artifacts) compare equal
    when they denote the same instant.
    """

    iso: str
    kind: TemporalKind = field(default="timestamp", compare=False)
    seconds: int | None = field(default=None, compare=False)
    nanoseconds: int | None = field(default=None, compare=False)

    def to_datetime(self) -> datetime:
        """Return the instant as an aware UTC datetime."""

        parsed = datetime.fromisoformat(self.iso.replace("Z", "+00:00"))
        if parsed.tzinfo is None:
            return parsed.replace(tzinfo=timezone.utc)
        return parsed.astimezone(timezone.utc)


@dataclass(frozen=True, slots=True)
class StoreTimestamp:
    """Store-native timestamp expressed as epoch seconds plus nanoseconds."""

    seconds: int
    nanoseconds: int = 0

    def to_datetime(self) -> datetime:
        """Return the timestamp as an aware UTC datetime (microsecond precision)."""

        base = datetime.fromtimestamp(self.seconds, tz=timezone.utc)
        return base + timedelta(microseconds=self.nanoseconds // 1000)

    @classmethod
    def from_datetime(cls, value: datetime) -> StoreTimestamp:
        """Build a timestamp from a datetime; naive values are taken as UTC."""

        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return cls(seconds=int(value.timestamp() // 1), nanoseconds=value.microsecond * 1000)


Value: TypeAlias = "str | int | float | bool | None | TemporalValue | list[Value] | dict[str, Value]"
Fields: TypeAlias = dict[str, Any]


@dataclass(slots=True)
class Record:
    """One document of a collection: opaque id plus ordered field mapping."""

    id: str
    fields: Fields = field(default_factory=dict)

    def get(self, name: str, default: Any = None) -> Any:
        """Return a field value, or `default` when the field is absent."""

        return self.fields.get(name, default)


@dataclass(slots=True)
class SnapshotStatistics:
    """Aggregate statistics computed over an exported collection."""

    total_items: int = 0
    by_status: dict[str, int] = field(default_factory=dict)
    by_manufacturer: dict[str, int] = field(default_factory=dict)
    total_value: float = 0.0
    oldest_item: str | None = None
    newest_item: str | None = None


@dataclass(slots=True)
class SnapshotMetadata:
    """Integrity and provenance metadata stored alongside snapshot data."""

    version: str
    created_at: str
    collection: str
    document_count: int
    export_duration_ms: int
    checksum: str
    statistics: SnapshotStatistics
    created_by: str = "inventory_snapshot.export"
    snapshot_type: Literal["full", "partial"] = "full"
    requested_count: int | None = None


@dataclass(slots=True)
class Snapshot:
    """Point-in-time copy of a whole collection."""

    metadata: SnapshotMetadata
    records: list[Record]

    @property
    def record_count(self) -> int:
        """Return the number of records carried by the snapshot."""

        return len(self.records)


@dataclass(frozen=True, slots=True)
class VerificationResult:
    """Outcome of a successful snapshot verification."""

    valid: bool
    document_count: int
    checksum: str


@dataclass(slots=True)
class ExportResult:
    """Result of one export run."""

    filename: str
    path: Path | None
    snapshot: Snapshot


@dataclass(frozen=True, slots=True)
class FieldDifference:
    """One field whose value differs between backup and live record."""

    field: str
    backup_value: Any
    current_value: Any


@dataclass(slots=True)
class ModifiedRecord:
    """A record present on both sides with at least one field difference."""

    id: str
    label: Any
    differences: list[FieldDifference]


@dataclass(slots=True)
class AddedRecord:
    """A record present only in the live collection."""

    id: str
    label: Any
    status: Any
    date_added: Any


@dataclass(slots=True)
class DeletedRecord:
    """A record present only in the snapshot."""

    id: str
    label: Any
    status: Any


@dataclass(slots=True)
class ComparisonCounts:
    """Per-category counters of one comparison."""

    backup: int = 0
    current: int = 0
    matching: int = 0
    modified: int = 0
    added: int = 0
    deleted: int = 0


@dataclass(frozen=True, slots=True)
class FieldMismatch:
    """How many modified records changed a given field."""

    field: str
    count: int


@dataclass(slots=True)
class ComparisonResult:
    """Field-level reconciliation of a snapshot against the live collection."""

    timestamp: str
    backup_date: str
    status: ComparisonStatus
    counts: ComparisonCounts
    matching: list[str] = field(default_factory=list)
    modified: list[ModifiedRecord] = field(default_factory=list)
    added: list[AddedRecord] = field(default_factory=list)
    deleted: list[DeletedRecord] = field(default_factory=list)
    field_mismatches: list[FieldMismatch] = field(default_factory=list)
    integrity_score: float = 0.0
    message: str = ""


@dataclass(slots=True)
class ArchiveCandidate:
    """An archive-eligible record annotated with derived age and size."""

    record: Record
    days_since_update: int
    estimated_size_bytes: int

    @property
    def id(self) -> str:
        return self.record.id


@dataclass(slots=True)
class IneligibleRecord:
    """A status-matching record that is too recent to archive."""

    record: Record
    days_since_update: int
    reason: str


@dataclass(slots=True)
class ClassificationResult:
    """Eligible and ineligible records of one classification pass."""

    eligible: list[ArchiveCandidate] = field(default_factory=list)
    ineligible: list[IneligibleRecord] = field(default_factory=list)


@dataclass(slots=True)
class Batch:
    """An order-preserving, size-bounded group of archive candidates."""

    batch_id: str
    candidates: list[ArchiveCandidate]
    size_bytes: int

    @property
    def item_count(self) -> int:
        return len(self.candidates)

    @property
    def size_kb(self) -> int:
        return math.floor(self.size_bytes / 1024 + 0.5)

    @property
    def record_ids(self) -> list[str]:
        return [candidate.id for candidate in self.candidates]


@dataclass(frozen=True, slots=True)
class ArchiveIssue:
    """One reason a selected record cannot be archived."""

    record_id: str
    message: str


@dataclass(slots=True)
class ArchiveStats:
    """Aggregate figures over a set of archive candidates."""

    item_count: int = 0
    total_value: float = 0.0
    total_cost: float = 0.0
    total_margin: float = 0.0
    average_price: int = 0
    estimated_batches: int = 0
    total_size_kb: int = 0
    items_by_age: dict[str, int] = field(default_factory=dict)
    oldest_record_id: str | None = None
    newest_record_id: str | None = None


@dataclass(frozen=True, slots=True)
class BatchPreview:
    """Summary of one batch as it would be written."""

    document_id: str
    item_count: int
    size_kb: int
    within_limit: bool


@dataclass(slots=True)
class PreviewDetails:
    """Details of a successful archive preview."""

    item_count: int
    batch_count: int
    total_size_kb: int
    total_value: float
    total_margin: float
    batches: list[BatchPreview]
    warning: str | None = None


@dataclass(slots=True)
class PreviewResult:
    """Dry-run archive outcome; never implies any write happened."""

    success: bool
    message: str
    errors: list[ArchiveIssue] = field(default_factory=list)
    details: PreviewDetails | None = None


@dataclass(slots=True)
class ArchivePlan:
    """Validated, packed archive selection awaiting an explicit commit."""

    batches: list[Batch]
    details: PreviewDetails
    archived_by: str
    planned_at: str
    confirmation_token: str

    @property
    def record_ids(self) -> list[str]:
        return [record_id for batch in self.batches for record_id in batch.record_ids]


@dataclass(slots=True)
class CommitResult:
    """Outcome of a committed archive plan."""

    archive_collection: str
    source_collection: str
    batch_ids: list[str]
    deleted_ids: list[str]
    duration_ms: int
