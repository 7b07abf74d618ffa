"""Exception taxonomy for export, verification, reconciliation, and archiving."""

from __future__ import annotations

from collections.abc import Sequence

from .models import ArchiveIssue, DataIssue


class InventorySnapshotError(Exception):
    """Base exception for all inventory snapshot errors."""


class ExportInProgress(InventorySnapshotError):
    """Raised when an exporter is asked to start a second concurrent export."""


class SnapshotInvalid(InventorySnapshotError):
    """
    A snapshot artifact failed verification.

    Not retryable: the artifact must be re-exported. `issues` lists every
    check that failed, not only the one that selected the exception type.
    """

    def __init__(self, message: str, issues: Sequence[DataIssue] = ()):
        super().__init__(message)
        self.issues = list(issues)


class MalformedSnapshot(SnapshotInvalid):
    """The artifact lacks its `metadata` or `data` section."""


class ChecksumMismatch(SnapshotInvalid):
    """The recomputed checksum differs from the one recorded at export."""


class CountMismatch(SnapshotInvalid):
    """The number of records differs from the recorded document count."""


class SourceUnavailable(InventorySnapshotError):
    """
    Fetching a collection from the record store failed.

    Transient; the caller decides whether to retry.
    """

    def __init__(self, message: str, collection: str | None = None):
        super().__init__(message)
        self.collection = collection


class ValidationFailed(InventorySnapshotError):
    """An archive selection contains records that may not be archived."""

    def __init__(self, message: str, issues: Sequence[ArchiveIssue] = ()):
        super().__init__(message)
        self.issues = list(issues)


class ArchiveInProgress(InventorySnapshotError):
    """Raised when a committer is asked to start a second concurrent commit."""


class ConfirmationRequired(InventorySnapshotError):
    """A commit was attempted without the plan's confirmation token."""
