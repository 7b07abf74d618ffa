"""Structural and checksum verification of snapshot artifacts."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from .checksum import checksum_documents
from .errors import ChecksumMismatch, CountMismatch, MalformedSnapshot
from .export import snapshot_from_document
from .models import DataIssue, Snapshot, VerificationResult

logger = logging.getLogger(__name__)


def verify_snapshot(document: Any) -> VerificationResult:
    """Verify an artifact has not been altered since export.

    Checks run in order: structure, checksum, document count. The exception
    raised is the one for the first failing check, and its `issues` list every
    failing check so callers can show all problems at once.
    """

    metadata = document.get("metadata") if isinstance(document, Mapping) else None
    data = document.get("data") if isinstance(document, Mapping) else None

    structure_issues: list[DataIssue] = []
    if not isinstance(metadata, Mapping):
        structure_issues.append(
            DataIssue(code="missing_metadata", message="Snapshot has no metadata section", field="metadata")
        )
    if not isinstance(data, list):
        structure_issues.append(DataIssue(code="missing_data", message="Snapshot has no data section", field="data"))
    if structure_issues:
        logger.warning("Snapshot verification failed: invalid structure")
        raise MalformedSnapshot("Invalid backup structure", structure_issues)

    recomputed = checksum_documents(data)
    expected_checksum = metadata.get("checksum")
    expected_count = metadata.get("documentCount")

    issues: list[DataIssue] = []
    checksum_ok = recomputed == expected_checksum
    if not checksum_ok:
        issues.append(
            DataIssue(
                code="checksum_mismatch",
                message=f"Checksum mismatch: recorded {expected_checksum!r}, recomputed {recomputed!r}",
                field="metadata.checksum",
            )
        )
    count_ok = isinstance(expected_count, int) and not isinstance(expected_count, bool) and expected_count == len(data)
    if not count_ok:
        issues.append(
            DataIssue(
                code="count_mismatch",
                message=f"Document count mismatch: recorded {expected_count!r}, found {len(data)}",
                field="metadata.documentCount",
            )
        )

    if not checksum_ok:
        logger.warning("Snapshot verification failed: checksum mismatch")
        raise ChecksumMismatch("Checksum mismatch - backup may be corrupted", issues)
    if not count_ok:
        logger.warning("Snapshot verification failed: document count mismatch")
        raise CountMismatch("Document count mismatch", issues)

    logger.info("Snapshot verification passed: %d documents, checksum %s", len(data), recomputed)
    return VerificationResult(valid=True, document_count=len(data), checksum=recomputed)


def load_snapshot_document(path: str | Path) -> Any:
    """Read an artifact file; unparseable JSON is reported as `MalformedSnapshot`."""

    text = Path(path).read_text(encoding="utf-8")
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise MalformedSnapshot(
            f"Snapshot file is not valid JSON: {exc}",
            [DataIssue(code="invalid_json", message=str(exc))],
        ) from exc


def load_and_verify(path: str | Path) -> tuple[Snapshot, VerificationResult]:
    """Load an artifact, verify it, and return the parsed snapshot with the result."""

    document = load_snapshot_document(path)
    verification = verify_snapshot(document)
    return snapshot_from_document(document), verification
