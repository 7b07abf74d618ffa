"""Archive eligibility, batch packing, dry-run preview, and two-phase commit."""

from __future__ import annotations

import json
import logging
import math
import time
from collections.abc import Callable, Iterable, Sequence
from datetime import datetime, timezone
from typing import Any

from .checksum import checksum_documents
from .codec import record_to_document
from .config import (
    AGE_BUCKETS,
    DEFAULT_COLLECTIONS,
    DEFAULT_POLICY,
    DEFAULT_SCHEMA,
    ArchivePolicy,
    CollectionNames,
    InventorySchema,
)
from .errors import ArchiveInProgress, ConfirmationRequired, ValidationFailed
from .export import parse_price
from .models import (
    ArchiveCandidate,
    ArchiveIssue,
    ArchivePlan,
    ArchiveStats,
    Batch,
    BatchPreview,
    ClassificationResult,
    CommitResult,
    IneligibleRecord,
    PreviewDetails,
    PreviewResult,
    Record,
)
from .normalize import parse_temporal, to_iso_string
from .store import RecordStore

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60
NEAR_CAPACITY_WARNING = "Some batches are close to size limit. Consider archiving fewer items at once."


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _aware(now: datetime | None) -> datetime:
    if now is None:
        return _utcnow()
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now


def round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def days_since(value: Any, now: datetime | None = None) -> int:
    """Whole days elapsed since `value`, rounded up.

    Anything more recent than a day already counts as 1. Missing or
    unparseable dates count as 0.
    """

    moment = parse_temporal(value)
    if moment is None:
        return 0
    elapsed = abs((_aware(now) - moment).total_seconds())
    return math.ceil(elapsed / SECONDS_PER_DAY)


def estimate_record_size(record: Record) -> int:
    """Approximate storage cost: UTF-8 length of the compact JSON document."""

    payload = json.dumps(record_to_document(record), separators=(",", ":"), ensure_ascii=False)
    return len(payload.encode("utf-8", "surrogatepass"))


def default_batch_prefix(now: datetime | None = None) -> str:
    """Return the `YYYY_MM` prefix used for batch ids."""

    moment = _aware(now)
    return f"{moment.year}_{moment.month:02d}"


def classify_records(
    records: Iterable[Record],
    policy: ArchivePolicy = DEFAULT_POLICY,
    *,
    schema: InventorySchema = DEFAULT_SCHEMA,
    now: datetime | None = None,
) -> ClassificationResult:
    """Split status-matching records into eligible and ineligible by age.

    Records whose status differs from `policy.status_filter` appear in neither
    list. Eligibility is strictly older than the threshold.
    """

    moment = _aware(now)
    result = ClassificationResult()
    skipped = 0

    for record in records:
        if record.get(schema.status) != policy.status_filter:
            skipped += 1
            continue

        days = days_since(record.get(schema.last_updated), moment)
        if days > policy.age_threshold_days:
            result.eligible.append(
                ArchiveCandidate(record=record, days_since_update=days, estimated_size_bytes=estimate_record_size(record))
            )
        else:
            result.ineligible.append(
                IneligibleRecord(
                    record=record,
                    days_since_update=days,
                    reason=f"Only {days} days old (needs {policy.age_threshold_days}+ days)",
                )
            )

    logger.info(
        "Classified %d eligible and %d ineligible %s records (%d with other statuses skipped)",
        len(result.eligible),
        len(result.ineligible),
        policy.status_filter,
        skipped,
    )
    return result


def pack_batches(
    candidates: Iterable[ArchiveCandidate],
    max_batch_bytes: int,
    *,
    batch_prefix: str | None = None,
) -> list[Batch]:
    """Greedily pack candidates into size-capped batches in arrival order.

    A batch is closed when the next candidate would push it over the cap and
    it already holds something, so an oversized candidate travels alone and is
    never split. Candidates are never reordered.
    """

    prefix = batch_prefix or default_batch_prefix()
    batches: list[Batch] = []
    current: list[ArchiveCandidate] = []
    current_size = 0

    def close() -> None:
        batches.append(Batch(batch_id=f"{prefix}_batch_{len(batches) + 1}", candidates=current, size_bytes=current_size))

    for candidate in candidates:
        size = candidate.estimated_size_bytes
        if current_size + size > max_batch_bytes and current:
            close()
            current = [candidate]
            current_size = size
        else:
            current.append(candidate)
            current_size += size

    if current:
        close()
    return batches


def archive_statistics(
    candidates: Sequence[ArchiveCandidate],
    policy: ArchivePolicy = DEFAULT_POLICY,
    *,
    schema: InventorySchema = DEFAULT_SCHEMA,
) -> ArchiveStats:
    """Totals, size, age distribution, and extremes of a candidate set."""

    stats = ArchiveStats(items_by_age={label: 0 for label, _, _ in AGE_BUCKETS})
    if not candidates:
        return stats

    stats.item_count = len(candidates)
    total_size = 0
    oldest_days = 0
    newest_days = math.inf

    for candidate in candidates:
        stats.total_value += parse_price(candidate.record.get(schema.retail_price))
        stats.total_cost += parse_price(candidate.record.get(schema.dealers_price))
        total_size += candidate.estimated_size_bytes

        days = candidate.days_since_update
        for label, lower, upper in AGE_BUCKETS:
            if days >= lower and (upper is None or days < upper):
                stats.items_by_age[label] += 1
                break

        if days > oldest_days:
            oldest_days = days
            stats.oldest_record_id = candidate.id
        if days < newest_days:
            newest_days = days
            stats.newest_record_id = candidate.id

    stats.total_margin = stats.total_value - stats.total_cost
    stats.average_price = round_half_up(stats.total_value / stats.item_count)
    stats.total_size_kb = round_half_up(total_size / 1024)
    stats.estimated_batches = math.ceil(stats.total_size_kb / policy.max_batch_kb)
    return stats


def _as_record(item: Record | ArchiveCandidate) -> Record:
    return item.record if isinstance(item, ArchiveCandidate) else item


def validate_selection(
    selected: Iterable[Record | ArchiveCandidate],
    policy: ArchivePolicy = DEFAULT_POLICY,
    *,
    schema: InventorySchema = DEFAULT_SCHEMA,
    now: datetime | None = None,
) -> list[ArchiveIssue]:
    """Return every reason any selected record cannot be archived."""

    moment = _aware(now)
    issues: list[ArchiveIssue] = []
    for item in selected:
        record = _as_record(item)
        if not record.id:
            issues.append(ArchiveIssue(record_id="unknown", message="Missing document ID"))

        status = record.get(schema.status)
        if status != policy.status_filter:
            issues.append(
                ArchiveIssue(
                    record_id=record.id,
                    message=f"Item {record.id} is not {policy.status_filter.lower()} (status: {status})",
                )
            )

        days = days_since(record.get(schema.last_updated), moment)
        if days <= policy.age_threshold_days:
            issues.append(ArchiveIssue(record_id=record.id, message=f"Item {record.id} is only {days} days old"))
    return issues


def _build_preview(
    selected: Sequence[Record | ArchiveCandidate],
    policy: ArchivePolicy,
    schema: InventorySchema,
    moment: datetime,
    batch_prefix: str,
) -> tuple[PreviewResult, list[Batch]]:
    if not selected:
        return PreviewResult(success=False, message="No items selected"), []

    issues = validate_selection(selected, policy, schema=schema, now=moment)
    if issues:
        return PreviewResult(success=False, message="Validation failed", errors=issues), []

    candidates: list[ArchiveCandidate] = []
    for item in selected:
        record = _as_record(item)
        candidates.append(
            ArchiveCandidate(
                record=record,
                days_since_update=days_since(record.get(schema.last_updated), moment),
                estimated_size_bytes=estimate_record_size(record),
            )
        )

    batches = pack_batches(candidates, policy.max_batch_bytes, batch_prefix=batch_prefix)
    stats = archive_statistics(candidates, policy, schema=schema)

    near_capacity = stats.total_size_kb > policy.max_batch_kb * len(batches) * policy.near_capacity_ratio
    details = PreviewDetails(
        item_count=len(candidates),
        batch_count=len(batches),
        total_size_kb=stats.total_size_kb,
        total_value=stats.total_value,
        total_margin=stats.total_margin,
        batches=[
            BatchPreview(
                document_id=batch.batch_id,
                item_count=batch.item_count,
                size_kb=batch.size_kb,
                within_limit=batch.size_kb < policy.max_batch_kb,
            )
            for batch in batches
        ],
        warning=NEAR_CAPACITY_WARNING if near_capacity else None,
    )
    return PreviewResult(success=True, message="Archive preview generated successfully", details=details), batches


def preview_archive(
    selected: Sequence[Record | ArchiveCandidate],
    policy: ArchivePolicy = DEFAULT_POLICY,
    *,
    schema: InventorySchema = DEFAULT_SCHEMA,
    now: datetime | None = None,
) -> PreviewResult:
    """Dry-run an archive of `selected`. Performs no writes.

    Any violation fails the preview and every violation is listed; nothing is
    packed in that case.
    """

    moment = _aware(now)
    preview, _ = _build_preview(selected, policy, schema, moment, default_batch_prefix(moment))
    if preview.success:
        logger.info(
            "Archive preview: %d items in %d batches, %d KB",
            preview.details.item_count,
            preview.details.batch_count,
            preview.details.total_size_kb,
        )
    else:
        logger.info("Archive preview failed: %s (%d issues)", preview.message, len(preview.errors))
    return preview


def preview_to_dict(preview: PreviewResult) -> dict[str, Any]:
    """Return a JSON-friendly payload for `preview`."""

    payload: dict[str, Any] = {
        "success": preview.success,
        "message": preview.message,
        "errors": [issue.message for issue in preview.errors],
    }
    details = preview.details
    if details is not None:
        payload["details"] = {
            "itemCount": details.item_count,
            "batchCount": details.batch_count,
            "totalSizeKB": details.total_size_kb,
            "totalValue": details.total_value,
            "totalMargin": details.total_margin,
            "batches": [
                {
                    "documentId": batch.document_id,
                    "itemCount": batch.item_count,
                    "sizeKB": batch.size_kb,
                    "withinLimit": batch.within_limit,
                }
                for batch in details.batches
            ],
            "warning": details.warning,
        }
    return payload


def confirmation_token(batches: Sequence[Batch], archived_by: str) -> str:
    """Fingerprint of who archives which records in which grouping.

    Planning the same selection again yields the same token, so a token shown
    by one run can confirm the commit of a later run.
    """

    return checksum_documents([{"archivedBy": archived_by, "batches": [batch.record_ids for batch in batches]}])


def plan_archive(
    selected: Sequence[Record | ArchiveCandidate],
    policy: ArchivePolicy = DEFAULT_POLICY,
    *,
    schema: InventorySchema = DEFAULT_SCHEMA,
    now: datetime | None = None,
    archived_by: str = "system",
) -> ArchivePlan:
    """Validate and pack `selected` into a plan that `ArchiveCommitter.commit` can apply.

    Pure. Raises `ValidationFailed` listing every issue when the selection is
    not archivable.
    """

    moment = _aware(now)
    millis = int(moment.timestamp() * 1000)
    preview, batches = _build_preview(selected, policy, schema, moment, f"{default_batch_prefix(moment)}_{millis}")
    if not preview.success or preview.details is None:
        raise ValidationFailed(preview.message, preview.errors)

    planned_at = to_iso_string(moment)
    return ArchivePlan(
        batches=batches,
        details=preview.details,
        archived_by=archived_by,
        planned_at=planned_at,
        confirmation_token=confirmation_token(batches, archived_by),
    )


class ArchiveCommitter:
    """
    Applies archive plans: writes batch documents, then removes the originals.

    Writes only happen when the caller passes the plan's confirmation token.
    One instance runs at most one commit at a time.
    """

    def __init__(
        self,
        store: RecordStore,
        collections: CollectionNames = DEFAULT_COLLECTIONS,
        *,
        test_mode: bool = False,
        schema: InventorySchema = DEFAULT_SCHEMA,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.store = store
        self.collections = collections.for_mode(test_mode)
        self.schema = schema
        self.clock = clock
        self._archive_in_progress = False

    def commit(self, plan: ArchivePlan, confirmation_token: str | None) -> CommitResult:
        """Apply `plan` if `confirmation_token` matches it."""

        if confirmation_token != plan.confirmation_token:
            raise ConfirmationRequired("Archive commit requires the plan's confirmation token")
        if self._archive_in_progress:
            raise ArchiveInProgress("Archive operation already in progress")

        self._archive_in_progress = True
        started = time.monotonic()
        try:
            archives = self.collections.archives
            inventory = self.collections.inventory
            archived_at = to_iso_string(self.clock())
            logger.info("Archiving %d records from %s into %s", len(plan.record_ids), inventory, archives)

            batch_ids: list[str] = []
            for number, batch in enumerate(plan.batches, start=1):
                records = [candidate.record for candidate in batch.candidates]
                document = {
                    "metadata": {
                        "batchNumber": number,
                        "itemCount": batch.item_count,
                        "totalValue": sum(parse_price(record.get(self.schema.retail_price)) for record in records),
                        "totalCost": sum(parse_price(record.get(self.schema.dealers_price)) for record in records),
                        "archivedAt": archived_at,
                        "archivedBy": plan.archived_by,
                        "documentIds": batch.record_ids,
                    },
                    "items": [record_to_document(record) for record in records],
                }
                self.store.put(archives, batch.batch_id, document)
                batch_ids.append(batch.batch_id)
                logger.debug("Wrote archive batch %s (%d items)", batch.batch_id, batch.item_count)

            deleted_ids: list[str] = []
            for record_id in plan.record_ids:
                self.store.delete(inventory, record_id)
                deleted_ids.append(record_id)
                logger.debug("Deleted %s from %s", record_id, inventory)

            duration_ms = int((time.monotonic() - started) * 1000)
            logger.info("Archived %d records in %d batches (%d ms)", len(deleted_ids), len(batch_ids), duration_ms)
            return CommitResult(
                archive_collection=archives,
                source_collection=inventory,
                batch_ids=batch_ids,
                deleted_ids=deleted_ids,
                duration_ms=duration_ms,
            )
        finally:
            self._archive_in_progress = False
