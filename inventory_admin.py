"""Command-line runner for inventory snapshots, comparisons, and archiving.

Collections are read from a directory of `<collection>.json` files (see
`JsonDirectoryStore`). Snapshots are written under `backups/` by default.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from collections.abc import Sequence
from datetime import datetime, timezone
from pathlib import Path

from inventory_snapshot.archive import (
    ArchiveCommitter,
    classify_records,
    plan_archive,
    preview_archive,
    preview_to_dict,
)
from inventory_snapshot.config import DEFAULT_COLLECTIONS, DEFAULT_POLICY, ArchivePolicy, CollectionNames
from inventory_snapshot.errors import (
    ConfirmationRequired,
    SnapshotInvalid,
    SourceUnavailable,
    ValidationFailed,
)
from inventory_snapshot.export import DEFAULT_OUTPUT_DIR, SnapshotExporter
from inventory_snapshot.models import PreviewResult, Record
from inventory_snapshot.reconcile import compare_with_store
from inventory_snapshot.report import (
    comparison_to_dict,
    referenced_supplier_ids,
    render_comparison_report,
    report_filename,
    write_text_report,
)
from inventory_snapshot.store import JsonDirectoryStore, RecordStore, build_lookup, fetch_collection
from inventory_snapshot.verify import load_and_verify

logger = logging.getLogger("inventory_admin")

DEFAULT_STORE_DIR = Path("data")
DEFAULT_SUPPLIER_COLLECTION = "suppliers"

EXIT_OK = 0
EXIT_INVALID = 1
EXIT_SOURCE_ERROR = 2


def _collections(args: argparse.Namespace) -> CollectionNames:
    return DEFAULT_COLLECTIONS.for_mode(args.test_mode)


def _policy(args: argparse.Namespace) -> ArchivePolicy:
    return ArchivePolicy(
        status_filter=args.status,
        age_threshold_days=args.age_days,
        max_batch_bytes=args.max_batch_kb * 1024,
        near_capacity_ratio=DEFAULT_POLICY.near_capacity_ratio,
    )


def _select(records: list[Record], ids: Sequence[str] | None, policy: ArchivePolicy) -> list[Record]:
    """Pick the requested records, or every eligible record when no ids are given."""

    if not ids:
        return [candidate.record for candidate in classify_records(records, policy).eligible]

    by_id = {record.id: record for record in records}
    missing = [record_id for record_id in ids if record_id not in by_id]
    if missing:
        raise ValidationFailed(f"Unknown record ids: {', '.join(missing)}")
    return [by_id[record_id] for record_id in ids]


def run_export(args: argparse.Namespace, store: RecordStore) -> int:
    """Export a collection to a snapshot artifact."""

    collection = args.collection or _collections(args).inventory
    exporter = SnapshotExporter(store, args.output_dir)
    result = exporter.export(collection, statistics_only=args.statistics_only)
    metadata = result.snapshot.metadata

    if result.path is None:
        stats = metadata.statistics
        print(
            json.dumps(
                {
                    "collection": metadata.collection,
                    "documentCount": metadata.document_count,
                    "checksum": metadata.checksum,
                    "totalItems": stats.total_items,
                    "byStatus": stats.by_status,
                    "byManufacturer": stats.by_manufacturer,
                    "totalValue": stats.total_value,
                    "oldestItem": stats.oldest_item,
                    "newestItem": stats.newest_item,
                },
                indent=2,
                sort_keys=True,
            )
        )
    else:
        print(f"Wrote snapshot: {result.path} ({metadata.document_count} records, checksum {metadata.checksum})")
    return EXIT_OK


def run_verify(args: argparse.Namespace, store: RecordStore) -> int:
    """Verify a snapshot artifact."""

    _, verification = load_and_verify(args.snapshot)
    print(f"Snapshot valid: {verification.document_count} documents, checksum {verification.checksum}")
    return EXIT_OK


def run_compare(args: argparse.Namespace, store: RecordStore) -> int:
    """Compare a verified snapshot with the live collection."""

    snapshot, _ = load_and_verify(args.snapshot)
    result = compare_with_store(snapshot, store, args.collection)

    if args.json:
        print(json.dumps(comparison_to_dict(result), indent=2, sort_keys=True))
        return EXIT_OK

    lookup = build_lookup(store, args.suppliers) if referenced_supplier_ids(result) else None
    text = render_comparison_report(result, lookup)
    if args.output is None:
        print(text)
        return EXIT_OK

    output_path = args.output
    if output_path.is_dir():
        output_path = output_path / report_filename(datetime.now(timezone.utc))
    write_text_report(text, output_path=output_path)
    print(f"Wrote comparison report: {output_path}")
    return EXIT_OK


def run_archive_preview(args: argparse.Namespace, store: RecordStore) -> int:
    """Print the dry-run archive preview as JSON."""

    policy = _policy(args)
    records = fetch_collection(store, _collections(args).inventory)
    preview = preview_archive(_select(records, args.ids, policy), policy)
    print(json.dumps(preview_to_dict(preview), indent=2, sort_keys=True))
    return EXIT_OK if preview.success else EXIT_INVALID


def run_archive_commit(args: argparse.Namespace, store: RecordStore) -> int:
    """Plan an archive and apply it once confirmed with the plan token."""

    policy = _policy(args)
    names = _collections(args)
    records = fetch_collection(store, names.inventory)
    plan = plan_archive(_select(records, args.ids, policy), policy, archived_by=args.archived_by)

    if args.confirm is None:
        planned = PreviewResult(success=True, message="Archive plan ready", details=plan.details)
        print(json.dumps(preview_to_dict(planned), indent=2, sort_keys=True))
        print(f"Re-run with --confirm {plan.confirmation_token} to archive {len(plan.record_ids)} records.")
        return EXIT_INVALID

    committer = ArchiveCommitter(store, DEFAULT_COLLECTIONS, test_mode=args.test_mode)
    result = committer.commit(plan, args.confirm)
    print(
        f"Archived {len(result.deleted_ids)} records from {result.source_collection} "
        f"into {len(result.batch_ids)} batches in {result.archive_collection}"
    )
    return EXIT_OK


def _add_archive_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--ids", nargs="+", help="Record ids to archive (default: every eligible record)")
    parser.add_argument("--status", default=DEFAULT_POLICY.status_filter, help="Status a record must have")
    parser.add_argument(
        "--age-days",
        type=int,
        default=DEFAULT_POLICY.age_threshold_days,
        help="Records must be older than this many days",
    )
    parser.add_argument(
        "--max-batch-kb",
        type=int,
        default=DEFAULT_POLICY.max_batch_bytes // 1024,
        help="Size cap of one archive batch in KB",
    )


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments."""

    parser = argparse.ArgumentParser(description="Export, verify, compare, and archive inventory collections.")
    parser.add_argument("--store-dir", type=Path, default=DEFAULT_STORE_DIR, help="Directory of collection JSON files")
    parser.add_argument("--test-mode", action="store_true", help="Use the _test collections")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    export = subparsers.add_parser("export", help="Export a collection to a snapshot file")
    export.add_argument("--collection", help="Collection to export (default: inventory)")
    export.add_argument("--output-dir", type=Path, default=DEFAULT_OUTPUT_DIR, help="Snapshot output directory")
    export.add_argument("--statistics-only", action="store_true", help="Print statistics without writing a file")
    export.set_defaults(handler=run_export)

    verify = subparsers.add_parser("verify", help="Verify a snapshot file")
    verify.add_argument("snapshot", type=Path, help="Path to snapshot JSON")
    verify.set_defaults(handler=run_verify)

    compare = subparsers.add_parser("compare", help="Compare a snapshot with the live collection")
    compare.add_argument("snapshot", type=Path, help="Path to snapshot JSON")
    compare.add_argument("--collection", help="Live collection (default: the one named in the snapshot)")
    compare.add_argument("--suppliers", default=DEFAULT_SUPPLIER_COLLECTION, help="Collection of supplier names")
    compare.add_argument("--output", type=Path, help="Write the text report to this file or directory")
    compare.add_argument("--json", action="store_true", help="Print the comparison as JSON")
    compare.set_defaults(handler=run_compare)

    preview = subparsers.add_parser("archive-preview", help="Dry-run an archive")
    _add_archive_arguments(preview)
    preview.set_defaults(handler=run_archive_preview)

    commit = subparsers.add_parser("archive-commit", help="Archive records after confirmation")
    _add_archive_arguments(commit)
    commit.add_argument("--archived-by", default="system", help="Name recorded on archive batches")
    commit.add_argument("--confirm", help="Confirmation token printed by a run without --confirm")
    commit.set_defaults(handler=run_archive_commit)

    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    """Entrypoint for command-line execution."""

    args = _parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    store = JsonDirectoryStore(args.store_dir)

    try:
        return args.handler(args, store)
    except SnapshotInvalid as exc:
        logger.error("Snapshot verification failed: %s", exc)
        for issue in exc.issues:
            print(f"  - {issue.message}", file=sys.stderr)
        return EXIT_INVALID
    except ValidationFailed as exc:
        logger.error("Archive selection rejected: %s", exc)
        for issue in exc.issues:
            print(f"  - {issue.message}", file=sys.stderr)
        return EXIT_INVALID
    except ConfirmationRequired as exc:
        logger.error("%s", exc)
        return EXIT_INVALID
    except SourceUnavailable as exc:
        logger.error("%s", exc)
        return EXIT_SOURCE_ERROR


if __name__ == "__main__":
    raise SystemExit(main())
