"""Human-readable and JSON renderings of a comparison result."""

from __future__ import annotations

import json
from collections.abc import Callable, Mapping
from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, TypeAlias

from .codec import encode_value
from .config import DEFAULT_SCHEMA, REPORT_DETAIL_LIMIT, InventorySchema
from .models import ComparisonResult, TemporalValue

Lookup: TypeAlias = Callable[[str], "str | None"]
NOT_SET = "(not set)"


def looks_like_reference_id(value: Any) -> bool:
    """Return whether `value` looks like an opaque document id (20+ ASCII alphanumerics)."""

    return isinstance(value, str) and len(value) >= 20 and value.isascii() and value.isalnum()


def lookup_from_mapping(names: Mapping[str, str]) -> Lookup:
    """Wrap an id -> name mapping as a lookup callable."""

    return names.get


def _as_lookup(lookup: Lookup | Mapping[str, str] | None) -> Lookup | None:
    if isinstance(lookup, Mapping):
        return lookup_from_mapping(lookup)
    return lookup


def resolve_reference(value: Any, lookup: Lookup | None) -> Any:
    """Replace an opaque supplier id with its display name when possible."""

    if not looks_like_reference_id(value):
        return value
    name = lookup(value) if lookup is not None else None
    if name:
        return name
    return f"Unknown Supplier ({value[:8]}...)"


def display_value(value: Any) -> str:
    """Render a diffed value for the text report."""

    if value is None or value == "" or value == "undefined":
        return NOT_SET
    if isinstance(value, TemporalValue):
        return value.iso
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (list, dict)):
        return json.dumps(encode_value(value), ensure_ascii=False)
    return str(value)


def referenced_supplier_ids(result: ComparisonResult, schema: InventorySchema = DEFAULT_SCHEMA) -> list[str]:
    """Return the opaque supplier ids a report of `result` would need to resolve."""

    found: dict[str, None] = {}
    for item in result.modified:
        for difference in item.differences:
            if difference.field not in schema.supplier_fields:
                continue
            for value in (difference.backup_value, difference.current_value):
                if looks_like_reference_id(value):
                    found[value] = None
    return list(found)


def _more_line(total: int) -> list[str]:
    if total > REPORT_DETAIL_LIMIT:
        return [f"... and {total - REPORT_DETAIL_LIMIT} more"]
    return []


def render_comparison_report(
    result: ComparisonResult,
    lookup: Lookup | Mapping[str, str] | None = None,
    *,
    schema: InventorySchema = DEFAULT_SCHEMA,
) -> str:
    """Render `result` as a plain-text report.

    Supplier reference fields are resolved through `lookup`, a synchronous
    callable or a mapping; the renderer never fetches names itself. Callers
    whose name source is asynchronous resolve `referenced_supplier_ids(result)`
    first and pass the resulting mapping. Each detail section lists at most
    `REPORT_DETAIL_LIMIT` entries.
    """

    resolve = _as_lookup(lookup)
    counts = result.counts
    lines = [
        "=== BACKUP COMPARISON REPORT ===",
        f"Generated: {result.timestamp}",
        f"Backup Created: {result.backup_date}",
        f"Status: {result.status}",
        f"Integrity Score: {result.integrity_score}%",
        "",
        "=== SUMMARY ===",
        f"Items in Backup: {counts.backup}",
        f"Items in Current DB: {counts.current}",
        f"Truly Identical Items: {counts.matching}",
        f"Modified Items: {counts.modified}",
        f"New Items: {counts.added}",
        f"Deleted Items: {counts.deleted}",
        "",
    ]

    if result.modified:
        lines.append("=== MODIFIED ITEMS ===")
        for item in result.modified[:REPORT_DETAIL_LIMIT]:
            lines.append(f"- {item.id} ({display_value(item.label)})")
            for difference in item.differences:
                backup_value = difference.backup_value
                current_value = difference.current_value
                if difference.field in schema.supplier_fields:
                    backup_value = resolve_reference(backup_value, resolve)
                    current_value = resolve_reference(current_value, resolve)
                lines.append(
                    f'  * {difference.field}: "{display_value(backup_value)}" -> "{display_value(current_value)}"'
                )
        lines.extend(_more_line(len(result.modified)))
        lines.append("")

    if result.added:
        lines.append("=== NEW ITEMS (not in backup) ===")
        for item in result.added[:REPORT_DETAIL_LIMIT]:
            added_on = display_value(item.date_added) if item.date_added not in (None, "") else "Unknown"
            lines.append(f"- {item.id} ({display_value(item.label)}) - Added: {added_on}")
        lines.extend(_more_line(len(result.added)))
        lines.append("")

    if result.deleted:
        lines.append("=== DELETED ITEMS (only in backup) ===")
        for item in result.deleted[:REPORT_DETAIL_LIMIT]:
            lines.append(f"- {item.id} ({display_value(item.label)})")
        lines.extend(_more_line(len(result.deleted)))
        lines.append("")

    if result.field_mismatches:
        lines.append("=== FIELD CHANGE FREQUENCY ===")
        for mismatch in sorted(result.field_mismatches, key=lambda entry: entry.count, reverse=True):
            lines.append(f"- {mismatch.field}: {mismatch.count} changes")

    return "\n".join(lines)


def comparison_to_dict(result: ComparisonResult) -> dict[str, Any]:
    """Return a JSON-friendly payload for `result`."""

    return {
        "timestamp": result.timestamp,
        "backupDate": result.backup_date,
        "status": result.status,
        "message": result.message,
        "integrityScore": result.integrity_score,
        "counts": asdict(result.counts),
        "details": {
            "matching": list(result.matching),
            "modified": [
                {
                    "id": item.id,
                    "label": encode_value(item.label),
                    "differences": [
                        {
                            "field": difference.field,
                            "backup": encode_value(difference.backup_value),
                            "current": encode_value(difference.current_value),
                        }
                        for difference in item.differences
                    ],
                }
                for item in result.modified
            ],
            "added": [
                {
                    "id": item.id,
                    "label": encode_value(item.label),
                    "status": encode_value(item.status),
                    "dateAdded": encode_value(item.date_added),
                }
                for item in result.added
            ],
            "deleted": [
                {"id": item.id, "label": encode_value(item.label), "status": encode_value(item.status)}
                for item in result.deleted
            ],
        },
        "fieldMismatches": [{"field": entry.field, "count": entry.count} for entry in result.field_mismatches],
    }


def report_filename(when: datetime) -> str:
    """Return `backup_comparison_YYYY-MM-DD_HH-MM-SS.txt` for `when` in UTC."""

    if when.tzinfo is not None:
        when = when.astimezone(timezone.utc)
    return f"backup_comparison_{when.strftime('%Y-%m-%d_%H-%M-%S')}.txt"


def write_text_report(text: str, *, output_path: Path) -> None:
    """Write a text report to disk, creating the parent directory."""

    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(text + "\n", encoding="utf-8")
