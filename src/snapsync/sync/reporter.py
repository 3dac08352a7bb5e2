"""Sync report formatting functions.

Provides human-readable and machine-readable output for sync runs:

- ``format_sync_result`` -- full post-sync summary.
- ``build_differences`` / ``format_differences`` -- side-by-side view of
  the local and remote snapshots, used for dry runs and conflicts.
- ``format_item_diff`` -- unified diff of one record for manual review.
- ``result_to_json`` -- structured dict for MCP tool output.
"""

from __future__ import annotations

import difflib
import json
from collections import defaultdict
from typing import Any

from .canonical import canonicalize
from .models import DataItem, Snapshot, SyncResult

# Per-record entries listed in a differences dict; counts are never capped.
MAX_LISTED_ITEMS = 50

# ------------------------------------------------------------------
# Human-readable report
# ------------------------------------------------------------------


def format_sync_result(result: SyncResult) -> str:
    """Format a complete sync result as human-readable text.

    Sections are only included when they have content.

    Args:
        result: The completed (or rejected) sync result.

    Returns:
        Multi-line formatted string.
    """
    lines: list[str] = []

    header = "Sync " + ("succeeded" if result.success else "failed")
    if result.backend:
        header += f" ({result.backend})"
    if result.dry_run:
        header += " (DRY RUN)"
    lines.append(header)
    if result.started_at:
        lines.append(f"Started: {result.started_at}")
    if result.completed_at:
        lines.append(f"Completed: {result.completed_at}")
    lines.append("")

    lines.append(result.message)
    if result.action is not None:
        lines.append(f"Action: {result.action.value}")
    if result.reason:
        lines.append(f"Reason: {result.reason}")
    lines.append("")

    if result.counts:
        lines.append("Counts:")
        for key in sorted(result.counts):
            lines.append(f"  {key}: {result.counts[key]}")
        lines.append("")

    if result.conflicts:
        lines.append("Conflicts resolved:")
        for conflict in result.conflicts:
            lines.append(
                f"  {conflict.item_id} [{conflict.strategy.value}]: {conflict.reason}"
            )
        lines.append("")

    if result.differences:
        lines.append(format_differences(result.differences))
        lines.append("")

    if result.errors:
        lines.append("Errors:")
        for error in result.errors:
            lines.append(f"  {error}")
        if result.error_code:
            lines.append(f"  code: {result.error_code}")
        lines.append("")

    return "\n".join(lines).rstrip()


# ------------------------------------------------------------------
# Differences
# ------------------------------------------------------------------


def _changed(local: DataItem, remote: DataItem) -> bool:
    return local.checksum != remote.checksum or local.title != remote.title


def build_differences(local: Snapshot, remote: Snapshot) -> dict[str, Any]:
    """Compare two snapshots record by record.

    Changes are expressed from the local side's point of view: ``added``
    records exist only remotely, ``deleted`` records are live locally but
    absent or tombstoned remotely, ``modified`` records are live on both
    sides with different content.  ``conflicting`` counts the modified ones,
    which are the records a merge has to arbitrate.

    Returns:
        Dict with ``local_total``, ``remote_total``, ``conflicting``,
        ``by_kind`` counts and a capped ``items`` list.
    """
    local_map = {item.id: item for item in local.live_items}
    remote_map = {item.id: item for item in remote.live_items}

    by_kind: dict[str, dict[str, int]] = defaultdict(
        lambda: {"added": 0, "modified": 0, "deleted": 0}
    )
    entries: list[dict[str, Any]] = []

    def record(item: DataItem, change: str) -> None:
        by_kind[item.kind][change] += 1
        entries.append(
            {"id": item.id, "kind": item.kind, "title": item.title, "change": change}
        )

    for item_id in sorted(set(local_map) | set(remote_map)):
        local_item = local_map.get(item_id)
        remote_item = remote_map.get(item_id)
        if local_item is None:
            record(remote_item, "added")
        elif remote_item is None:
            record(local_item, "deleted")
        elif _changed(local_item, remote_item):
            record(local_item, "modified")

    conflicting = sum(counts["modified"] for counts in by_kind.values())
    return {
        "local_total": len(local_map),
        "remote_total": len(remote_map),
        "conflicting": conflicting,
        "by_kind": {kind: dict(counts) for kind, counts in sorted(by_kind.items())},
        "items": entries[:MAX_LISTED_ITEMS],
        "truncated": len(entries) > MAX_LISTED_ITEMS,
    }


def format_differences(diff: dict[str, Any]) -> str:
    """Format a ``build_differences`` dict as text."""
    lines = [
        f"Local records: {diff.get('local_total', 0)}, "
        f"remote records: {diff.get('remote_total', 0)}, "
        f"conflicting: {diff.get('conflicting', 0)}"
    ]
    by_kind = diff.get("by_kind") or {}
    if not by_kind:
        lines.append("No differences.")
        return "\n".join(lines)

    for kind, counts in by_kind.items():
        lines.append(
            f"  {kind}: {counts['added']} added, {counts['modified']} modified, "
            f"{counts['deleted']} deleted"
        )
    items = diff.get("items") or []
    if items:
        lines.append("Records:")
        for entry in items:
            label = entry.get("title") or entry["id"]
            lines.append(f"  [{entry['change'].upper()}] {entry['kind']} {label}")
        if diff.get("truncated"):
            lines.append("  ...")
    if diff.get("backup"):
        lines.append(f"Local backup: {diff['backup']}")
    return "\n".join(lines)


def format_item_diff(local: DataItem, remote: DataItem) -> str:
    """Unified diff of two versions of one record's canonical content."""

    def render(item: DataItem) -> list[str]:
        body = {"title": item.title, "deleted": item.deleted, "content": item.content}
        text = json.dumps(
            canonicalize(body), indent=2, sort_keys=True, ensure_ascii=False
        )
        return text.splitlines(keepends=True)

    diff = difflib.unified_diff(
        render(local),
        render(remote),
        fromfile=f"local: {local.id} ({local.updated_at or 'unknown'})",
        tofile=f"remote: {remote.id} ({remote.updated_at or 'unknown'})",
    )
    text = "".join(diff)
    return text.rstrip() if text else "(no textual differences)"


# ------------------------------------------------------------------
# JSON output
# ------------------------------------------------------------------


def result_to_json(result: SyncResult) -> dict:
    """Convert a sync result to a structured dict for JSON serialisation.

    Suitable for MCP ``structuredContent`` output.
    """
    return result.model_dump(mode="json")
