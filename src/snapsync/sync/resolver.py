"""Per-record conflict resolution.

``resolve_item()`` settles one record present on both sides.  The decision
matrix, evaluated in order:

1. Same checksum and same tombstone flag: keep local, no conflict.
2. Both deleted: the later delete wins (ties go to local).
3. Local deleted, remote live: if the remote edit is later than the local
   delete, the record is resurrected with the remote content; otherwise the
   deletion stands.
4. Remote deleted, local live: symmetric to (3).
5. Both live: the later ``updatedAt`` is the base and the other side is
   merged into it with ``merge_content()``.  A merged result that differs
   from the base is recorded as a ``merge`` conflict.  Equal timestamps with
   different content keep local and record a ``local_wins`` conflict.

Resurrections and content merges get ``version = max(local, remote) + 1``
and are stamped with the resolving device.  Every other winner carries
``max(local, remote)``.

Content merge rules (``merge_content``):

- arrays of scalars are unioned, base order first, without duplicates;
- arrays of objects with ids are unioned by id, base copy first;
- free-text fields (``FREE_TEXT_FIELDS``) keep the longer text;
- other scalars prefer the non-empty value, ties go to the base;
- nested objects merge recursively.

Keeping the longer of two diverging texts can drop the shorter edit.  That
is a known approximation.
"""

from __future__ import annotations

import logging
from typing import Any

from .canonical import canonicalize, item_checksum
from .models import (
    ConflictResolution,
    DataItem,
    ItemKind,
    ItemResolution,
    ResolutionStrategy,
)
from .timestamps import parse_timestamp, utc_now_iso

logger = logging.getLogger(__name__)

FREE_TEXT_FIELDS: dict[str, frozenset[str]] = {
    ItemKind.PROMPT.value: frozenset({"content", "description", "notes"}),
    ItemKind.CATEGORY.value: frozenset({"description"}),
    ItemKind.AI_CONFIG.value: frozenset({"systemPrompt", "description"}),
    ItemKind.HISTORY.value: frozenset({"prompt", "result", "response"}),
}

_SCALARS = (str, int, float, bool, type(None))


# ---------------------------------------------------------------------------
# Content merge
# ---------------------------------------------------------------------------


def _is_empty(value: Any) -> bool:
    return value is None or value == "" or value == [] or value == {}


def _union(base: list, other: list) -> list:
    merged = list(base)
    for value in other:
        if value not in merged:
            merged.append(value)
    return merged


def _merge_lists(kind: str, base: list, other: list) -> list:
    if all(isinstance(v, _SCALARS) for v in base + other):
        return _union(base, other)

    def _key(v: Any) -> Any:
        return v.get("id") if isinstance(v, dict) else None

    if all(_key(v) is not None for v in base + other):
        merged = list(base)
        positions = {_key(v): i for i, v in enumerate(merged)}
        for value in other:
            index = positions.get(_key(value))
            if index is None:
                positions[_key(value)] = len(merged)
                merged.append(value)
            else:
                merged[index] = merge_content(kind, merged[index], value)
        return merged
    return list(base)


def _merge_value(kind: str, field: str, base: Any, other: Any) -> Any:
    if base == other:
        return base
    if isinstance(base, dict) and isinstance(other, dict):
        return merge_content(kind, base, other)
    if isinstance(base, list) and isinstance(other, list):
        return _merge_lists(kind, base, other)
    if (
        field in FREE_TEXT_FIELDS.get(kind, frozenset())
        and isinstance(base, str)
        and isinstance(other, str)
    ):
        return other if len(other) > len(base) else base
    if _is_empty(base) and not _is_empty(other):
        return other
    return base


def merge_content(kind: str, base: Any, other: Any) -> Any:
    """Merge *other* into *base* using the type-aware rules.

    Neither input is modified.

    Args:
        kind: Record kind, selects the free-text fields.
        base: Content of the newer side.
        other: Content of the older side.

    Returns:
        The merged content.
    """
    if not (isinstance(base, dict) and isinstance(other, dict)):
        return other if _is_empty(base) and not _is_empty(other) else base

    merged: dict[str, Any] = {}
    for field, value in base.items():
        if field in other:
            merged[field] = _merge_value(kind, field, value, other[field])
        else:
            merged[field] = value
    for field in sorted(set(other) - set(base), key=str):
        merged[field] = other[field]
    return merged


# ---------------------------------------------------------------------------
# Record resolution
# ---------------------------------------------------------------------------


def _with_version(item: DataItem, version: int) -> DataItem:
    if item.metadata.version == version:
        return item
    return item.model_copy(
        update={"metadata": item.metadata.model_copy(update={"version": version})}
    )


def _stamp(item: DataItem, version: int, device_id: str) -> DataItem:
    return item.model_copy(
        update={
            "metadata": item.metadata.model_copy(
                update={
                    "version": version,
                    "last_modified_by_device_id": device_id,
                }
            )
        }
    )


def _conflict(
    item_id: str, strategy: ResolutionStrategy, reason: str, now: str
) -> ConflictResolution:
    return ConflictResolution(
        item_id=item_id, strategy=strategy, timestamp=now, reason=reason
    )


def resolve_item(
    local: DataItem,
    remote: DataItem,
    device_id: str,
    now: str | None = None,
) -> ItemResolution:
    """Settle one record present on both sides.

    Deterministic: the same inputs always yield the same winner and the
    same conflict strategy.  Only the audit timestamp depends on *now*.

    Args:
        local: Local copy of the record.
        remote: Remote copy of the record (same id).
        device_id: Device performing the resolution.
        now: Audit timestamp; defaults to the current time.

    Returns:
        ``ItemResolution`` with the winner and an optional conflict record.
    """
    now = now or utc_now_iso()
    local_time = parse_timestamp(local.updated_at)
    remote_time = parse_timestamp(remote.updated_at)
    top_version = max(local.metadata.version, remote.metadata.version)

    local_sum = item_checksum(local.content)
    remote_sum = item_checksum(remote.content)

    # 1. Identical content and tombstone state
    if local_sum == remote_sum and local.deleted == remote.deleted:
        return ItemResolution(winner=_with_version(local, top_version))

    # 2. Both deleted: later delete wins
    if local.deleted and remote.deleted:
        winner = remote if remote_time > local_time else local
        return ItemResolution(winner=_with_version(winner, top_version))

    # 3. Local tombstone vs remote edit
    if local.deleted:
        if remote_time > local_time:
            logger.info("Resurrecting %s: remote edit is newer than local delete", local.id)
            return ItemResolution(
                winner=_stamp(remote, top_version + 1, device_id)
            )
        return ItemResolution(winner=_with_version(local, top_version))

    # 4. Remote tombstone vs local edit
    if remote.deleted:
        if local_time > remote_time:
            logger.info("Resurrecting %s: local edit is newer than remote delete", local.id)
            return ItemResolution(
                winner=_stamp(local, top_version + 1, device_id)
            )
        return ItemResolution(winner=_with_version(remote, top_version))

    # 5. Both live
    if local_time == remote_time:
        return ItemResolution(
            winner=_with_version(local, top_version),
            conflict=_conflict(
                local.id,
                ResolutionStrategy.LOCAL_WINS,
                "Equal timestamps with different content; keeping local copy",
                now,
            ),
        )

    if local_time > remote_time:
        base, other, base_side = local, remote, "local"
    else:
        base, other, base_side = remote, local, "remote"

    merged_content = merge_content(local.kind, base.content, other.content)
    merged_tags = base.metadata.tags
    if other.metadata.tags:
        merged_tags = _union(base.metadata.tags or [], other.metadata.tags)

    if (
        canonicalize(merged_content, drop_volatile=False)
        == canonicalize(base.content, drop_volatile=False)
        and merged_tags == base.metadata.tags
    ):
        return ItemResolution(winner=_with_version(base, top_version))

    title = base.title
    if isinstance(merged_content, dict):
        merged_title = merged_content.get("title", merged_content.get("name"))
        if merged_title is not None:
            title = str(merged_title)

    winner = base.model_copy(
        update={
            "title": title,
            "content": merged_content,
            "metadata": base.metadata.model_copy(
                update={
                    "checksum": item_checksum(merged_content),
                    "version": top_version + 1,
                    "last_modified_by_device_id": device_id,
                    "tags": merged_tags,
                }
            ),
        }
    )
    other_side = "remote" if base_side == "local" else "local"
    return ItemResolution(
        winner=winner,
        conflict=_conflict(
            local.id,
            ResolutionStrategy.MERGE,
            f"Merged {other_side} fields into newer {base_side} copy",
            now,
        ),
    )
