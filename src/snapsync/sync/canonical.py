"""Canonical form and content hashing.

Everything here is pure: no I/O, no clocks, no randomness.

Canonicalization rules, applied recursively:

1. Object keys are sorted lexicographically.
2. Volatile field names (``VOLATILE_FIELDS``) are dropped when
   ``drop_volatile`` is set.
3. Array elements are sorted by a derived key: the element's ``id`` (or
   ``uuid``) when it is an object carrying one, otherwise its compact
   canonical JSON.

Hashes are SHA-256 hex digests of the compact, key-sorted UTF-8 JSON of the
canonical form.
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Iterable
from typing import Any

from .models import DataItem

VOLATILE_FIELDS = frozenset(
    {"createdAt", "updatedAt", "modifiedAt", "lastModified", "timestamp"}
)

# Record-level keys that may appear inside exported content but describe
# the record rather than its payload.
RECORD_METADATA_KEYS = frozenset(
    {"id", "uuid", "createdAt", "updatedAt", "syncTime", "deleted", "version"}
)


def _dumps(value: Any) -> str:
    return json.dumps(
        value,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=str,
    )


def _sort_key(element: Any) -> tuple[int, str]:
    if isinstance(element, dict):
        for key in ("id", "uuid"):
            if element.get(key) is not None:
                return (0, str(element[key]))
    return (1, _dumps(element))


def canonicalize(value: Any, drop_volatile: bool = True) -> Any:
    """Return the canonical form of *value*.

    Args:
        value: Any JSON-compatible value.
        drop_volatile: Drop ``VOLATILE_FIELDS`` at every depth.

    Returns:
        A new value; the input is not modified.
    """
    if isinstance(value, dict):
        return {
            key: canonicalize(value[key], drop_volatile)
            for key in sorted(value, key=str)
            if not (drop_volatile and key in VOLATILE_FIELDS)
        }
    if isinstance(value, (list, tuple)):
        elements = [canonicalize(v, drop_volatile) for v in value]
        return sorted(elements, key=_sort_key)
    return value


def content_hash(value: Any, drop_volatile: bool = True) -> str:
    """SHA-256 of the canonical form of *value*.

    Anything that is not an object or an array hashes as the empty object.
    """
    if not isinstance(value, (dict, list, tuple)):
        value = {}
    canonical = canonicalize(value, drop_volatile)
    return hashlib.sha256(_dumps(canonical).encode("utf-8")).hexdigest()


def item_checksum(content: Any) -> str:
    """Per-record checksum of *content*.

    Record-level keys (``RECORD_METADATA_KEYS``) found at the top of the
    content are ignored, so the checksum depends only on the payload and
    survives a serialize/deserialize round-trip unchanged.
    """
    if isinstance(content, dict):
        content = {
            k: v for k, v in content.items() if k not in RECORD_METADATA_KEYS
        }
    return content_hash(content)


def data_hash(items: Iterable[DataItem]) -> str:
    """Whole-dataset change-detection hash.

    Only live records contribute, each as ``{id, kind, title, content}``.
    Provenance differs per device and tombstones are indistinguishable from
    absence as far as the user's data is concerned, so both are left out.
    """
    payload = [
        {
            "id": item.id,
            "kind": item.kind,
            "title": item.title,
            "content": item.content,
        }
        for item in items
        if not item.deleted
    ]
    return content_hash(payload)


def snapshot_checksum(items: Iterable[DataItem]) -> str:
    """Hash over per-item checksums taken in id order."""
    ordered = sorted(items, key=lambda item: item.id)
    joined = "".join(item.checksum for item in ordered)
    return hashlib.sha256(joined.encode("utf-8")).hexdigest()
