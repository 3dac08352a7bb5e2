"""Wire format for snapshots and sync metadata.

Both documents are UTF-8 JSON with camelCase field names.  Field order is
irrelevant on read and unknown fields are carried through untouched.  Any
failure to parse raises ``RemoteDataCorrupt``; callers must never read it
as "remote is empty".
"""

from __future__ import annotations

import json
import logging
from typing import TypeVar

from pydantic import BaseModel, ValidationError

from ..core.errors import RemoteDataCorrupt
from .models import Snapshot, SyncMetadata

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


def _encode(model: BaseModel) -> bytes:
    payload = model.model_dump(mode="json", by_alias=True)
    return json.dumps(payload, ensure_ascii=False, indent=2).encode("utf-8")


def _decode(data: bytes, model_cls: type[M], label: str) -> M:
    try:
        payload = json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        logger.error("Remote %s is not valid JSON: %s", label, exc)
        raise RemoteDataCorrupt(
            f"Remote {label} is not valid UTF-8 JSON: {exc}"
        ) from exc
    if not isinstance(payload, dict):
        raise RemoteDataCorrupt(
            f"Remote {label} must be a JSON object, got {type(payload).__name__}"
        )
    try:
        return model_cls.model_validate(payload)
    except ValidationError as exc:
        logger.error("Remote %s failed validation: %s", label, exc)
        raise RemoteDataCorrupt(
            f"Remote {label} has an unexpected structure: "
            f"{exc.error_count()} validation error(s)",
            detail={"errors": exc.errors(include_url=False)},
        ) from exc


def encode_snapshot(snapshot: Snapshot) -> bytes:
    """Serialize *snapshot* to UTF-8 JSON bytes."""
    return _encode(snapshot)


def decode_snapshot(data: bytes) -> Snapshot:
    """Parse snapshot bytes.

    Raises:
        RemoteDataCorrupt: If the bytes are not a valid snapshot document.
    """
    return _decode(data, Snapshot, "snapshot")


def encode_metadata(metadata: SyncMetadata) -> bytes:
    """Serialize *metadata* to UTF-8 JSON bytes."""
    return _encode(metadata)


def decode_metadata(data: bytes) -> SyncMetadata:
    """Parse sync metadata bytes.

    Raises:
        RemoteDataCorrupt: If the bytes are not a valid metadata document.
    """
    return _decode(data, SyncMetadata, "sync metadata")
