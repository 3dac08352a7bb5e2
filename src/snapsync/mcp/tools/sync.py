"""MCP tool handlers for snapshot sync.

Defines two tools:

- ``sync_now`` -- run one sync cycle (optionally dry-run or forced).
- ``sync_status`` -- show orchestrator phase and device bookkeeping.
"""

from __future__ import annotations

import logging
from typing import Any

import mcp.types as types

from ...core.async_utils import run_sync
from ...sync.engine import SyncOrchestrator
from ...sync.models import SyncActionKind
from ...sync.reporter import format_sync_result, result_to_json
from .errors import corrective_action
from .registry import ToolSpec

logger = logging.getLogger(__name__)

_FORCE_ALIASES = {
    "upload": SyncActionKind.UPLOAD_ONLY,
    "upload_only": SyncActionKind.UPLOAD_ONLY,
    "download": SyncActionKind.DOWNLOAD_ONLY,
    "download_only": SyncActionKind.DOWNLOAD_ONLY,
}


# ---------------------------------------------------------------------------
# Tool definitions
# ---------------------------------------------------------------------------


SYNC_TOOLS: list[types.Tool] = [
    types.Tool(
        name="sync_now",
        description=(
            "Synchronize the local dataset with the remote snapshot. Decides "
            "automatically between upload, download and merge; stops and "
            "reports differences when the two sides cannot be reconciled."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=True,
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "dry_run": {
                    "type": "boolean",
                    "default": False,
                    "description": "Decide and report without writing anything",
                },
                "force": {
                    "type": "string",
                    "enum": sorted(_FORCE_ALIASES),
                    "description": (
                        "Skip the decision rules and push local data "
                        "(upload_only) or replace it with remote data "
                        "(download_only)"
                    ),
                },
            },
            "required": [],
        },
    ),
    types.Tool(
        name="sync_status",
        description=(
            "Show sync state: current phase, device id, sync count, last sync "
            "time and the outcome of the last run."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=True,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=False,
        ),
        inputSchema={
            "type": "object",
            "properties": {},
            "required": [],
        },
    ),
]


# ---------------------------------------------------------------------------
# Individual handlers
# ---------------------------------------------------------------------------


def parse_force(value: Any) -> SyncActionKind | None:
    """Map a ``force`` argument to an action.

    Raises:
        ValueError: For anything but upload/download spellings.
    """
    if value in (None, ""):
        return None
    action = _FORCE_ALIASES.get(str(value).lower())
    if action is None:
        raise ValueError(
            f"Invalid force '{value}': expected one of {', '.join(sorted(_FORCE_ALIASES))}"
        )
    return action


async def _handle_sync_now(
    orchestrator: SyncOrchestrator, args: dict[str, Any]
) -> types.CallToolResult:
    """Handle the ``sync_now`` tool."""
    dry_run = bool(args.get("dry_run", False))
    force = parse_force(args.get("force"))

    result = await orchestrator.run(dry_run=dry_run, force=force)

    text = format_sync_result(result)
    if not result.success:
        text += "\n\nAction: " + corrective_action(result.error_code, result.retryable)

    return types.CallToolResult(
        content=[types.TextContent(type="text", text=text)],
        structuredContent=result_to_json(result),
        isError=not result.success,
    )


async def _handle_sync_status(
    orchestrator: SyncOrchestrator, args: dict[str, Any]
) -> types.CallToolResult:
    """Handle the ``sync_status`` tool."""
    status = await run_sync(orchestrator.status)

    last = status["last_result"] or "no sync in this session"
    lines = [
        f"Sync status ({status['backend']})",
        f"  Phase:       {status['phase']}",
        f"  Folder:      {status['sync_folder']}",
        f"  Device:      {status['device_id']}",
        f"  Sync count:  {status['sync_count']}",
        f"  Last sync:   {status['last_sync_time'] or 'never'}",
        f"  Last result: {last}",
    ]

    return types.CallToolResult(
        content=[types.TextContent(type="text", text="\n".join(lines))],
        structuredContent=status,
    )


SYNC_SPECS: list[ToolSpec] = [
    ToolSpec(tool=SYNC_TOOLS[0], read_only=False, handler=_handle_sync_now),
    ToolSpec(tool=SYNC_TOOLS[1], read_only=True, handler=_handle_sync_status),
]
