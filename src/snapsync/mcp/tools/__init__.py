"""MCP tool handlers for sync operations.

Tools wrap the ``SyncOrchestrator`` with async handlers and structured
error responses.
"""

from .errors import build_error_response, corrective_action, translate_sync_error
from .registry import ToolRegistry, ToolSpec
from .sync import SYNC_SPECS, SYNC_TOOLS, parse_force

ALL_SPECS: list[ToolSpec] = list(SYNC_SPECS)

__all__ = [
    "build_error_response",
    "corrective_action",
    "translate_sync_error",
    # Registry
    "ToolSpec",
    "ToolRegistry",
    # Specs
    "ALL_SPECS",
    "SYNC_SPECS",
    "SYNC_TOOLS",
    "parse_force",
]
