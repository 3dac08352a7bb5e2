"""ToolSpec and ToolRegistry for MCP tool dispatch.

Key concepts:
- ToolSpec: Immutable dataclass linking a Tool definition, a read-only flag,
  and an async handler with signature (orchestrator, args) -> CallToolResult.
- ToolRegistry: Filters specs at construction time (``read_only=True``
  drops every tool that can write), then provides list_tools() and
  call_tool() dispatch with error translation.
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

import mcp.types as types

from ...core.errors import SyncError
from ...sync.engine import SyncOrchestrator

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ToolSpec:
    """Immutable definition of a single MCP tool.

    Attributes:
        tool: The MCP Tool definition (name, description, inputSchema).
        read_only: True when the tool never writes locally or remotely.
        handler: Async handler with signature (orchestrator, args) -> CallToolResult.
    """

    tool: types.Tool
    read_only: bool
    handler: Callable[[SyncOrchestrator, dict], Awaitable[types.CallToolResult]]


class ToolRegistry:
    """Registry of ToolSpecs with optional read-only filtering."""

    def __init__(self, specs: list[ToolSpec], read_only: bool = False):
        self._specs: dict[str, ToolSpec] = {
            spec.tool.name: spec
            for spec in specs
            if spec.read_only or not read_only
        }

    def list_tools(self) -> list[types.Tool]:
        """Return list of types.Tool for all registered specs."""
        return [spec.tool for spec in self._specs.values()]

    def tool_count(self) -> int:
        """Return number of registered tools."""
        return len(self._specs)

    async def call_tool(
        self,
        name: str,
        arguments: dict | None,
        orchestrator: SyncOrchestrator,
    ) -> types.CallToolResult:
        """Dispatch tool call to registered handler.

        Sync errors, validation errors and unexpected exceptions become
        structured CallToolResult responses with corrective actions.

        Raises:
            ValueError: If tool name is not registered (unknown or filtered out).
        """
        from .errors import build_error_response, translate_sync_error

        spec = self._specs.get(name)
        if spec is None:
            raise ValueError(f"Unknown tool: {name}")
        args = arguments or {}
        try:
            return await spec.handler(orchestrator, args)
        except SyncError as e:
            logger.warning("Sync error in %s: %s", name, e.message)
            return translate_sync_error(e)
        except ValueError as e:
            return build_error_response(
                "validation_error",
                str(e),
                "Check parameter values and retry.",
            )
        except Exception as e:
            logger.exception("Unexpected error in tool %s", name)
            return build_error_response(
                "server_error",
                str(e),
                "Check the server log and retry.",
            )
