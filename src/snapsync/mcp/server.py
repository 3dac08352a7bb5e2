"""MCP server exposing snapshot sync over stdio.

Transport: stdio (for desktop MCP clients)
Protocol: JSON-RPC 2.0 over MCP
"""

import argparse
import asyncio
import logging
import sys

import mcp.server.stdio
import mcp.types as types
from mcp.server import NotificationOptions, Server
from mcp.server.models import InitializationOptions

from .. import __version__
from ..logger import DEFAULT_LOG_FILE, setup_logging
from ..sync.engine import SyncOrchestrator
from .lifespan import server_lifespan
from .tools import ALL_SPECS, ToolRegistry, build_error_response
from .tools.registry import ToolSpec

logger = logging.getLogger(__name__)

server = Server("snapsync")

# Initialized in main() from the lifespan context
_orchestrator: SyncOrchestrator | None = None
_registry: ToolRegistry | None = None


# ---------------------------------------------------------------------------
# Ping tool (always available, read-only)
# ---------------------------------------------------------------------------


async def _handle_remote_ping(
    orchestrator: SyncOrchestrator, args: dict
) -> types.CallToolResult:
    """Handle remote_ping tool -- test remote store connectivity."""
    try:
        description = await orchestrator.ping()
        return types.CallToolResult(
            content=[
                types.TextContent(
                    type="text",
                    text=f"Remote store reachable: {description}",
                )
            ],
            structuredContent={
                "reachable": True,
                "backend": orchestrator.backend_name,
                "remote": description,
            },
        )
    except Exception as e:
        return types.CallToolResult(
            content=[
                types.TextContent(
                    type="text",
                    text=f"Remote store check failed: {e}. Check the backend settings.",
                )
            ],
            isError=True,
        )


PING_SPEC = ToolSpec(
    tool=types.Tool(
        name="remote_ping",
        description="Check that the configured remote store is reachable",
        inputSchema={
            "type": "object",
            "properties": {},
            "required": [],
        },
    ),
    read_only=True,
    handler=_handle_remote_ping,
)


# ---------------------------------------------------------------------------
# Global accessors
# ---------------------------------------------------------------------------


def get_orchestrator() -> SyncOrchestrator:
    """Get the global SyncOrchestrator instance.

    Raises:
        RuntimeError: If the orchestrator is not initialized
    """
    if _orchestrator is None:
        raise RuntimeError(
            "SyncOrchestrator not initialized. Server lifespan not started."
        )
    return _orchestrator


def set_orchestrator(orchestrator: SyncOrchestrator | None) -> None:
    global _orchestrator
    _orchestrator = orchestrator


def get_registry() -> ToolRegistry:
    """Get the global ToolRegistry instance.

    Raises:
        RuntimeError: If registry is not initialized
    """
    if _registry is None:
        raise RuntimeError("ToolRegistry not initialized.")
    return _registry


def set_registry(registry: ToolRegistry | None) -> None:
    global _registry
    _registry = registry


# ---------------------------------------------------------------------------
# MCP protocol handlers
# ---------------------------------------------------------------------------


@server.list_tools()
async def handle_list_tools() -> list[types.Tool]:
    """List registered sync tools."""
    return get_registry().list_tools()


@server.call_tool()
async def handle_call_tool(
    name: str, arguments: dict | None
) -> types.CallToolResult:
    """Handle tool execution via ToolRegistry dispatch."""
    orchestrator = get_orchestrator()
    try:
        return await get_registry().call_tool(name, arguments, orchestrator)
    except ValueError as e:
        # Unknown or filtered-out tool name
        return build_error_response(
            "unknown_tool",
            str(e),
            "Use list_tools to see available tools.",
        )


# ---------------------------------------------------------------------------
# Server lifecycle
# ---------------------------------------------------------------------------


async def main(config_overrides: dict | None = None):
    """Run the MCP server with stdio transport.

    Args:
        config_overrides: Optional dict with values from CLI flags
            (backend, folder, webdav_url, dataset, state, log_file,
            read_only, debug).
    """
    overrides = dict(config_overrides or {})
    read_only = bool(overrides.pop("read_only", False))

    # Must run before stdio_server so nothing reaches stdout.
    setup_logging(
        mode="mcp",
        debug=overrides.get("debug", False),
        log_file=overrides.get("log_file"),
    )

    all_specs = [PING_SPEC] + ALL_SPECS
    registry = ToolRegistry(all_specs, read_only=read_only)
    logger.info(
        "Registered %d tools (of %d total)",
        registry.tool_count(),
        len(all_specs),
    )
    if read_only:
        print(
            f"Read-only mode: {registry.tool_count()} of {len(all_specs)} tools enabled",
            file=sys.stderr,
        )
    set_registry(registry)

    # set_orchestrator() is called here, not in the lifespan, so that
    # running this file as __main__ updates the same module globals the
    # handlers read.
    async with server_lifespan(config_overrides=overrides or None) as ctx:
        set_orchestrator(ctx["orchestrator"])
        try:
            async with mcp.server.stdio.stdio_server() as (
                read_stream,
                write_stream,
            ):
                init_options = InitializationOptions(
                    server_name="snapsync",
                    server_version=__version__,
                    capabilities=server.get_capabilities(
                        notification_options=NotificationOptions(),
                        experimental_capabilities={},
                    ),
                )
                await server.run(read_stream, write_stream, init_options)
        finally:
            set_orchestrator(None)
            set_registry(None)


def add_config_arguments(parser: argparse.ArgumentParser) -> None:
    """Flags shared by ``snapsync`` and ``snapsync-mcp``."""
    parser.add_argument(
        "--backend",
        choices=["folder", "webdav"],
        help="Remote backend (overrides SNAPSYNC_BACKEND and config files)",
    )
    parser.add_argument(
        "--folder",
        help="Cloud-drive folder for the folder backend (overrides SNAPSYNC_FOLDER_PATH)",
    )
    parser.add_argument(
        "--webdav-url",
        help="WebDAV base URL (overrides SNAPSYNC_WEBDAV_URL); "
        "credentials come from SNAPSYNC_WEBDAV_USERNAME/PASSWORD",
    )
    parser.add_argument(
        "--dataset",
        help="Local dataset JSON file (overrides SNAPSYNC_DATASET)",
    )
    parser.add_argument(
        "--state",
        help="Device identity and bookkeeping file (overrides SNAPSYNC_STATE)",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )


def overrides_from_args(args: argparse.Namespace) -> dict:
    """Collect the config flags that were actually given."""
    overrides = {}
    for key in ("backend", "folder", "webdav_url", "dataset", "state", "log_file"):
        value = getattr(args, key, None)
        if value:
            overrides[key] = value
    if getattr(args, "debug", False):
        overrides["debug"] = True
    return overrides


def run() -> None:
    """Entry point that handles errors gracefully and parses CLI arguments."""
    parser = argparse.ArgumentParser(
        description="snapsync MCP server - sync tools over the Model Context Protocol",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run with configuration from .env / .snapsync/config.yml
  snapsync-mcp

  # Sync through a Dropbox folder
  snapsync-mcp --backend folder --folder ~/Dropbox

  # Expose only read-only tools (sync_status, remote_ping)
  snapsync-mcp --read-only

Note: This server uses stdio transport for JSON-RPC communication with MCP clients.
All user-facing messages are written to stderr.
        """,
    )
    add_config_arguments(parser)
    parser.add_argument(
        "--log-file",
        default=DEFAULT_LOG_FILE,
        help=f"Log file path (default: {DEFAULT_LOG_FILE})",
    )
    parser.add_argument(
        "--read-only",
        action="store_true",
        help="Only expose tools that never write (sync_status, remote_ping)",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"snapsync-mcp version {__version__}",
    )

    args = parser.parse_args()
    config_overrides = overrides_from_args(args)
    if args.read_only:
        config_overrides["read_only"] = True

    if config_overrides:
        print(
            f"Config overrides from CLI: {', '.join(config_overrides)}",
            file=sys.stderr,
        )

    try:
        asyncio.run(main(config_overrides=config_overrides or None))
    except RuntimeError:
        # Error already printed to stderr by lifespan manager
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(0)


if __name__ == "__main__":
    run()
