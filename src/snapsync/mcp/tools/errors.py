"""Error response builders for MCP tool handlers.

Structured error responses carry a corrective action so an agent can
recover without human help.
"""

import mcp.types as types

from ...core.errors import RemoteConfigurationError, SyncError


def build_error_response(
    error_type: str, message: str, corrective_action: str
) -> types.CallToolResult:
    """Build a structured error response with corrective action.

    Args:
        error_type: Error category (e.g. remote_unavailable, validation_error)
        message: Human-readable error description
        corrective_action: Specific action the agent can take to resolve the error

    Returns:
        CallToolResult with isError=True

    Examples:
        >>> build_error_response("remote_unavailable", "timed out", "Retry later.")
        CallToolResult(content=[TextContent(...)], isError=True)
    """
    error_text = f"Error ({error_type}): {message}\n\nAction: {corrective_action}"

    return types.CallToolResult(
        content=[types.TextContent(type="text", text=error_text)],
        isError=True,
    )


def corrective_action(error_code: str | None, retryable: bool = True) -> str:
    """Suggest what to do about a failed sync, by error code."""
    match error_code:
        case "remote_unavailable" if not retryable:
            return "Check the remote URL, credentials and permissions, then retry."
        case "remote_unavailable":
            return "The remote could not be reached; retry later or run remote_ping."
        case "remote_not_found":
            return "The remote has no snapshot yet; run sync_now without force first."
        case "remote_data_corrupt":
            return (
                "The remote snapshot cannot be parsed. Inspect it, or overwrite "
                "it with sync_now(force='upload_only')."
            )
        case "local_export_failure" | "local_import_failure":
            return "Check that the local dataset file is readable and writable."
        case "concurrent_sync_rejected":
            return "Another sync is running; check sync_status and retry when idle."
        case "unresolvable_conflict":
            return (
                "Review the differences, then choose a side with "
                "sync_now(force='upload_only') or sync_now(force='download_only')."
            )
        case _:
            return "Check the server log and retry."


def translate_sync_error(error: SyncError) -> types.CallToolResult:
    """Translate a ``SyncError`` raised by a tool into an error response."""
    retryable = not isinstance(error, RemoteConfigurationError)
    return build_error_response(
        error.code, error.message, corrective_action(error.code, retryable)
    )
