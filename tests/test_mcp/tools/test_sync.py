"""Tests for MCP sync tool definitions and handlers.

Covers:
- Tool definitions have valid schemas and annotations
- parse_force() spellings and validation
- sync_now against real replicas (upload, dry run, forced, failure)
- sync_status structured output

Handlers run against a real ``SyncOrchestrator`` over the in-memory
remote from conftest.
"""

from __future__ import annotations

import mcp.types as types
import pytest

from snapsync.core.errors import RemoteUnavailable
from snapsync.mcp.tools.registry import ToolRegistry
from snapsync.mcp.tools.sync import SYNC_SPECS, SYNC_TOOLS, parse_force
from snapsync.sync.models import SyncActionKind


def _text(result: types.CallToolResult) -> str:
    content = result.content[0]
    assert isinstance(content, types.TextContent)
    return content.text


@pytest.fixture
def device(make_device):
    replica = make_device("a")
    replica.seed(prompts=[{"id": "p1", "title": "One", "content": "Body"}])
    return replica


@pytest.fixture
def registry():
    return ToolRegistry(SYNC_SPECS)


# ---------------------------------------------------------------------------
# Definitions
# ---------------------------------------------------------------------------


class TestToolDefinitions:
    def test_names(self):
        assert [t.name for t in SYNC_TOOLS] == ["sync_now", "sync_status"]

    def test_schemas_are_objects(self):
        for tool in SYNC_TOOLS:
            assert tool.inputSchema["type"] == "object"
            assert tool.inputSchema["required"] == []

    def test_force_enum(self):
        force = SYNC_TOOLS[0].inputSchema["properties"]["force"]
        assert "upload_only" in force["enum"]
        assert "download_only" in force["enum"]

    def test_read_only_flags(self):
        assert [spec.read_only for spec in SYNC_SPECS] == [False, True]
        assert SYNC_TOOLS[1].annotations.readOnlyHint is True


class TestParseForce:
    @pytest.mark.parametrize(
        "value, expected",
        [
            (None, None),
            ("", None),
            ("upload", SyncActionKind.UPLOAD_ONLY),
            ("UPLOAD_ONLY", SyncActionKind.UPLOAD_ONLY),
            ("download", SyncActionKind.DOWNLOAD_ONLY),
            ("download_only", SyncActionKind.DOWNLOAD_ONLY),
        ],
    )
    def test_valid(self, value, expected):
        assert parse_force(value) == expected

    def test_merge_rejected(self):
        with pytest.raises(ValueError, match="Invalid force 'merge'"):
            parse_force("merge")


# ---------------------------------------------------------------------------
# sync_now
# ---------------------------------------------------------------------------


class TestSyncNow:
    """Tests for the sync_now handler."""

    async def test_first_sync_uploads(self, device, registry, remote):
        result = await registry.call_tool("sync_now", {}, device.orchestrator)

        assert not result.isError
        assert "Uploaded 1 records" in _text(result)
        assert result.structuredContent["action"] == "upload_only"
        assert "snapsync/snapshot.json" in remote.files

    async def test_dry_run(self, device, registry, remote):
        result = await registry.call_tool(
            "sync_now", {"dry_run": True}, device.orchestrator
        )

        assert not result.isError
        assert result.structuredContent["dry_run"] is True
        assert remote.writes == []

    async def test_forced_download_without_remote(self, device, registry):
        result = await registry.call_tool(
            "sync_now", {"force": "download"}, device.orchestrator
        )

        assert result.isError
        assert result.structuredContent["error_code"] == "remote_not_found"
        assert "Action: The remote has no snapshot yet" in _text(result)

    async def test_invalid_force(self, device, registry, remote):
        result = await registry.call_tool(
            "sync_now", {"force": "sideways"}, device.orchestrator
        )

        assert result.isError
        assert "Error (validation_error)" in _text(result)
        assert remote.writes == []

    async def test_remote_failure_reported(self, device, registry, remote):
        remote.failures["exists"] = RemoteUnavailable("connection refused")

        result = await registry.call_tool("sync_now", {}, device.orchestrator)

        assert result.isError
        assert result.structuredContent["retryable"] is True
        assert "connection refused" in _text(result)


# ---------------------------------------------------------------------------
# sync_status
# ---------------------------------------------------------------------------


class TestSyncStatus:
    async def test_before_any_sync(self, device, registry):
        result = await registry.call_tool("sync_status", {}, device.orchestrator)

        status = result.structuredContent
        assert status["phase"] == "idle"
        assert status["device_id"] == "device-a"
        assert status["sync_count"] == 0
        assert "Last sync:   never" in _text(result)
        assert "no sync in this session" in _text(result)

    async def test_after_sync(self, device, registry):
        await registry.call_tool("sync_now", {}, device.orchestrator)

        result = await registry.call_tool("sync_status", {}, device.orchestrator)

        status = result.structuredContent
        assert status["sync_count"] == 1
        assert status["last_success"] is True
        assert status["last_sync_time"]
