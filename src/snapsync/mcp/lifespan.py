"""Lifespan management for MCP server startup and shutdown."""

import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from dotenv import load_dotenv
from pydantic import ValidationError

from ..config import Config, load_config
from ..config_loader import discover_config_files, load_hierarchical_config
from ..config_schema import build_config, to_fallbacks
from ..factory import build_orchestrator, build_scheduler

logger = logging.getLogger(__name__)


def _stderr_print(msg: str) -> None:
    """Print message to stderr for user feedback (safe in MCP mode)."""
    print(msg, file=sys.stderr, flush=True)


def resolve_config(overrides: dict[str, Any] | None = None) -> tuple[Config, list[str]]:
    """Merge .env, YAML and CLI overrides into a validated ``Config``.

    Returns:
        The config and a list describing which sources contributed.

    Raises:
        ValueError: If the merged configuration is invalid.
    """
    # .env first so ${VAR} interpolation in YAML can see its values.
    load_dotenv()

    sources: list[str] = []
    yaml_fallbacks: dict[str, Any] | None = None
    config_files = discover_config_files()
    if config_files:
        try:
            unified = build_config(load_hierarchical_config())
        except ValidationError as e:
            raise ValueError(f"Invalid config file {config_files[0]}: {e}") from e
        yaml_fallbacks = to_fallbacks(unified)
        sources.append(f"config file: {config_files[0]}")

    overrides = overrides or {}
    config = load_config(
        backend=overrides.get("backend"),
        folder=overrides.get("folder"),
        webdav_url=overrides.get("webdav_url"),
        dataset=overrides.get("dataset"),
        state=overrides.get("state"),
        debug=overrides.get("debug", False),
        log_file=overrides.get("log_file"),
        yaml_fallbacks=yaml_fallbacks,
    )
    if overrides:
        sources.append("CLI arguments")
    sources.append("environment variables")
    return config, sources


@asynccontextmanager
async def server_lifespan(
    config_overrides: dict[str, Any] | None = None,
) -> AsyncIterator[dict[str, Any]]:
    """
    Manage server startup and shutdown lifecycle.

    On startup:
    - Resolve configuration: CLI > env vars (.env) > YAML config > defaults
    - Build the orchestrator and check that the remote is reachable
    - Fail fast if the remote is misconfigured or unreachable
    - Start the auto-sync scheduler when enabled

    On shutdown:
    - Stop the scheduler

    Args:
        config_overrides: Optional dict with values from CLI flags.

    Yields:
        Dict with 'orchestrator', 'scheduler' (or None) and 'config'.

    Raises:
        RuntimeError: If configuration is invalid or the remote check fails.
    """
    logger.info("MCP server starting...")
    _stderr_print("snapsync MCP server starting...")

    try:
        config, sources = resolve_config(config_overrides)
        source_desc = ", ".join(sources)
        logger.info("Configuration loaded from: %s", source_desc)
        _stderr_print(f"  Configuration loaded from: {source_desc}")
        _stderr_print(f"  Backend: {config.backend}")
    except ValueError as e:
        logger.error("Configuration error: %s", e)
        _stderr_print(f"ERROR: Configuration error: {e}")
        raise RuntimeError(f"Configuration error: {e}") from e

    logger.info("Checking remote store...")
    _stderr_print("  Checking remote store...")
    orchestrator = build_orchestrator(config)
    try:
        description = await orchestrator.ping()
    except Exception as e:
        logger.error("Remote check failed: %s", e)
        _stderr_print("ERROR: Remote check failed.")
        _stderr_print(f"  {e}")
        raise RuntimeError(f"Remote check failed: {e}") from e
    logger.info("Remote reachable: %s", description)
    _stderr_print(f"  Remote reachable: {description}")

    scheduler = None
    if config.auto_sync:
        scheduler = build_scheduler(config, orchestrator)
        scheduler.start()
        _stderr_print(f"  Auto-sync every {config.interval_minutes:g} minutes")

    _stderr_print("Server ready. Waiting for MCP client connection...")
    try:
        yield {
            "orchestrator": orchestrator,
            "scheduler": scheduler,
            "config": config,
        }
    finally:
        if scheduler is not None:
            await scheduler.stop()
        logger.info("MCP server shutting down")
        _stderr_print("snapsync MCP server shutting down.")
