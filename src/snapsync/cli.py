"""Command-line interface.

Subcommands:

- ``snapsync sync [--dry-run] [--force upload|download] [--json]``
- ``snapsync status [--json]``
- ``snapsync serve`` -- run the MCP stdio server
- ``snapsync init`` -- write a starter config file

Exit codes: 0 on success, 1 on a failed sync or configuration error,
2 when a sync stopped on an unresolvable conflict.
"""

import argparse
import asyncio
import json
import logging
import sys

from . import __version__
from .config_loader import ensure_config
from .factory import build_orchestrator
from .logger import setup_logging
from .mcp.lifespan import resolve_config
from .mcp.server import add_config_arguments, overrides_from_args
from .mcp.tools.sync import parse_force
from .sync.reporter import format_sync_result, result_to_json

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CONFLICT = 2


def _print_json(data: dict) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False))


def cmd_sync(args: argparse.Namespace) -> int:
    config, _ = resolve_config(overrides_from_args(args))
    orchestrator = build_orchestrator(config)
    result = asyncio.run(
        orchestrator.run(dry_run=args.dry_run, force=parse_force(args.force))
    )

    if args.json:
        _print_json(result_to_json(result))
    else:
        print(format_sync_result(result))

    if result.success:
        return EXIT_OK
    if result.error_code == "unresolvable_conflict":
        return EXIT_CONFLICT
    return EXIT_FAILED


def cmd_status(args: argparse.Namespace) -> int:
    config, sources = resolve_config(overrides_from_args(args))
    orchestrator = build_orchestrator(config)
    status = orchestrator.status()
    status["config_sources"] = sources
    status["dataset"] = config.dataset_path

    if args.json:
        _print_json(status)
        return EXIT_OK

    print(f"Backend:     {status['backend']} ({status['sync_folder']})")
    print(f"Dataset:     {status['dataset']}")
    print(f"Device:      {status['device_id']}")
    print(f"Sync count:  {status['sync_count']}")
    print(f"Last sync:   {status['last_sync_time'] or 'never'}")
    print(f"Config from: {', '.join(sources)}")
    return EXIT_OK


def cmd_serve(args: argparse.Namespace) -> int:
    from .mcp.server import main as serve_main

    overrides = overrides_from_args(args)
    try:
        asyncio.run(serve_main(config_overrides=overrides or None))
    except RuntimeError:
        return EXIT_FAILED
    return EXIT_OK


def cmd_init(args: argparse.Namespace) -> int:
    path = ensure_config()
    print(f"Config file: {path}")
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="snapsync",
        description="Sync a local dataset with a shared remote snapshot",
    )
    parser.add_argument(
        "--version", action="version", version=f"snapsync {__version__}"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    sync_parser = subparsers.add_parser("sync", help="Run one sync cycle")
    add_config_arguments(sync_parser)
    sync_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Decide and report without writing anything",
    )
    sync_parser.add_argument(
        "--force",
        choices=["upload", "download"],
        help="Skip the decision rules and push or pull everything",
    )
    sync_parser.add_argument(
        "--json", action="store_true", help="Print the result as JSON"
    )
    sync_parser.add_argument("--log-file", help="Also write logs to this file")
    sync_parser.set_defaults(func=cmd_sync)

    status_parser = subparsers.add_parser("status", help="Show sync bookkeeping")
    add_config_arguments(status_parser)
    status_parser.add_argument(
        "--json", action="store_true", help="Print status as JSON"
    )
    status_parser.add_argument("--log-file", help="Also write logs to this file")
    status_parser.set_defaults(func=cmd_status)

    serve_parser = subparsers.add_parser("serve", help="Run the MCP stdio server")
    add_config_arguments(serve_parser)
    serve_parser.add_argument("--log-file", help="Log file path")
    serve_parser.set_defaults(func=cmd_serve)

    init_parser = subparsers.add_parser("init", help="Write a starter config file")
    init_parser.set_defaults(func=cmd_init)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command != "serve":
        setup_logging(
            mode="cli",
            debug=getattr(args, "debug", False),
            log_file=getattr(args, "log_file", None),
        )

    try:
        return args.func(args)
    except ValueError as e:
        logger.error("%s", e)
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_FAILED


def run() -> None:
    """Console entry point."""
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(130)


if __name__ == "__main__":
    run()
