"""Command line entry point.

Commands:

- ``notesync serve`` -- run the HTTP API with the sync, reaper and backup timers.
- ``notesync sync`` -- run one sync cycle and print its outcome.
- ``notesync backup [NAME]`` -- snapshot the database now.
- ``notesync check`` -- print the local content hashes.
- ``notesync init`` -- create the database and a starter config file.
"""

import argparse
import logging
import os
import sys

import uvicorn

from . import __version__
from .config_loader import ensure_config
from .context import AppContext, build_context, load_runtime_config
from .logger import setup_logging
from .server.app import create_app
from .sync.reporter import format_entity_hashes, format_sync_outcome

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="notesync",
        description="notesync - two-party replication of a note database",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Create ~/.notesync/document.db and .notesync/config.yml
  notesync init

  # Serve the sync API and sync with a peer every minute
  notesync serve --server-host https://notes.example.com

  # One-off cycle
  notesync sync --verbose
        """,
    )
    parser.add_argument("--server-host", help="Override the sync peer URL")
    parser.add_argument("--data-dir", help="Override the data directory")
    parser.add_argument(
        "--insecure",
        action="store_true",
        help="Skip SSL certificate verification (use only for development)",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument("--log-file", help="Also write logs to this file")
    parser.add_argument(
        "--log-format",
        choices=("text", "json"),
        default="text",
        help="Log output format (default: text)",
    )
    parser.add_argument(
        "--version", action="version", version=f"notesync version {__version__}"
    )

    commands = parser.add_subparsers(dest="command", required=True)

    serve = commands.add_parser("serve", help="Run the sync API server")
    serve.add_argument("--host", help="Bind address (default from config: 127.0.0.1)")
    serve.add_argument("--port", type=int, help="Bind port (default from config: 8480)")

    sync = commands.add_parser("sync", help="Run one sync cycle")
    sync.add_argument("--verbose", action="store_true", help="Print the cycle log")
    sync.add_argument(
        "--full", action="store_true", help="Reset cursors and resend everything"
    )

    backup = commands.add_parser("backup", help="Back up the database now")
    backup.add_argument("name", nargs="?", default="now", help="Backup name")

    commands.add_parser("check", help="Print content hashes of the local database")
    commands.add_parser("init", help="Create the database and a starter config")

    return parser


def _overrides(args: argparse.Namespace) -> dict:
    overrides: dict = {}
    if args.server_host:
        overrides["sync_server_host"] = args.server_host
    if args.data_dir:
        overrides["data_dir"] = args.data_dir
    if args.insecure:
        overrides["insecure"] = True
    if args.debug:
        overrides["debug"] = True
    return overrides


def _serve(context: AppContext, host: str, port: int) -> int:
    app = create_app(context, start_background=True)
    logger.info("Serving sync API on %s:%d", host, port)
    uvicorn.run(app, host=host, port=port, log_config=None)
    return 0


def _sync(context: AppContext, args: argparse.Namespace) -> int:
    if args.full:
        outcome = context.session.force_full_sync()
    else:
        outcome = context.scheduler.tick()
    print(format_sync_outcome(outcome, verbose=args.verbose))
    return 0 if outcome.success else 1


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)

    try:
        config, unified, sources = load_runtime_config(_overrides(args))
    except ValueError as e:
        print(f"ERROR: Configuration error: {e}", file=sys.stderr)
        return 2

    os.environ.setdefault("LOG_LEVEL", unified.logging.level)
    setup_logging(
        mode="server" if args.command == "serve" else "cli",
        debug=config.debug,
        log_file=args.log_file or unified.logging.file,
        debug_format=args.log_format,
    )
    logger.debug("Configuration loaded from: %s", ", ".join(sources))

    if args.command == "init":
        config_path = ensure_config()
        print(f"Config: {config_path}")

    context = build_context(config, backup_enabled=unified.backup.enabled)
    try:
        match args.command:
            case "serve":
                return _serve(
                    context,
                    args.host or unified.server.host,
                    args.port or unified.server.port,
                )
            case "sync":
                return _sync(context, args)
            case "backup":
                path = context.backups.backup_now(args.name)
                print(f"Backup written to {path}")
                return 0
            case "check":
                print(
                    format_entity_hashes(
                        context.hasher.get_entity_hashes(), context.changes.max_id()
                    )
                )
                return 0
            case "init":
                print(f"Database: {context.store.db_path}")
                print(f"Source id: {context.store.source_id}")
                return 0
            case _:
                raise ValueError(f"Unknown command: {args.command}")
    except ValueError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2
    finally:
        context.close()


def run() -> None:
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(130)


if __name__ == "__main__":
    run()
