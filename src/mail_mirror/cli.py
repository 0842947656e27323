"""Command-line interface for Mail Mirror.

This module provides the main entry point for the CLI application.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from datetime import date, timedelta

import structlog

from mail_mirror import __version__
from mail_mirror.api.deps import MailboxServices, build_services
from mail_mirror.config import Settings, get_settings
from mail_mirror.exceptions import MailMirrorError, TransientProviderError
from mail_mirror.models import SyncResult
from mail_mirror.store import ensure_schema
from mail_mirror.utils import configure_logging, retry_on_failure

logger = structlog.get_logger()


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="mail-mirror", description="Mail Mirror")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("sync", help="Apply the mailbox change feed to the local mirror")

    unread_parser = subparsers.add_parser(
        "read-unread",
        help="List unread messages from the mailbox and mirror them",
    )
    unread_parser.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Maximum number of messages to list (default: settings unread_listing_limit)",
    )

    backfill_parser = subparsers.add_parser("backfill", help="Mirror every message in a date range")
    backfill_parser.add_argument("--after", type=date.fromisoformat, required=True, help="YYYY-MM-DD")
    backfill_parser.add_argument("--before", type=date.fromisoformat, required=True, help="YYYY-MM-DD")

    subparsers.add_parser("stats", help="Show mirror counters")

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API")
    serve_parser.add_argument("--host", default="127.0.0.1")
    serve_parser.add_argument("--port", type=int, default=8000)

    return parser


def _print_result(result: SyncResult) -> None:
    print(
        f"{result.outcome.value}: +{result.added} -{result.deleted} "
        f"(skipped {result.skipped}), cursor {result.cursor_before} -> {result.cursor_after}, "
        f"{result.total_unread} unread"
    )
    for item in result.data:
        print(f"{item.received_at.isoformat()}\t{item.sender}\t{item.subject}")


async def _services(settings: Settings) -> MailboxServices:
    services = build_services(settings)
    ensure_schema(services.engine)
    await services.ready()
    return services


async def _cmd_sync(settings: Settings) -> int:
    services = await _services(settings)

    @retry_on_failure(max_retries=settings.max_retries, retry_on=(TransientProviderError,))
    async def run() -> SyncResult:
        return await services.coordinator.trigger()

    _print_result(await run())
    return 0


async def _cmd_read_unread(settings: Settings, args: argparse.Namespace) -> int:
    services = await _services(settings)
    result = await services.reconciler.run_full_listing(
        settings.unread_query, limit=args.limit or settings.unread_listing_limit
    )
    _print_result(result)
    return 0


async def _cmd_backfill(settings: Settings, args: argparse.Namespace) -> int:
    if args.before < args.after:
        print("--before must not precede --after", file=sys.stderr)
        return 2

    services = await _services(settings)
    query = f"after:{args.after:%Y/%m/%d} before:{args.before + timedelta(days=1):%Y/%m/%d}"
    result = await services.reconciler.run_full_listing(query, assume_unread=False)
    _print_result(result)
    return 0


def _cmd_stats(settings: Settings) -> int:
    services = build_services(settings)
    ensure_schema(services.engine)
    counters = services.stats.compute()
    print(f"Mirrored messages: {counters.total_inbox}")
    print(f"Unread messages: {counters.total_unread}")
    print(f"Delivered to client: {counters.currently_loaded_unread}")
    print(f"Cursor: {services.cursors.current() or '(none)'}")
    return 0


def _cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    uvicorn.run("mail_mirror.api.main:create_app", factory=True, host=args.host, port=args.port)
    return 0


def main(args: list[str] | None = None) -> int:
    """Main entry point for the Mail Mirror CLI.

    Args:
        args: Command-line arguments. If None, uses sys.argv.

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    if args is None:
        args = sys.argv[1:]

    settings = get_settings()
    configure_logging(settings)

    parser = _build_parser()
    parsed = parser.parse_args(args)

    logger.info("mail_mirror_started", version=__version__, command=parsed.command)

    try:
        if parsed.command == "sync":
            return asyncio.run(_cmd_sync(settings))
        if parsed.command == "read-unread":
            return asyncio.run(_cmd_read_unread(settings, parsed))
        if parsed.command == "backfill":
            return asyncio.run(_cmd_backfill(settings, parsed))
        if parsed.command == "stats":
            return _cmd_stats(settings)
        if parsed.command == "serve":
            return _cmd_serve(parsed)
    except MailMirrorError as e:
        logger.error("command_failed", command=parsed.command, error_type=type(e).__name__, error=str(e))
        print(f"Error: {e}", file=sys.stderr)
        return 1

    logger.error("unknown_command", command=parsed.command)
    return 2


if __name__ == "__main__":
    sys.exit(main())
