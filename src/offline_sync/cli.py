"""
Command line inspection of a local cache file.

Commands:
    status    checkpoint, last sync time and queue size
    pending   queued mutations in drain order
    records   cached records and their pending flags
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from rich.console import Console
from rich.table import Table

from . import __version__
from .storage.sqlite_cache import SQLiteLocalCache
from .utils.config import SyncConfig, load_config
from .utils.errors import SyncError
from .utils.logging import get_logger, setup_logging


logger = get_logger("offline-sync.cli")
console = Console()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="offline-sync",
        description="Inspect an offline-sync local cache"
    )
    parser.add_argument("--version", action="version", version=f"offline-sync {__version__}")
    parser.add_argument("--config", type=str, help="Config file path")
    parser.add_argument("--cache", type=str, help="Cache database path (overrides config)")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument("--json", action="store_true", help="Print JSON instead of tables")

    commands = parser.add_subparsers(dest="command", required=True)
    commands.add_parser("status", help="Show sync checkpoint and queue size")
    commands.add_parser("pending", help="List queued mutations in drain order")

    records = commands.add_parser("records", help="List cached records")
    records.add_argument("--type", dest="record_type", help="Only records of this type")
    records.add_argument("--pending-only", action="store_true", help="Only records awaiting sync")

    return parser


async def collect_status(cache: SQLiteLocalCache) -> Dict[str, Any]:
    last_sync_at = await cache.get_last_sync_at()
    return {
        "cursor": await cache.get_cursor(),
        "last_sync_at": last_sync_at.isoformat() if last_sync_at else None,
        "pending_count": await cache.count_pending_mutations(),
        "record_count": len(await cache.list_records()),
    }


async def collect_pending(cache: SQLiteLocalCache) -> List[Dict[str, Any]]:
    mutations = await cache.list_pending_mutations()
    return [
        {
            "key": m.key,
            "operation": m.operation.value,
            "record_type": m.record_type,
            "enqueued_at": m.enqueued_at.isoformat(),
            "superseded": m.superseded,
        }
        for m in mutations
    ]


async def collect_records(
    cache: SQLiteLocalCache,
    record_type: Optional[str] = None,
    pending_only: bool = False
) -> List[Dict[str, Any]]:
    records = await cache.list_records(record_type)
    return [
        r.to_dict() for r in records
        if r.pending_sync or not pending_only
    ]


def _render_status(status: Dict[str, Any]) -> None:
    table = Table(title="Sync status", show_header=False)
    table.add_column("Field", style="bold")
    table.add_column("Value")
    for name, value in status.items():
        table.add_row(name, "-" if value is None else str(value))
    console.print(table)


def _render_pending(pending: List[Dict[str, Any]]) -> None:
    table = Table(title=f"Pending mutations ({len(pending)})")
    table.add_column("#", justify="right")
    table.add_column("Key")
    table.add_column("Operation")
    table.add_column("Type")
    table.add_column("Enqueued")
    table.add_column("Superseded")
    for index, item in enumerate(pending, start=1):
        table.add_row(
            str(index),
            item["key"],
            item["operation"],
            item["record_type"],
            item["enqueued_at"],
            "yes" if item["superseded"] else "",
        )
    console.print(table)


def _render_records(records: List[Dict[str, Any]]) -> None:
    table = Table(title=f"Cached records ({len(records)})")
    table.add_column("Key")
    table.add_column("Type")
    table.add_column("Pending")
    table.add_column("Updated")
    table.add_column("Hash")
    for item in records:
        table.add_row(
            item["key"],
            item["record_type"],
            "yes" if item["pending_sync"] else "",
            item["updated_at"],
            item["content_hash"] or "",
        )
    console.print(table)


async def run_command(args: argparse.Namespace, config: SyncConfig) -> int:
    """Open the cache read-side and run one inspection command."""
    path = Path(args.cache).expanduser() if args.cache else config.cache.path
    if not path.exists():
        console.print(f"[red]Cache not found:[/red] {path}")
        return 1

    cache = SQLiteLocalCache.from_config(config.cache.model_copy(update={"path": path}))
    async with cache:
        if args.command == "status":
            result: Any = await collect_status(cache)
            renderer = _render_status
        elif args.command == "pending":
            result = await collect_pending(cache)
            renderer = _render_pending
        else:
            result = await collect_records(cache, args.record_type, args.pending_only)
            renderer = _render_records

    if args.json:
        print(json.dumps(result, indent=2))
    else:
        renderer(result)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point for the offline-sync command."""
    args = build_parser().parse_args(argv)

    try:
        config = load_config(config_paths=[args.config] if args.config else None)
    except SyncError as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        return 2

    setup_logging(
        app_name=config.app_name,
        log_level="DEBUG" if args.debug else config.logging.level,
        log_dir=config.logging.directory,
        enable_json=config.logging.format == "json",
        enable_console=args.debug,
        enable_sentry=config.logging.enable_sentry,
        sentry_dsn=config.logging.sentry_dsn,
    )

    try:
        return asyncio.run(run_command(args, config))
    except KeyboardInterrupt:
        return 130
    except Exception as e:
        logger.error("command_failed", command=args.command, error=str(e), exc_info=True)
        console.print(f"[red]Error:[/red] {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
