"""Entry point: python -m scanhook."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
import sys

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from scanhook.config import AppConfig
from scanhook.errors import ConfigError, StorageError
from scanhook.log_context import set_log_context
from scanhook.logging_config import setup_logging
from scanhook.scans import ScanJobEnqueuer
from scanhook.store import create_store
from scanhook.webhook.server import WebhookServer

logger = logging.getLogger(__name__)

_console = Console()


def _load_config(verbose: bool) -> AppConfig:
    try:
        config = AppConfig.from_env()
    except ConfigError as exc:
        _console.print(Panel(str(exc), title="[bold red]Configuration[/bold red]"))
        sys.exit(2)
    setup_logging(level=config.log_level, verbose=verbose, log_dir=config.log_dir)
    return config


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


async def _serve(config: AppConfig) -> None:
    server = WebhookServer(config, create_store(config.storage))
    await server.start()

    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="bold")
    table.add_column()
    for key, value in server.describe().items():
        table.add_row(key, value)
    _console.print(Panel(table, title="[bold]scanhook[/bold]", border_style="green"))

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, stop.set)
    try:
        await stop.wait()
    finally:
        await server.stop()


async def _reconcile(config: AppConfig) -> int:
    set_log_context(operation="rc")
    store = create_store(config.storage)
    try:
        entries = await ScanJobEnqueuer(store).reconcile()
    finally:
        await store.close()
    _console.print(f"Re-queued [bold]{len(entries)}[/bold] orphaned scan job(s)")
    return len(entries)


async def _init_db(config: AppConfig) -> None:
    from scanhook.store.postgres import PostgresStore

    if config.storage.backend != "postgres":
        _console.print("[yellow]Memory storage selected, nothing to initialize.[/yellow]")
        return
    await PostgresStore(config.storage.database_url).ensure_schema()
    _console.print("[green]Schema bootstrap applied.[/green]")


def _print_usage() -> None:
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="bold green", min_width=20)
    table.add_column()
    table.add_row("scanhook [serve]", "Run the webhook server (default)")
    table.add_row("scanhook init-db", "Apply the idempotent schema bootstrap")
    table.add_row("scanhook reconcile", "Re-queue scan jobs missing a queue entry")
    table.add_row("scanhook help", "Show this help")
    table.add_row("-v, --verbose", "Debug logging")
    _console.print(Panel(table, title="[bold]Commands[/bold]", border_style="blue"))


_COMMANDS: frozenset[str] = frozenset({"serve", "init-db", "reconcile", "help"})


def main() -> None:
    """CLI entry point."""
    args = sys.argv[1:]
    verbose = "--verbose" in args or "-v" in args
    commands = [a for a in args if not a.startswith("-")]
    if "--help" in args or "-h" in args:
        commands.insert(0, "help")

    action = next((c for c in commands if c in _COMMANDS), "serve")
    unknown = [c for c in commands if c not in _COMMANDS]
    if unknown:
        _console.print(f"[red]Unknown command: {unknown[0]}[/red]")
        _print_usage()
        sys.exit(2)

    if action == "help":
        _print_usage()
        return

    config = _load_config(verbose)
    try:
        if action == "init-db":
            asyncio.run(_init_db(config))
        elif action == "reconcile":
            asyncio.run(_reconcile(config))
        else:
            asyncio.run(_serve(config))
    except StorageError as exc:
        logger.error("Storage unavailable: %s", exc)
        sys.exit(1)


if __name__ == "__main__":
    main()
