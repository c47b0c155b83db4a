# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Command-line interface for mail-queue.

Usage:
    mail-queue init
    mail-queue enqueue message.json --priority 8 --due 2025-06-01T09:00:00
    mail-queue list --all
    mail-queue remove 42
    mail-queue drain --limit 50
    mail-queue verify

Options common to every command:
    --config PATH   INI file (default: MQ_CONFIG or config.ini)
    --db DB         Database connection string overriding the configuration
"""

from __future__ import annotations

import asyncio
import json
import os
import sys
from datetime import datetime
from pathlib import Path
from typing import Any

import click
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from .config import QueueConfig, load_config
from .exceptions import MailQueueError
from .logger import configure_logging
from .models import Message, QueueEntry
from .queue import MailQueue

console = Console()
err_console = Console(stderr=True)


def run_async(coro):
    """Run an async coroutine synchronously."""
    return asyncio.run(coro)


def print_error(message: str) -> None:
    """Print an error message to stderr."""
    err_console.print(f"[red]Error:[/red] {message}")


def print_success(message: str) -> None:
    console.print(f"[green]✓[/green] {message}")


def print_json(data: Any) -> None:
    """Print data as JSON on stdout."""
    click.echo(json.dumps(data, indent=2, default=str))


def parse_due(ctx: click.Context, param: click.Parameter, value: str | None) -> datetime | None:
    if value is None:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError as exc:
        raise click.BadParameter(f"expected an ISO 8601 date/time, got {value!r}") from exc


def entry_summary(entry: QueueEntry) -> dict[str, Any]:
    return {
        "id": entry.id,
        "priority": entry.priority,
        "date_due": entry.date_due.isoformat(),
        "date_attempted": entry.date_attempted.isoformat() if entry.date_attempted else None,
        "attempts": entry.attempts,
        "to": [a.address for a in entry.message.to],
        "subject": entry.message.subject,
    }


def get_queue(ctx: click.Context) -> MailQueue:
    config: QueueConfig = ctx.obj["config"]
    return MailQueue.from_config(config)


async def _with_queue(ctx: click.Context, action):
    queue = get_queue(ctx)
    await queue.init()
    try:
        return await action(queue)
    finally:
        await queue.close()


def invoke(ctx: click.Context, action):
    """Run ``action(queue)`` and turn mail queue errors into exit status 1."""
    try:
        return run_async(_with_queue(ctx, action))
    except (MailQueueError, ValueError) as exc:
        print_error(str(exc))
        sys.exit(1)


@click.group()
@click.version_option(package_name="mail-queue")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="INI configuration file (default: MQ_CONFIG or config.ini).",
)
@click.option("--db", default=None, help="Database connection string (overrides the configuration).")
@click.pass_context
def main(ctx: click.Context, config_path: Path | None, db: str | None) -> None:
    """mail-queue: persistent outbound mail queue."""
    configure_logging(os.getenv("MQ_LOG_LEVEL", "INFO"))
    try:
        config = load_config(config_path)
    except ValueError as exc:
        print_error(str(exc))
        sys.exit(1)
    if db:
        config.db = db
    ctx.ensure_object(dict)
    ctx.obj["config"] = config


@main.command("init")
@click.pass_context
def init_cmd(ctx: click.Context) -> None:
    """Create the queue table."""

    async def action(queue: MailQueue) -> None:
        return None

    invoke(ctx, action)
    print_success(f"Queue table '{ctx.obj['config'].table_name}' ready")


@main.command("enqueue")
@click.argument("payload_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--due", callback=parse_due, default=None, help="Earliest delivery time (ISO 8601, UTC if naive).")
@click.option("--priority", "-p", type=int, default=None, help="Priority, higher first (default from config).")
@click.pass_context
def enqueue_cmd(ctx: click.Context, payload_file: Path, due: datetime | None, priority: int | None) -> None:
    """Queue the JSON message in PAYLOAD_FILE."""
    try:
        message = Message.from_dict(json.loads(payload_file.read_text()))
    except (json.JSONDecodeError, ValidationError) as exc:
        print_error(f"Invalid message payload: {exc}")
        sys.exit(1)

    async def action(queue: MailQueue) -> int:
        return await queue.enqueue(message, due=due, priority=priority)

    entry_id = invoke(ctx, action)
    print_success(f"Queued entry {entry_id}")


@main.command("list")
@click.option("--limit", "-n", type=click.IntRange(min=0), default=0, help="Maximum entries (0 for all).")
@click.option("--all", "show_all", is_flag=True, help="Include entries that are not due yet.")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def list_cmd(ctx: click.Context, limit: int, show_all: bool, as_json: bool) -> None:
    """List queued entries in delivery order."""

    async def action(queue: MailQueue) -> list[QueueEntry]:
        if show_all:
            return await queue.list_all(limit=limit)
        return await queue.list_due(limit=limit)

    entries = invoke(ctx, action)

    if as_json:
        print_json([entry_summary(e) for e in entries])
        return

    if not entries:
        console.print("[dim]No queued entries.[/dim]")
        return

    table = Table(title="Queued messages")
    table.add_column("ID", style="cyan", justify="right")
    table.add_column("Priority", justify="right")
    table.add_column("Due")
    table.add_column("Attempts", justify="right")
    table.add_column("To")
    table.add_column("Subject")
    for entry in entries:
        table.add_row(
            str(entry.id),
            str(entry.priority),
            entry.date_due.strftime("%Y-%m-%d %H:%M:%S"),
            str(entry.attempts),
            ", ".join(a.address for a in entry.message.to),
            entry.message.subject,
        )
    console.print(table)


@main.command("remove")
@click.argument("entry_id", type=int)
@click.pass_context
def remove_cmd(ctx: click.Context, entry_id: int) -> None:
    """Remove entry ENTRY_ID from the queue."""

    async def action(queue: MailQueue) -> bool:
        return await queue.remove(entry_id)

    if not invoke(ctx, action):
        print_error(f"Entry {entry_id} not found")
        sys.exit(1)
    print_success(f"Removed entry {entry_id}")


@main.command("drain")
@click.option("--limit", "-n", type=click.IntRange(min=0), default=0, help="Maximum entries to process (0 for all).")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def drain_cmd(ctx: click.Context, limit: int, as_json: bool) -> None:
    """Deliver the due entries."""

    async def action(queue: MailQueue):
        return await queue.drain(limit=limit)

    result = invoke(ctx, action)

    if as_json:
        print_json(result.model_dump())
        return
    console.print(
        f"Sent: [green]{result.sent}[/green]  "
        f"Failed: [yellow]{result.failed}[/yellow]  "
        f"Removed: [red]{result.removed}[/red]"
    )
    if result.failed_ids:
        console.print(f"  Failed ids: {', '.join(map(str, result.failed_ids))}")
    if result.removed_ids:
        console.print(f"  Removed ids: {', '.join(map(str, result.removed_ids))}")


@main.command("verify")
@click.pass_context
def verify_cmd(ctx: click.Context) -> None:
    """Check that the configured sender is reachable."""

    async def action(queue: MailQueue) -> bool:
        return await queue.verify()

    invoke(ctx, action)
    print_success("Sender connection OK")


if __name__ == "__main__":
    main()
