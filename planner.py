#!/usr/bin/env python3
"""
DATAPONTO - Command Line Interface
Deadline list, appointment reminders and push notification tooling
"""

import sys
from pathlib import Path

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent))

import asyncio
import logging
from datetime import datetime
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from dataponto.core import Config
from dataponto.core.database import Database, get_database
from dataponto.deadlines import FILTERS, DeadlineAggregator, DeadlineFormatter
from dataponto.notifications import (
    DispatchRequest,
    LocalPushClient,
    Notice,
    NotificationError,
    PushDispatchService,
    ReminderPoller,
    SubscriptionRegistry,
    generate_vapid_keys,
)

# Initialize CLI app and console
app = typer.Typer(help="DATAPONTO - Deadlines and notifications for your team")
push_app = typer.Typer(help="Push notification management")
app.add_typer(push_app, name="push")

console = Console()
config = Config()

# Lazy-loaded database (opened on first use so init-db works without one)
_db: Optional[Database] = None


def get_db() -> Database:
    global _db
    if _db is None:
        _db = get_database()
    return _db


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


# ============================================================================
# Deadlines
# ============================================================================

@app.command()
def deadlines(
    filter_name: str = typer.Option("all", "--filter", "-f", help=f"Filter ({', '.join(FILTERS)})"),
    user: Optional[str] = typer.Option(None, "--user", "-u", help="Viewer user id"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
):
    """
    Show projects, appointments and goals ordered by date

    Examples:
      planner deadlines
      planner deadlines --filter urgent
      planner deadlines -f appointment
    """
    _configure_logging(verbose)
    if filter_name not in FILTERS:
        console.print(f"[red]Unknown filter: {filter_name}[/red]")
        console.print(f"[dim]Use one of: {', '.join(FILTERS)}[/dim]")
        raise typer.Exit(1)

    try:
        aggregator = DeadlineAggregator(get_db(), config)
        result = aggregator.aggregate(viewer_id=user)
        DeadlineFormatter(console).render(result, filter_name)
    except FileNotFoundError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)


# ============================================================================
# Reminders
# ============================================================================

def _print_notice(notice: Notice) -> None:
    if notice.kind is None:
        style = "red"
    else:
        style = "cyan" if notice.kind == "appointment" else "magenta"
    console.print(Panel(
        notice.description,
        title=notice.title,
        border_style=style,
    ))


@app.command()
def remind(
    user: str = typer.Option(..., "--user", "-u", help="User id to run reminders for"),
    interval: Optional[float] = typer.Option(None, "--interval", "-i", help="Seconds between checks"),
    push: bool = typer.Option(False, "--push", help="Also broadcast reminders as web push"),
    once: bool = typer.Option(False, "--once", help="Check once and exit"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
):
    """
    Watch today's appointments and print reminders as they come due

    Runs in the foreground until interrupted (Ctrl+C).
    """
    _configure_logging(verbose)

    try:
        db = get_db()
    except FileNotFoundError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    push_client = LocalPushClient(PushDispatchService(db, config)) if push else None
    poller = ReminderPoller(
        db,
        user,
        notify=_print_notice,
        push=push_client,
        config=config,
        interval=interval,
    )

    async def run():
        if once:
            fired = await poller.evaluate()
            if not fired:
                console.print("[dim]No reminders due.[/dim]")
            return

        if not await poller.arm():
            console.print("[yellow]Notifications are disabled in preferences.[/yellow]")
            return
        console.print(f"[dim]Watching appointments for {user}. Press Ctrl+C to stop.[/dim]")
        try:
            while poller.armed:
                await asyncio.sleep(3600)
        finally:
            await poller.disarm()

    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        console.print("\n[dim]Stopped.[/dim]")


# ============================================================================
# Push
# ============================================================================

@push_app.command("send")
def push_send(
    title: str = typer.Argument(..., help="Notification title"),
    body: str = typer.Argument("", help="Notification body"),
    sender: str = typer.Option("", "--sender", "-s", help="Sender user id (excluded from delivery)"),
    notification_type: str = typer.Option("message", "--type", "-t", help="message or appointment"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
):
    """
    Send a push notification to every registered browser

    Examples:
      planner push send "Nova mensagem de Ana" "Oi!" --sender <uuid>
      planner push send "📅 Compromisso chegando!" "Reunião começa agora!" -t appointment
    """
    _configure_logging(verbose)

    try:
        request = DispatchRequest.from_dict({
            "title": title,
            "body": body,
            "sender_id": sender,
            "type": notification_type,
        })
        service = PushDispatchService(get_db(), config)
        result = asyncio.run(service.dispatch(request))
    except NotificationError as e:
        console.print(f"[red]✗ {e.message}[/red]")
        raise typer.Exit(1)
    except FileNotFoundError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    if result.message:
        console.print(f"[yellow]{result.message}[/yellow]")
        return

    for line in result.results:
        if line.startswith("Sent"):
            console.print(f"[green]✓[/green] {line}")
        elif line.startswith("Removed"):
            console.print(f"[yellow]↺[/yellow] {line}")
        else:
            console.print(f"[red]✗[/red] {line}")

    console.print(
        f"\n[bold]{result.sent}[/bold] sent, "
        f"[bold]{result.removed}[/bold] removed, "
        f"[bold]{result.failed}[/bold] failed"
    )


@push_app.command("subscriptions")
def push_subscriptions(
    user: Optional[str] = typer.Option(None, "--user", "-u", help="Only this user's endpoints"),
):
    """List registered push endpoints"""
    try:
        registry = SubscriptionRegistry(get_db())
        subscriptions = registry.list_for_user(user) if user else registry.list_targets()
    except FileNotFoundError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    if not subscriptions:
        console.print("[dim]No subscriptions found[/dim]")
        return

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("ID", style="dim", width=36)
    table.add_column("User", width=36)
    table.add_column("Endpoint", min_width=30, overflow="ellipsis", no_wrap=True)
    table.add_column("Created", width=12)

    for subscription in subscriptions:
        created = subscription.created_at.strftime("%d/%m/%y") if subscription.created_at else "-"
        table.add_row(subscription.id, subscription.user_id, subscription.endpoint, created)

    console.print(table)


@push_app.command("vapid-keys")
def push_vapid_keys():
    """Generate a VAPID key pair for web push"""
    keys = generate_vapid_keys()
    console.print(Panel(
        f"VAPID_PUBLIC_KEY={keys.public_key}\nVAPID_PRIVATE_KEY={keys.private_key}",
        title="VAPID keys",
        border_style="green",
    ))
    console.print("[dim]Set these in the environment of the push dispatch service.[/dim]")


# ============================================================================
# Setup
# ============================================================================

@app.command("init-db")
def init_db(
    force: bool = typer.Option(False, "--force", help="Recreate the database file"),
):
    """Create the entity store tables"""
    from scripts.init_db import init_database

    if not init_database(overwrite=force):
        raise typer.Exit(1)
    console.print(f"[green]✓[/green] Database ready ({datetime.now():%d/%m/%Y %H:%M})")


if __name__ == "__main__":
    app()
