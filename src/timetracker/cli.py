#!/usr/bin/env python3
"""
TimeTracker Sync CLI

Operator commands for running worklog syncs outside the web app
"""

import logging
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .api.models.database import SessionLocal, TicketSystem, User, get_engine, init_db
from .config import Config
from .exceptions import JiraApiError, SyncLockedError
from .services.factory import create_jira_services
from .services.oauth_client import close_client_caches
from .services.worklog_sync import SyncOutcome, SyncReport

app = typer.Typer(
    name="timetracker",
    help="Synchronize TimeTracker entries to Jira worklogs",
    no_args_is_help=True,
)
console = Console()


def _load_targets(session, user_id: int, ticket_system_id: int) -> tuple[User, TicketSystem]:
    user = session.get(User, user_id)
    if user is None:
        console.print(f"[red]✗ User {user_id} not found[/red]")
        raise typer.Exit(1)
    ticket_system = session.get(TicketSystem, ticket_system_id)
    if ticket_system is None:
        console.print(f"[red]✗ Ticket system {ticket_system_id} not found[/red]")
        raise typer.Exit(1)
    return user, ticket_system


def display_report(report: SyncReport):
    """Print one row per processed entry"""
    table = Table(title=f"Jira sync - user {report.user_id}, ticket system {report.ticket_system_id}")
    table.add_column("Entry", style="cyan", justify="right")
    table.add_column("Status")
    table.add_column("Ticket", style="dim")
    table.add_column("Error", style="red")

    styles = {
        SyncOutcome.CREATED: "green",
        SyncOutcome.UPDATED: "green",
        SyncOutcome.DELETED: "yellow",
        SyncOutcome.SKIPPED: "dim",
    }
    for entry_id, outcome in report.outcomes.items():
        style = styles[outcome]
        table.add_row(str(entry_id), f"[{style}]{outcome.value}[/{style}]", "", "")
    for failure in report.failures:
        table.add_row(str(failure.entry_id), "[red]error[/red]", failure.ticket, failure.message)

    console.print(table)


@app.command()
def sync(
    user_id: int = typer.Argument(..., help="TimeTracker user id"),
    ticket_system_id: int = typer.Argument(..., help="Ticket system id"),
    limit: Optional[int] = typer.Option(None, "--limit", "-l", min=1, help="Sync at most this many entries"),
):
    """Sync pending entries of a user to Jira"""
    config = Config.load()
    get_engine()

    with SessionLocal() as session:
        user, ticket_system = _load_targets(session, user_id, ticket_system_id)
        services = create_jira_services(session, user.id, ticket_system, config)

        try:
            report = services.synchronizer.sync_pending(limit)
        except SyncLockedError as e:
            console.print(f"[yellow]⚠ {e}[/yellow]")
            raise typer.Exit(1)
        finally:
            close_client_caches()

    if report.gated:
        console.print(f"[yellow]Worklog sync is disabled for {user.username} on {ticket_system.name}[/yellow]")
        return

    if report.total:
        display_report(report)
    else:
        console.print("[dim]No pending entries[/dim]")

    if report.authorize_url:
        console.print(Panel.fit(
            f"Jira asked for authorization, open:\n[cyan]{report.authorize_url}[/cyan]",
            title="🔑",
        ))

    if report.ok:
        console.print(f"\n[green]✓ Done! {len(report.outcomes)} entries processed[/green]")
    else:
        console.print(f"\n[yellow]Done! OK: {len(report.outcomes)}, failed: {len(report.failures)}[/yellow]")
        raise typer.Exit(1)


@app.command()
def authorize(
    user_id: int = typer.Argument(..., help="TimeTracker user id"),
    ticket_system_id: int = typer.Argument(..., help="Ticket system id"),
):
    """Request an OAuth token and print the Jira authorization URL"""
    config = Config.load()
    get_engine()

    with SessionLocal() as session:
        user, ticket_system = _load_targets(session, user_id, ticket_system_id)
        services = create_jira_services(session, user.id, ticket_system, config)
        try:
            url = services.handshake.fetch_request_token()
        except JiraApiError as e:
            console.print(f"[red]✗ {e.message}[/red]")
            raise typer.Exit(1)
        finally:
            close_client_caches()

    console.print(Panel.fit(
        f"Open this URL as {user.username} to grant access:\n[cyan]{url}[/cyan]",
        title=f"🔑 {ticket_system.name}",
    ))


@app.command("init-db")
def init_database():
    """Create database tables"""
    init_db()
    console.print("[green]✓ Database ready[/green]")


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", help="Bind address"),
    port: int = typer.Option(8000, help="Port"),
):
    """Run the HTTP API"""
    import uvicorn

    from .api.main import create_app

    uvicorn.run(create_app(), host=host, port=port)


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging")):
    """
    TimeTracker Sync - push time entries to Jira worklogs

    Usage:
      timetracker init-db
      timetracker authorize 1 2     # user 1, ticket system 2
      timetracker sync 1 2 -l 10
      timetracker serve
    """
    level = "DEBUG" if verbose else Config.load().log_level
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


if __name__ == "__main__":
    app()
