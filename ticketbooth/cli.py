"""Typer CLI for Ticketbooth."""

from __future__ import annotations

import json
from datetime import timedelta
from pathlib import Path

from sqlalchemy.exc import OperationalError
import typer
import uvicorn

from .config import (
    require_production_settings,
    settings,
    settings_as_dict,
    update_config_file,
)
from .errors import NotFound
from .scheduler import run_reservation_sweep, start_scheduler, stop_scheduler
from .seed import seed_fake_data
from .storage import (
    create_organizer,
    init_db,
    rotate_organizer_token,
    upgrade_database,
)

app = typer.Typer(help="Ticketbooth command-line interface")


@app.callback(invoke_without_command=True)
def main(ctx: typer.Context) -> None:
    """Show help when no subcommand is provided."""
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit()


def _exit_if_readonly(exc: OperationalError, action: str) -> None:
    message = str(getattr(exc, "orig", exc)).lower()
    if "readonly" in message or "read-only" in message:
        typer.secho(
            f"Unable to {action} because the database is read-only. "
            f"Ensure write access to {settings.database_path}.",
            err=True,
            fg=typer.colors.RED,
        )
        raise typer.Exit(code=1)


@app.command("upgrade-db")
def upgrade_db(
    no_backup: bool = typer.Option(
        False,
        "--no-backup",
        help="Skip creating a .bak copy of the database before upgrading",
    ),
) -> None:
    """Upgrade the SQLite database schema if needed."""
    try:
        actions = upgrade_database(make_backup=not no_backup)
    except OperationalError as exc:
        _exit_if_readonly(exc, "upgrade")
        raise

    if not actions:
        typer.echo("Database already up to date.")
        return

    typer.echo("Database upgrade complete:")
    for action in actions:
        typer.echo(f"- {action}")


@app.command("create-organizer")
def create_organizer_command(
    name: str = typer.Argument(..., help="Display name of the organizer"),
) -> None:
    """Create an organizer and print its API token."""
    try:
        init_db()
        organizer_id, token = create_organizer(name)
    except OperationalError as exc:
        _exit_if_readonly(exc, "create the organizer")
        raise
    typer.echo(f"Organizer id: {organizer_id}")
    typer.echo(f"API token: {token}")


@app.command("rotate-organizer-token")
def rotate_organizer_token_command(
    organizer_id: str = typer.Argument(..., help="Organizer id to rotate"),
) -> None:
    """Issue a new API token for an organizer, revoking the old one."""
    init_db()
    try:
        token = rotate_organizer_token(organizer_id)
    except NotFound:
        typer.secho(f"Organizer {organizer_id} not found.", err=True, fg=typer.colors.RED)
        raise typer.Exit(code=1)
    typer.echo(token)


@app.command("sweep-reservations")
def sweep_reservations(
    hours: int | None = typer.Option(
        None,
        "--hours",
        min=1,
        help="Expire pending reservations older than this many hours",
    ),
) -> None:
    """Mark abandoned pending reservations as failed."""
    init_db()
    expired = run_reservation_sweep(timedelta(hours=hours) if hours else None)
    typer.echo(f"Expired {expired} pending reservations.")


@app.command("runserver")
def runserver(
    host: str = typer.Option(settings.app_host, "--host", help="Host to bind"),
    port: int = typer.Option(settings.app_port, "--port", help="Port to bind"),
):
    """Start FastAPI with APScheduler."""
    try:
        require_production_settings(settings)
    except RuntimeError as exc:
        typer.secho(str(exc), err=True, fg=typer.colors.RED)
        raise typer.Exit(code=1)
    init_db()
    if settings.enable_scheduler:
        start_scheduler()
    config = uvicorn.Config(
        "ticketbooth.api:app",
        host=host,
        port=port,
        reload=False,
        proxy_headers=True,
        forwarded_allow_ips="*",
    )
    server = uvicorn.Server(config)
    try:
        typer.echo(f"Starting Ticketbooth on {host}:{port}")
        server.run()
    finally:
        stop_scheduler()


@app.command("seed-data")
def seed_data(
    organizers: int = typer.Option(
        1, "--organizers", min=1, help="Number of organizers to create"
    ),
    events: int = typer.Option(
        3, "--events", min=1, help="Events to create for each organizer"
    ),
    max_attendees: int = typer.Option(
        8, "--max-attendees", min=0, help="Maximum attendees to attach to each event"
    ),
):
    """Populate the database with fake organizers and events for testing."""
    stats = seed_fake_data(
        organizer_count=organizers,
        events_per_organizer=events,
        max_attendees_per_event=max_attendees,
    )
    typer.echo(
        f"Seed complete: {stats['organizers']} organizers, {stats['events']} events, "
        f"{stats['ticket_types']} ticket types, {stats['attendees']} attendees created."
    )
    for token in stats["tokens"]:
        typer.echo(f"Organizer token: {token}")


@app.command("config")
def configure(
    show: bool = typer.Option(
        False, "--show", help="Show the current effective configuration"
    ),
    environment: str | None = typer.Option(
        None, "--environment", help="development, test, or production"
    ),
    app_base_url: str | None = typer.Option(
        None, "--app-base-url", help="Public base URL used in redirects"
    ),
    currency: str | None = typer.Option(None, "--currency", help="ISO currency code"),
    host: str | None = typer.Option(None, "--host", help="Default host for runserver"),
    port: int | None = typer.Option(None, "--port", help="Default port for runserver"),
    pending_ttl_hours: int | None = typer.Option(
        None,
        "--pending-ttl-hours",
        min=1,
        help="Hours before an unpaid reservation is expired",
    ),
    sweep_interval_minutes: int | None = typer.Option(
        None, "--sweep-interval-minutes", min=1, help="Minutes between sweeps"
    ),
    enable_scheduler: bool | None = typer.Option(
        None,
        "--enable-scheduler/--disable-scheduler",
        help="Run background jobs inside the server process",
    ),
    config_path: Path | None = typer.Option(
        None,
        "--config-path",
        help="Path to ticketbooth.toml (default: ./ticketbooth.toml)",
    ),
) -> None:
    """Show or update persistent configuration."""
    updates = {
        "environment": environment,
        "app_base_url": app_base_url,
        "currency": currency,
        "app_host": host,
        "app_port": port,
        "pending_reservation_ttl_hours": pending_ttl_hours,
        "sweep_interval_minutes": sweep_interval_minutes,
        "enable_scheduler": enable_scheduler,
    }
    updates = {key: value for key, value in updates.items() if value is not None}

    current = settings
    if updates:
        current = update_config_file(updates, path=config_path)
        typer.echo(f"Configuration saved to {current.config_path}")

    if show or not updates:
        typer.echo(json.dumps(settings_as_dict(current), indent=2))
