from __future__ import annotations

from sqlalchemy import func, select
from typer.testing import CliRunner

from ticketbooth import database
from ticketbooth.cli import app
from ticketbooth.models import Event, Organizer

runner = CliRunner()


def test_create_organizer_prints_token():
    result = runner.invoke(app, ["create-organizer", "Harbor Events"])

    assert result.exit_code == 0, result.output
    assert "API token: " in result.output
    token = result.output.split("API token: ", 1)[1].strip()
    with database.get_session() as session:
        organizer = session.scalar(select(Organizer).where(Organizer.api_token == token))
        assert organizer.name == "Harbor Events"


def test_rotate_unknown_organizer_fails():
    result = runner.invoke(app, ["rotate-organizer-token", "missing"])
    assert result.exit_code == 1


def test_sweep_reservations_reports_count():
    result = runner.invoke(app, ["sweep-reservations", "--hours", "1"])
    assert result.exit_code == 0, result.output
    assert "Expired 0 pending reservations." in result.output


def test_seed_data_creates_events():
    result = runner.invoke(
        app, ["seed-data", "--organizers", "1", "--events", "2", "--max-attendees", "3"]
    )

    assert result.exit_code == 0, result.output
    assert "Seed complete: 1 organizers, 2 events" in result.output
    with database.get_session() as session:
        assert session.scalar(select(func.count()).select_from(Event)) == 2
