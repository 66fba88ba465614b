"""Typer CLI for planmate."""

from __future__ import annotations

import json
import subprocess
import sys
from pathlib import Path
from typing import NoReturn

import typer
import uvicorn
from sqlalchemy.exc import OperationalError

from . import config
from .crud import create_user, get_user_by_email, rotate_api_token
from .database import get_session
from .errors import PlanmateError
from .maintenance import vacuum_database
from .seed import seed_fake_data
from .storage import init_db, upgrade_database

app = typer.Typer(help="planmate command-line interface", no_args_is_help=True)


def _fail(message: str) -> NoReturn:
    typer.secho(message, err=True, fg=typer.colors.RED)
    raise typer.Exit(code=1)


@app.command("upgrade-db")
def upgrade_db(
    no_backup: bool = typer.Option(
        False, "--no-backup", help="Do not copy the database to <name>.bak first"
    ),
) -> None:
    """Migrate the database schema to the latest revision."""
    try:
        actions = upgrade_database(make_backup=not no_backup)
    except OperationalError as exc:
        reason = str(getattr(exc, "orig", exc)).lower()
        if "readonly" in reason or "read-only" in reason:
            _fail(f"{config.settings.database_path} is read-only; cannot upgrade.")
        raise
    for action in actions:
        typer.echo(f"- {action}")


@app.command("create-user")
def create_user_command(
    email: str = typer.Argument(..., help="Email address of the new user"),
    name: str = typer.Argument(..., help="Display name"),
) -> None:
    """Register a user and print their API token."""
    init_db()
    try:
        with get_session() as session:
            token = create_user(session, email=email, name=name).api_token
    except PlanmateError as exc:
        _fail(exc.message)
    typer.echo(token)


@app.command("rotate-token")
def rotate_token(
    email: str = typer.Argument(..., help="Email address of the user"),
) -> None:
    """Issue a new API token for a user, invalidating the old one."""
    init_db()
    with get_session() as session:
        user = get_user_by_email(session, email)
        if user is None:
            _fail(f"No user registered with {email}")
        token = rotate_api_token(session, user)
    typer.echo(token)


@app.command("vacuum")
def vacuum() -> None:
    """Run SQLite VACUUM now instead of waiting for the scheduler."""
    init_db()
    vacuum_database()
    typer.echo("VACUUM finished.")


@app.command("runserver")
def runserver(
    host: str = typer.Option(None, "--host", help="Bind address (default: app_host)"),
    port: int = typer.Option(None, "--port", help="Bind port (default: app_port)"),
    reload: bool = typer.Option(False, "--reload", help="Restart on code changes"),
) -> None:
    """Serve the API with uvicorn; the app lifespan owns the scheduler."""
    host = host or config.settings.app_host
    port = port or config.settings.app_port
    init_db()
    typer.echo(f"planmate listening on http://{host}:{port}")
    uvicorn.run(
        "planmate.api:app",
        host=host,
        port=port,
        reload=reload,
        proxy_headers=True,
        forwarded_allow_ips="*",
    )


@app.command("seed-data")
def seed_data(
    users: int = typer.Option(None, "--users", min=2, help="Users to create"),
    events: int = typer.Option(None, "--events", min=0, help="Events to create"),
    attendees: int = typer.Option(
        None, "--attendees", min=0, help="Upper bound of attendees per event"
    ),
    polls: int = typer.Option(None, "--polls", min=0, help="Polls per event"),
) -> None:
    """Fill the database with fake users, events, attendees and polls."""
    current = config.settings
    stats = seed_fake_data(
        user_count=current.seed_users if users is None else users,
        event_count=current.seed_events if events is None else events,
        max_attendees_per_event=(
            current.seed_attendees_per_event if attendees is None else attendees
        ),
        polls_per_event=current.seed_polls_per_event if polls is None else polls,
    )
    summary = ", ".join(f"{count} {name}" for name, count in stats.items())
    typer.echo(f"Seeded {summary}.")


def _parse_assignments(assignments: list[str]) -> dict[str, str]:
    parsed: dict[str, str] = {}
    for raw in assignments:
        key, sep, value = raw.partition("=")
        key = key.strip().replace("-", "_")
        if not sep or not key:
            _fail(f"Expected KEY=VALUE, got {raw!r}")
        if key not in config.DEFAULTS:
            _fail(f"Unknown setting {key!r}; choose from: {', '.join(config.DEFAULTS)}")
        parsed[key] = value.strip()
    return parsed


@app.command("config")
def configure(
    assignments: list[str] = typer.Option(
        None, "--set", help="Persist a setting, e.g. --set events_per_page=20"
    ),
    host: str = typer.Option(None, "--host", help="Shortcut for --set app_host=HOST"),
    port: int = typer.Option(None, "--port", help="Shortcut for --set app_port=PORT"),
    show: bool = typer.Option(False, "--show", help="Print the effective settings"),
    config_path: Path = typer.Option(
        None, "--config-path", help="TOML file to use (default: ./planmate.toml)"
    ),
) -> None:
    """Show or persist settings in the TOML configuration file."""
    updates: dict[str, object] = dict(_parse_assignments(assignments or []))
    if host is not None:
        updates["app_host"] = host
    if port is not None:
        updates["app_port"] = port

    target = config_path or config.settings.config_path
    if updates:
        try:
            effective = config.save_config(updates, path=target)
        except ValueError as exc:
            _fail(str(exc))
        typer.echo(f"Updated configuration in {target}")
    else:
        effective = config.load_settings(target)
    if show or not updates:
        payload = config.settings_as_dict(effective)
        payload["config_path"] = str(target)
        typer.echo(json.dumps(payload, indent=2))


@app.command(
    "test",
    context_settings={"allow_extra_args": True, "ignore_unknown_options": True},
)
def run_tests(ctx: typer.Context) -> None:
    """Run pytest; extra arguments are passed through."""
    cmd = [sys.executable, "-m", "pytest", *ctx.args]
    typer.echo(" ".join(cmd))
    raise typer.Exit(code=subprocess.call(cmd))


if __name__ == "__main__":
    app()
