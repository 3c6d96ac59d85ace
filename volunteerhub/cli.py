"""Typer CLI for VolunteerHub."""

from __future__ import annotations

import json
from datetime import timedelta
from pathlib import Path

from sqlalchemy.exc import OperationalError
import typer
import uvicorn

from .auth import issue_token
from .config import load_settings, settings, settings_as_dict, update_config_file
from .crud import create_user, get_user_by_email
from .database import get_session
from .models import Role
from .seed import seed_fake_data
from .storage import SchemaStateError, init_db, upgrade_database

app = typer.Typer(help="VolunteerHub command-line interface")

ROLE_CHOICES = ", ".join(role.value for role in Role)


@app.callback(invoke_without_command=True)
def main(ctx: typer.Context) -> None:
    """Show help when no subcommand is provided."""
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit()


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
    except SchemaStateError as exc:
        typer.secho(str(exc), err=True, fg=typer.colors.RED)
        raise typer.Exit(code=1)
    except OperationalError as exc:
        message = str(getattr(exc, "orig", exc)).lower()
        if "readonly" in message or "read-only" in message:
            typer.secho(
                "Unable to upgrade because the database is read-only. "
                f"Ensure write access to {settings.database_path}.",
                err=True,
                fg=typer.colors.RED,
            )
            raise typer.Exit(code=1)
        raise

    typer.echo("Database upgrade complete:")
    for action in actions:
        typer.echo(f"- {action}")


@app.command("create-user")
def create_user_command(
    email: str = typer.Option(..., "--email", help="Login email (unique)"),
    first_name: str = typer.Option(..., "--first-name"),
    last_name: str = typer.Option(..., "--last-name"),
    role: str = typer.Option(
        Role.VOLUNTEER.value, "--role", help=f"One of: {ROLE_CHOICES}"
    ),
) -> None:
    """Create a user and print their id."""
    init_db()
    try:
        with get_session() as session:
            user = create_user(
                session,
                first_name=first_name,
                last_name=last_name,
                email=email,
                role=role,
            )
            user_id = user.id
    except ValueError as exc:
        typer.secho(str(exc), err=True, fg=typer.colors.RED)
        raise typer.Exit(code=1)
    typer.echo(user_id)


@app.command("issue-token")
def issue_token_command(
    email: str = typer.Argument(..., help="Email of an existing user"),
    hours: int | None = typer.Option(
        None, "--hours", min=1, help="Token lifetime (defaults to token_ttl_hours)"
    ),
) -> None:
    """Print a bearer token for an existing user."""
    init_db()
    with get_session() as session:
        user = get_user_by_email(session, email)
        if not user:
            typer.secho(f"No user with email {email}", err=True, fg=typer.colors.RED)
            raise typer.Exit(code=1)
        expires_in = timedelta(hours=hours) if hours else None
        token = issue_token(user, expires_in=expires_in)
    typer.echo(token)


@app.command("runserver")
def runserver(
    host: str = typer.Option(settings.app_host, "--host", help="Host to bind"),
    port: int = typer.Option(settings.app_port, "--port", help="Port to bind"),
):
    """Start the FastAPI server."""
    init_db()
    config = uvicorn.Config(
        "volunteerhub.api:app",
        host=host,
        port=port,
        reload=False,
        proxy_headers=True,
        forwarded_allow_ips="*",
    )
    server = uvicorn.Server(config)
    typer.echo(f"Starting VolunteerHub on {host}:{port}")
    server.run()


@app.command("seed-data")
def seed_data(
    organizers: int = typer.Option(
        settings.seed_organizers, "--organizers", min=0, help="Organizers to create"
    ),
    volunteers: int = typer.Option(
        settings.seed_volunteers, "--volunteers", min=0, help="Volunteers to create"
    ),
    max_events: int = typer.Option(
        settings.seed_events_per_organizer,
        "--max-events",
        min=1,
        help="Maximum events per organizer",
    ),
    max_registrations: int = typer.Option(
        settings.seed_max_registrations,
        "--max-registrations",
        min=0,
        help="Maximum registrations per approved event",
    ),
):
    """Populate the database with fake users and events for testing."""
    stats = seed_fake_data(
        organizer_count=organizers,
        volunteer_count=volunteers,
        max_events_per_organizer=max_events,
        max_registrations_per_event=max_registrations,
    )
    typer.echo(
        f"Seed complete: {stats['users']} users, {stats['events']} events, "
        f"{stats['registrations']} registrations, "
        f"{stats['saved_events']} saved events created."
    )


@app.command("config")
def configure(
    show: bool = typer.Option(
        False, "--show", help="Show the current effective configuration"
    ),
    jwt_secret: str | None = typer.Option(
        None, "--jwt-secret", help="Key used to sign bearer tokens"
    ),
    jwt_algorithm: str | None = typer.Option(
        None, "--jwt-algorithm", help="JWT signing algorithm"
    ),
    token_ttl_hours: int | None = typer.Option(
        None, "--token-ttl-hours", min=1, help="Default bearer token lifetime"
    ),
    host: str | None = typer.Option(None, "--host", help="Default host for runserver"),
    port: int | None = typer.Option(None, "--port", help="Default port for runserver"),
    seed_organizers: int | None = typer.Option(
        None, "--seed-organizers", min=0, help="Default seed-data organizers"
    ),
    seed_volunteers: int | None = typer.Option(
        None, "--seed-volunteers", min=0, help="Default seed-data volunteers"
    ),
    seed_events_per_organizer: int | None = typer.Option(
        None,
        "--seed-events-per-organizer",
        min=1,
        help="Default seed-data events per organizer",
    ),
    seed_max_registrations: int | None = typer.Option(
        None,
        "--seed-max-registrations",
        min=0,
        help="Default seed-data registrations per event",
    ),
    config_path: Path | None = typer.Option(
        None,
        "--config-path",
        help="Path to volunteerhub.toml (default: ./volunteerhub.toml)",
    ),
):
    """View or update the persistent configuration file."""

    updates = {
        "jwt_secret": jwt_secret,
        "jwt_algorithm": jwt_algorithm,
        "token_ttl_hours": token_ttl_hours,
        "app_host": host,
        "app_port": port,
        "seed_organizers": seed_organizers,
        "seed_volunteers": seed_volunteers,
        "seed_events_per_organizer": seed_events_per_organizer,
        "seed_max_registrations": seed_max_registrations,
    }
    updates = {key: value for key, value in updates.items() if value is not None}

    if not updates:
        current = load_settings(config_path) if config_path else settings
        typer.echo(json.dumps(settings_as_dict(current), indent=2))
        return

    new_settings = update_config_file(updates, path=config_path)
    typer.echo(f"Configuration written to {new_settings.config_path}")
    if show:
        typer.echo(json.dumps(settings_as_dict(new_settings), indent=2))


if __name__ == "__main__":
    app()
