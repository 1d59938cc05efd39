"""
Flask CLI commands for one-off administrative tasks.

Usage:
    flask create-user --name Ada --email ada@example.com --password secret1
    flask prune-readings                 # Trim readings to READINGS_MAX_ENTRIES
    flask prune-readings --keep 500      # Keep only the newest 500
"""

from __future__ import annotations
import uuid

import click
from flask import current_app
from flask.cli import with_appcontext


@click.command("create-user")
@click.option("--name", required=True, help="Display name.")
@click.option("--email", required=True, help="Login email.")
@click.option("--password", required=True, prompt=True, hide_input=True,
              confirmation_prompt=True, help="Password (prompted when omitted).")
@with_appcontext
def create_user_command(name: str, email: str, password: str) -> None:
    """Create an account in the flat-file user store."""
    from auragrow.services.store import get_user_store
    from auragrow.utils.auth import hash_password
    from auragrow.utils.validation import validate_signup

    payload, error = validate_signup({"name": name, "email": email, "password": password})
    if error:
        click.echo(f"Error: {error}")
        raise SystemExit(1)

    created = get_user_store().create({
        "id": str(uuid.uuid4()),
        "name": payload["name"],
        "email": payload["email"],
        "passwordHash": hash_password(payload["password"]),
    })
    if not created:
        click.echo(f"Error: a user with email {payload['email']} already exists.")
        raise SystemExit(1)
    click.echo(f"Created user {created['email']} (id={created['id']}).")


@click.command("prune-readings")
@click.option("--keep", type=click.IntRange(min=0), default=None,
              help="Number of newest readings to keep (default: READINGS_MAX_ENTRIES).")
@with_appcontext
def prune_readings_command(keep: int | None) -> None:
    """Trim the readings file to the newest entries."""
    from auragrow.services.store import get_reading_store

    store = get_reading_store()
    if keep is None:
        keep = current_app.config.get("READINGS_MAX_ENTRIES", store.max_entries)
    removed = store.prune(keep)
    click.echo(f"Removed {removed} reading(s); kept at most {keep}.")
