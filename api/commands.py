"""
Flask CLI commands:
- flask --app api sweep-sessions   delete expired/revoked refresh tokens (run from cron)
- flask --app api seed-admin       create the first ADMIN account
"""
import logging
import os

import click
from flask import Flask
from flask.cli import with_appcontext

from models.user import Role
from utils.exceptions import EmailAlreadyRegistered

from .extensions import get_credentials, get_session_store

logger = logging.getLogger(__name__)


@click.command("sweep-sessions")
@with_appcontext
def sweep_sessions():
    """Delete every expired or revoked refresh token."""
    count = get_session_store().sweep_expired()
    click.echo(f"Removed {count} expired or revoked session(s)")


@click.command("seed-admin")
@with_appcontext
@click.option("--email", default=lambda: os.getenv("ADMIN_EMAIL", "admin@example.com"), show_default="ADMIN_EMAIL")
@click.option("--password", default=lambda: os.getenv("ADMIN_PASSWORD"), show_default="ADMIN_PASSWORD")
@click.option("--name", default="System Admin", show_default=True)
def seed_admin(email, password, name):
    """Create an ADMIN user unless the email is already taken."""
    if not password:
        raise click.UsageError("a password is required (--password or ADMIN_PASSWORD)")
    try:
        user = get_credentials().register(email, password, name, role=Role.ADMIN)
    except EmailAlreadyRegistered:
        click.echo(f"User {email} already exists, skipping")
        return
    logger.info("Seeded admin %s", user.id)
    click.echo(f"Created admin {email} (id: {user.id})")


def register_commands(app: Flask) -> None:
    app.cli.add_command(sweep_sessions)
    app.cli.add_command(seed_admin)
