"""Flask CLI commands.

Usage:
    flask --app wecarry.wsgi init-db
    flask --app wecarry.wsgi generate-cert [--force]
"""

from __future__ import annotations

import click
from flask import current_app
from flask.cli import with_appcontext


@click.command("init-db")
@with_appcontext
def init_db_command():
    """Create every table from the ORM models."""
    from wecarry.extensions import db

    db.create_all()
    click.echo("Database tables created.")


@click.command("generate-cert")
@click.option("--force", is_flag=True, help="Overwrite an existing certificate")
@with_appcontext
def generate_cert_command(force: bool):
    """Write a self-signed certificate to CERT_FILE / KEY_FILE."""
    from wecarry.cert import ensure_cert, generate_cert

    cert_file = current_app.config["CERT_FILE"]
    key_file = current_app.config["KEY_FILE"]
    if force:
        cert_path, key_path = generate_cert(cert_file, key_file)
    else:
        cert_path, key_path = ensure_cert(cert_file, key_file)
    click.echo(f"Certificate: {cert_path}")
    click.echo(f"Key: {key_path}")


def register_commands(app):
    app.cli.add_command(init_db_command)
    app.cli.add_command(generate_cert_command)
