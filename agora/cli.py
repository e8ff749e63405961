# agora/cli.py

# Operator commands, run with `flask --app agora <command>`

import json

import click

from agora import app, db
from agora.operations.scheduler import cleanup_booking_leads
from agora.routes import governance, leads, password_service, users


@app.cli.command('init-db')
def init_db():
    """Create all tables without going through migrations."""
    db.create_all()
    click.echo("Database tables created.")


@app.cli.command('sweep')
def sweep():
    """Run one promotion and resolution sweep now."""
    report = governance.run_sweep()
    click.echo(json.dumps(report.to_dict(), indent=2))


@app.cli.command('cleanup')
def cleanup():
    """Remove booking leads older than two weeks."""
    removed = cleanup_booking_leads(leads)
    click.echo(f"Removed {removed} old booking lead(s).")


@app.cli.command('create-user')
@click.argument('username')
@click.argument('email')
@click.password_option()
def create_user(username, email, password):
    """Create a verified member account."""
    password_hash = password_service.hash_password(password)
    user = users.create(username, email.strip().lower(), password_hash)
    users.mark_verified(user.email)
    click.echo(f"User {user.username} created with id {user.id}.")
