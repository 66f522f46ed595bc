# Overview: Flask CLI command groups for bootstrap and maintenance.

# backend/storefront/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--admin-email admin@storefront.local --admin-password "Admin123"]
#   Idempotent bootstrap: creates tables, default categories and an admin account.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask users create-admin --name "Admin" --email admin@storefront.local --password "Admin123"
#   Create an administrator (or promote an existing account).
#
# Sessions:
# - python -m flask sessions cleanup
#   Delete expired login sessions.

import click
from flask.cli import with_appcontext

from .extensions import db
from .services.auth_service import create_admin, PasswordValidationError
from .services.products_service import ensure_category
from .services.session_service import cleanup_expired_sessions
from .validation import ValidationError

DEFAULT_CATEGORIES = [
    ("Hardware", "hardware", "PC components: processors, graphics cards, memory, storage"),
    ("Peripherals", "peripherals", "Keyboards, mice, headsets and controllers"),
    ("Speakers", "speakers", "Speakers and audio equipment"),
    ("Consoles", "consoles", "Video game consoles"),
    ("Games", "games", "Video games for every platform"),
    ("Combos", "combos", "Bundles and special packs"),
]


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--admin-name', default='Administrator', help='Admin display name')
@click.option('--admin-email', default='admin@storefront.local', help='Admin email')
@click.option('--admin-password', default='Admin123', help='Admin password')
@with_appcontext
def init_system(admin_name, admin_email, admin_password):
    """
    Initialize the storefront: schema, default categories, admin account.

    SECURITY: Change the admin password immediately in production!
    """
    click.echo("START Initializing storefront...")

    db.create_all()
    click.echo("PASS Tables ready")

    for name, slug, description in DEFAULT_CATEGORIES:
        ensure_category(name, slug, description)
    click.echo(f"PASS Categories: {', '.join(c[0] for c in DEFAULT_CATEGORIES)}")

    try:
        admin = create_admin(admin_name, admin_email, admin_password)
    except (PasswordValidationError, ValidationError) as e:
        raise click.ClickException(f"Admin creation failed: {e}")
    click.echo(f"PASS Admin account: {admin.email}")

    click.echo("\nDONE Storefront initialized")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()
    click.echo("BUILD Creating all tables...")
    db.create_all()
    click.echo("PASS Database reset complete")


@click.group('users')
def users_group():
    """User management commands."""


@users_group.command('create-admin')
@click.option('--name', prompt=True, help='Display name')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@with_appcontext
def create_admin_command(name, email, password):
    """Create an administrator, or promote an existing account by email."""
    try:
        user = create_admin(name, email, password)
    except (PasswordValidationError, ValidationError) as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Admin ready: {user.email} (ID: {user.id})")


@click.group('sessions')
def sessions_group():
    """Login session maintenance."""


@sessions_group.command('cleanup')
@with_appcontext
def cleanup_sessions_command():
    """Delete expired sessions."""
    deleted = cleanup_expired_sessions()
    click.echo(f"PASS Deleted {deleted} expired session(s)")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(sessions_group)
