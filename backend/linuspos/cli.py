# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/linuspos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--admin-password "..."]
#   Idempotent bootstrap: creates tables if missing, the settings row and the admin account.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask users list
# - python -m flask users create --username sara --name "Sara" --role staff
# - python -m flask users toggle sara
# - python -m flask users import-legacy users.json
#   Import a JSON export of the old terminal user list (upgraded to the current record version).
#
# Products:
# - python -m flask products import-csv inventory.csv
#   Upsert products from the inventory CSV format (Product,Category,Price,Stock,Barcode).
#
# Maintenance:
# - python -m flask maintenance cleanup-sessions --older-than-days 30
#   Delete expired and revoked session tokens.

import csv
import json

import click
from flask.cli import with_appcontext

from .extensions import db
from .models.auth import ROLES, ROLE_STAFF
from .services import auth_service, products_service, session_service, settings_service, user_records
from .services.auth_service import ProtectedAccountError, UserNotFoundError
from .validation import ValidationError, ConflictError


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--admin-password', default='admin123', show_default=True, help='Password for a newly created admin')
@with_appcontext
def init_system(admin_password):
    """
    Initialize the POS: schema, settings row and admin account.

    Safe to run repeatedly; existing data is left alone.

    SECURITY: Change the admin password immediately in production!
    """
    click.echo("START Initializing Linus POS...")

    db.create_all()
    click.echo("PASS Schema ready")

    settings = settings_service.get_settings()
    click.echo(f"PASS Settings: {settings.store_name} ({settings.currency}, tax {settings.tax_rate})")

    try:
        admin, created = auth_service.ensure_admin(admin_password)
    except ValidationError as e:
        raise click.ClickException(f"Admin password rejected: {e}")

    if created:
        click.echo(f"PASS Created admin account '{admin.username}'")
        click.echo("\nSECURITY Change the admin password in production!")
    else:
        click.echo(f"WARN  Admin account '{admin.username}' already exists, skipping...")

    click.echo("DONE Linus POS initialized")


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

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete. Run 'python -m flask system init' to initialize.")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with their permissions."""
    users = auth_service.list_users()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*90)
    click.echo(f"{'ID':<5} {'Username':<20} {'Name':<25} {'Role':<7} {'Active':<8} {'Permissions'}")
    click.echo("="*90)

    for user in users:
        perms = user.permissions.to_dict() if user.permissions else {}
        granted = ", ".join(code for code, on in perms.items() if on) or "none"
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.username:<20} {user.name:<25} {user.role:<7} {active_str:<8} {granted}")

    click.echo("="*90 + "\n")


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--name', prompt=True, help='Display name')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(list(ROLES)), default=ROLE_STAFF, show_default=True, help='Role (seeds permissions)')
@with_appcontext
def create_user_cli(username, name, password, role):
    """Create a user; permissions default from the role."""
    try:
        user = auth_service.create_user(username=username, password=password, name=name, role=role)
    except (ValidationError, ConflictError) as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Created user: {user.username} with role '{user.role}'")


@users_group.command('toggle')
@click.argument('username')
@with_appcontext
def toggle_user_cli(username):
    """Activate or deactivate a user."""
    try:
        user = auth_service.toggle_user_active(username)
    except (ProtectedAccountError, UserNotFoundError) as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS {user.username} is now {'active' if user.is_active else 'inactive'}")


@users_group.command('import-legacy')
@click.argument('path', type=click.Path(exists=True, dir_okay=False))
@with_appcontext
def import_legacy_users(path):
    """Import a JSON list of users exported from the old terminals."""
    with open(path, encoding="utf-8") as f:
        try:
            records = json.load(f)
        except json.JSONDecodeError as e:
            raise click.ClickException(f"Invalid JSON: {e}")

    try:
        imported, skipped = user_records.import_user_records(records)
    except ValidationError as e:
        db.session.rollback()
        raise click.ClickException(str(e))

    click.echo(f"PASS Imported {imported} user(s), skipped {skipped} existing")


def read_inventory_csv(stream) -> list[dict]:
    """
    Parse the inventory CSV layout back into product payloads.

    Rows whose barcode matches an existing product update it; the rest are created.
    """
    rows = []
    reader = csv.DictReader(stream)
    for line_no, row in enumerate(reader, start=2):
        name = (row.get("Product") or "").strip()
        if not name:
            continue
        barcode = (row.get("Barcode") or "").strip().lstrip("'")
        payload = {
            "name": name,
            "category": (row.get("Category") or "").strip(),
            "price": (row.get("Price") or "").strip(),
            "stock": (row.get("Stock") or "0").strip() or "0",
            "barcode": barcode,
        }
        existing = products_service.find_by_barcode(barcode) if barcode else None
        if existing:
            payload["id"] = existing.id
        rows.append(payload)
    return rows


@click.group('products')
def products_group():
    """Inventory bulk commands."""


@products_group.command('import-csv')
@click.argument('path', type=click.Path(exists=True, dir_okay=False))
@with_appcontext
def import_products_csv(path):
    """Upsert products from an inventory CSV export. All rows or none."""
    # utf-8-sig strips the BOM written by the export
    with open(path, encoding="utf-8-sig", newline="") as f:
        payloads = read_inventory_csv(f)

    if not payloads:
        click.echo("No products found in file.")
        return

    try:
        saved = products_service.upsert_products(payloads)
    except (ValidationError, ConflictError) as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Imported {len(saved)} product(s)")


@click.group('maintenance')
def maintenance_group():
    """Housekeeping commands."""


@maintenance_group.command('cleanup-sessions')
@click.option('--older-than-days', type=int, default=30, show_default=True)
@with_appcontext
def cleanup_sessions(older_than_days):
    """Delete expired and revoked session tokens."""
    deleted = session_service.cleanup_expired_sessions(older_than_days=older_than_days)
    click.echo(f"PASS Deleted {deleted} session(s)")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(products_group)
    app.cli.add_command(maintenance_group)
