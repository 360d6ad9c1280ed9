# Overview: Flask CLI command groups for bootstrap, demo data and staff users.

# backend/clubkasse/cli.py
# Commands Legend (run from the repository root, virtualenv active):
# - flask --app clubkasse system init
#   Create all tables (idempotent). Use `flask db upgrade` for migrated deployments.
# - flask --app clubkasse system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - flask --app clubkasse system seed-demo
#   Demo members and products; opening stock is booked as initial movements.
# - flask --app clubkasse users create-admin --username admin --password "Password123" --role admin
#   Create a staff login for the admin panel or the register.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Account, Product
from .services import accounts_service, products_service
from .services.auth_service import create_admin_user
from .validation import ConflictError, ValidationError


DEMO_ACCOUNTS = [
    {"first_name": "Anna", "last_name": "Becker", "role": "member", "barcodes": ["M0001"]},
    {"first_name": "Jonas", "last_name": "Schmidt", "role": "member", "barcodes": ["M0002"], "balance_cents": -1250},
    {"first_name": "Gast", "last_name": "Tresen", "role": "guest", "barcodes": ["G0001"]},
    {"first_name": "Bar", "last_name": "Team", "role": "bartender", "barcodes": ["B0001"]},
]

DEMO_PRODUCTS = [
    {"name": "Pils 0,33", "category": "bier", "image": "🍺", "member_price_cents": 150, "guest_price_cents": 200, "stock": 48, "barcodes": ["4001234000011"]},
    {"name": "Cola 0,33", "category": "softdrinks", "image": "🥤", "member_price_cents": 120, "guest_price_cents": 150, "stock": 24, "barcodes": ["4001234000028"]},
    {"name": "Wasser 0,5", "category": "softdrinks", "image": "💧", "member_price_cents": 80, "guest_price_cents": 100, "stock": 36},
    {"name": "Chips", "category": "snacks", "image": "🥔", "member_price_cents": 100, "guest_price_cents": 150, "stock": 10, "min_stock": 3},
    {"name": "Flipper Credit", "category": "spiele", "image": "🕹️", "member_price_cents": 50, "guest_price_cents": 100},
]


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """Create all tables that do not exist yet."""
    click.echo("START Creating tables...")
    db.create_all()
    click.echo("PASS Schema ready.")


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

    click.echo("PASS Database reset complete. Run 'flask --app clubkasse system seed-demo' for demo data.")


@system_group.command('seed-demo')
@with_appcontext
def seed_demo():
    """Insert demo accounts and products. Existing barcodes/names are skipped."""
    db.create_all()

    for data in DEMO_ACCOUNTS:
        try:
            created = accounts_service.create_account(patch=dict(data))
            click.echo(f"PASS Created account {created['full_name']} (ID: {created['id']})")
        except ConflictError as e:
            click.echo(f"WARN  Skipping account {data['first_name']} {data['last_name']}: {e}")

    for data in DEMO_PRODUCTS:
        if db.session.query(Product).filter_by(name=data["name"]).first() is not None:
            click.echo(f"WARN  Product '{data['name']}' already exists, skipping...")
            continue
        try:
            created = products_service.create_product(patch=dict(data), actor="seed")
            click.echo(f"PASS Created product {created['name']} (stock {created['stock']})")
        except ConflictError as e:
            click.echo(f"WARN  Skipping product {data['name']}: {e}")

    accounts = db.session.query(Account).count()
    products = db.session.query(Product).count()
    click.echo(f"DONE {accounts} accounts, {products} products.")


@click.group('users')
def users_group():
    """Staff login management."""


@users_group.command('create-admin')
@click.option('--username', prompt=True, help='Username')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(['admin', 'bartender']), default='admin', show_default=True, help='Role')
@with_appcontext
def create_admin_cli(username, password, role):
    """Create a staff user (password hashed with bcrypt)."""
    try:
        user = create_admin_user(username, password, role)
    except (ValidationError, ConflictError) as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Created user: {user.username} with role '{user.role}' (ID: {user.id})")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
