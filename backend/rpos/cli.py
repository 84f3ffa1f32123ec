# Overview: Flask CLI command groups for bootstrap, receipt numbering, and the kitchen feed.

# backend/rpos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system seed-demo [--code DEMO]
#   Create a demo restaurant, one user per role, tables, receipt series and a
#   SAVE10 discount, then print a bearer token per user.
# - python -m flask system token --email admin@demo.rpos
#   Print a fresh bearer token for a user.
#
# Receipt numbering:
# - python -m flask receipts series --restaurant-id 1
#   List receipt series with their current counters.
# - python -m flask receipts preview --restaurant-id 1 --type BOLETA
#   Show the next number (advisory, nothing is reserved).
# - python -m flask receipts next --restaurant-id 1 --type TICKET
#   Mint a number outside a payment (e.g. a reprinted ticket). Consumes it.
#
# Cash register:
# - python -m flask shifts list --restaurant-id 1 [--open-only]
#   List recent shifts with their reconciliation figures.
#
# Kitchen feed:
# - python -m flask kitchen watch --restaurant-id 1 [--interval 3] [--max-polls N]
#   Print newly created kitchen orders as they appear (best effort).

from datetime import timedelta

import click
from flask import current_app
from flask.cli import with_appcontext

from .errors import SettlementError
from .extensions import db
from .models import CashRegisterShift, DiningTable, Restaurant, User
from .money import format_cents
from .permissions import VALID_ROLES
from .services import discount_service, receipt_service, session_service
from .services.order_service import KitchenOrderWatcher
from .time_utils import utcnow


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database schema ready.")


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

    click.echo("PASS Database reset complete. Run 'python -m flask system seed-demo' to add demo data.")


@system_group.command('seed-demo')
@click.option('--name', default='Demo Restaurant', show_default=True, help='Restaurant name')
@click.option('--code', default='DEMO', show_default=True, help='Restaurant code (unique)')
@click.option('--tables', 'table_count', type=int, default=8, show_default=True, help='Number of tables')
@with_appcontext
def seed_demo(name, code, table_count):
    """
    Idempotent demo bootstrap.

    Creates the restaurant, one user per role, dining tables, an active
    BOLETA/FACTURA/TICKET series and a SAVE10 discount code.
    """
    db.create_all()

    restaurant = db.session.query(Restaurant).filter_by(code=code).first()
    if not restaurant:
        restaurant = Restaurant(name=name, code=code, is_active=True, order_counter=0)
        db.session.add(restaurant)
        db.session.commit()
        click.echo(f"PASS Created restaurant {restaurant.name} (id={restaurant.id})")

    users = []
    for role in sorted(VALID_ROLES):
        email = f"{role.lower()}@{code.lower()}.rpos"
        user = db.session.query(User).filter_by(email=email).first()
        if not user:
            user = User(restaurant_id=restaurant.id, name=role.title(), email=email, role=role, is_active=True)
            db.session.add(user)
        users.append(user)
    db.session.commit()

    existing_numbers = {t.number for t in db.session.query(DiningTable).filter_by(restaurant_id=restaurant.id)}
    for number in range(1, table_count + 1):
        if str(number) not in existing_numbers:
            db.session.add(DiningTable(restaurant_id=restaurant.id, number=str(number), capacity=4, status="AVAILABLE"))
    db.session.commit()

    for document_type, series in (("BOLETA", "B001"), ("FACTURA", "F001"), ("TICKET", "T001")):
        if not receipt_service.get_active_series(restaurant.id, document_type):
            receipt_service.create_series(restaurant.id, document_type, series)

    if not discount_service.list_discounts(restaurant.id):
        now = utcnow()
        discount_service.create_discount(
            restaurant.id,
            code="SAVE10",
            name="10% off (max 5.00)",
            discount_type=discount_service.DISCOUNT_PERCENTAGE,
            value=10,
            valid_from=now - timedelta(days=1),
            valid_until=now + timedelta(days=365),
            max_discount_cents=500,
        )

    click.echo("\n" + "=" * 100)
    click.echo(f"{'ID':<5} {'Role':<10} {'Email':<30} Token")
    click.echo("=" * 100)
    for user in users:
        click.echo(f"{user.id:<5} {user.role:<10} {user.email:<30} {session_service.issue_token(user)}")
    click.echo("=" * 100 + "\n")


@system_group.command('token')
@click.option('--email', required=True, help='User email')
@with_appcontext
def issue_token_cli(email):
    """Print a bearer token for an existing user."""
    user = db.session.query(User).filter_by(email=email).first()
    if not user:
        raise click.ClickException(f"User not found: {email}")
    click.echo(session_service.issue_token(user))


@click.group('receipts')
def receipts_group():
    """Receipt series inspection and numbering."""


@receipts_group.command('series')
@click.option('--restaurant-id', type=int, required=True)
@with_appcontext
def list_series_cli(restaurant_id):
    rows = receipt_service.list_series(restaurant_id)
    if not rows:
        click.echo("No receipt series configured.")
        return

    click.echo(f"\n{'ID':<5} {'Type':<12} {'Series':<8} {'Current':<10} Active")
    click.echo("-" * 45)
    for row in rows:
        click.echo(f"{row.id:<5} {row.document_type:<12} {row.series:<8} {row.current_number:<10} {'Yes' if row.is_active else 'No'}")


@receipts_group.command('preview')
@click.option('--restaurant-id', type=int, required=True)
@click.option('--type', 'document_type', required=True, help='BOLETA, FACTURA, NOTA_VENTA, TICKET')
@with_appcontext
def preview_cli(restaurant_id, document_type):
    """Show the next number without reserving it."""
    try:
        preview = receipt_service.preview_next_number(restaurant_id, document_type)
    except SettlementError as e:
        raise click.ClickException(e.message)
    click.echo(f"{preview['formatted']} (advisory)")


@receipts_group.command('next')
@click.option('--restaurant-id', type=int, required=True)
@click.option('--type', 'document_type', required=True, help='BOLETA, FACTURA, NOTA_VENTA, TICKET')
@with_appcontext
def next_number_cli(restaurant_id, document_type):
    """Mint and consume the next number for a document type."""
    try:
        number = receipt_service.issue_receipt_number(restaurant_id, document_type)
    except SettlementError as e:
        raise click.ClickException(e.message)
    current_app.logger.info("Receipt number %s issued from the CLI", number)
    click.echo(number)


@click.group('shifts')
def shifts_group():
    """Cash register shift inspection."""


@shifts_group.command('list')
@click.option('--restaurant-id', type=int, required=True)
@click.option('--open-only', is_flag=True, help='Only shifts that are still open')
@click.option('--limit', type=int, default=20, show_default=True)
@with_appcontext
def list_shifts_cli(restaurant_id, open_only, limit):
    query = db.session.query(CashRegisterShift).filter_by(restaurant_id=restaurant_id)
    if open_only:
        query = query.filter(CashRegisterShift.closed_at.is_(None))
    shifts = query.order_by(CashRegisterShift.opened_at.desc()).limit(limit).all()

    symbol = current_app.config.get("CURRENCY_SYMBOL", "S/")
    click.echo("\n" + "=" * 100)
    click.echo(f"{'ID':<5} {'User':<6} {'Turn':<10} {'Opened':<20} {'Expected':<14} {'Counted':<14} Difference")
    click.echo("=" * 100)
    for shift in shifts:
        expected = format_cents(shift.expected_cash_cents, symbol) if shift.expected_cash_cents is not None else "-"
        counted = format_cents(shift.closing_cash_cents, symbol) if shift.closing_cash_cents is not None else "-"
        difference = format_cents(shift.difference_cents, symbol) if shift.difference_cents is not None else "OPEN"
        click.echo(f"{shift.id:<5} {shift.user_id:<6} {shift.turn:<10} {str(shift.opened_at)[:19]:<20} "
                   f"{expected:<14} {counted:<14} {difference}")
    click.echo("=" * 100 + "\n")


@click.group('kitchen')
def kitchen_group():
    """Kitchen display feed."""


@kitchen_group.command('watch')
@click.option('--restaurant-id', type=int, required=True)
@click.option('--interval', type=float, default=None, help='Seconds between polls (default from config)')
@click.option('--max-polls', type=int, default=None, help='Stop after N polls')
@click.option('--skip-existing', is_flag=True, help='Do not announce orders already in the kitchen')
@with_appcontext
def kitchen_watch_cli(restaurant_id, interval, max_polls, skip_existing):
    """Print new kitchen orders as they are created."""
    watcher = KitchenOrderWatcher(restaurant_id)
    if skip_existing:
        watcher.prime()

    def announce(orders):
        for order in orders:
            table = f"table {order.table_id}" if order.table_id else order.order_type
            click.echo(f"NEW  {order.order_number} ({table}) {order.status} {order.customer_name or ''}".rstrip())

    try:
        watcher.run(announce, interval=interval, max_polls=max_polls)
    except KeyboardInterrupt:
        click.echo("Stopped.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(receipts_group)
    app.cli.add_command(shifts_group)
    app.cli.add_command(kitchen_group)
