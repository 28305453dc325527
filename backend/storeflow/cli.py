# Overview: Flask CLI command groups for bootstrap and day-to-day operations.

# backend/storeflow/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py.
# - Use: python -m flask <group> <command> [options]
#
# Schema:
# - python -m flask db upgrade
#   Apply Alembic migrations (Flask-Migrate).
#
# Locations:
# - python -m flask locations create --name "Main Shop" --code "MAIN"
# - python -m flask locations list
#
# Catalog / stock:
# - python -m flask products create --location-id 1 --actor-id 1 --name "Rice 5kg" --selling-price 9000 --cost-price 7000 --max-discount 10
# - python -m flask inventory adjust --location-id 1 --actor-id 1 --product-id 1 --qty-change 20 --reason "Opening stock"
#
# Cash sessions:
# - python -m flask sessions open --location-id 1 --cashier-id 3 --opening-balance 5000

import click
from flask.cli import with_appcontext

from .extensions import db
from .errors import WorkflowError
from .models import Location
from .services import inventory_service, products_service, cash_session_service
from .time_utils import utcnow


def _fail(exc: WorkflowError) -> None:
    click.echo(f"FAIL {exc.kind.value}: {exc.message} {exc.context or ''}".rstrip())


@click.group('locations')
def locations_group():
    """Location (tenant) management."""


@locations_group.command('create')
@click.option('--name', required=True, help='Location name')
@click.option('--code', required=True, help='Short code (unique)')
@with_appcontext
def create_location_cli(name, code):
    existing = db.session.query(Location).filter_by(code=code).first()
    if existing:
        click.echo(f"FAIL Location with code '{code}' already exists")
        return

    location = Location(name=name, code=code, is_active=True, created_at=utcnow())
    db.session.add(location)
    db.session.commit()
    click.echo(f"PASS Created location: {location.name} (ID: {location.id}, Code: {location.code})")


@locations_group.command('list')
@with_appcontext
def list_locations_cli():
    for location in db.session.query(Location).order_by(Location.id.asc()).all():
        status = "active" if location.is_active else "inactive"
        click.echo(f"{location.id}\t{location.code}\t{location.name}\t{status}")


@click.group('products')
def products_group():
    """Catalog commands."""


@products_group.command('create')
@click.option('--location-id', type=int, required=True)
@click.option('--actor-id', type=int, required=True)
@click.option('--name', required=True)
@click.option('--selling-price', type=int, required=True, help='Minor currency units')
@click.option('--cost-price', type=int, default=0, show_default=True)
@click.option('--max-discount', type=float, default=0.0, show_default=True, help='Max discount percent (0-100)')
@click.option('--unit', default='unit', show_default=True)
@click.option('--sku', default=None)
@with_appcontext
def create_product_cli(location_id, actor_id, name, selling_price, cost_price, max_discount, unit, sku):
    try:
        product = products_service.create_product(
            location_id=location_id,
            actor_id=actor_id,
            name=name,
            selling_price=selling_price,
            cost_price=cost_price,
            max_discount_percent=max_discount,
            unit=unit,
            sku=sku,
        )
    except WorkflowError as exc:
        _fail(exc)
        return
    click.echo(f"PASS Created product: {product.name} (ID: {product.id})")


@click.group('inventory')
def inventory_group():
    """Stock commands."""


@inventory_group.command('adjust')
@click.option('--location-id', type=int, required=True)
@click.option('--actor-id', type=int, required=True)
@click.option('--product-id', type=int, required=True)
@click.option('--qty-change', type=int, required=True, help='Positive to add stock, negative to remove')
@click.option('--reason', default=None)
@with_appcontext
def adjust_inventory_cli(location_id, actor_id, product_id, qty_change, reason):
    try:
        result = inventory_service.adjust_inventory(
            location_id=location_id,
            product_id=product_id,
            delta=qty_change,
            reason=reason,
            actor_id=actor_id,
        )
    except WorkflowError as exc:
        _fail(exc)
        return
    click.echo(f"PASS Product {result.product_id}: qty_on_hand={result.qty_on_hand}")


@click.group('sessions')
def sessions_group():
    """Cash session commands."""


@sessions_group.command('open')
@click.option('--location-id', type=int, required=True)
@click.option('--cashier-id', type=int, required=True)
@click.option('--opening-balance', type=int, default=0, show_default=True)
@with_appcontext
def open_session_cli(location_id, cashier_id, opening_balance):
    try:
        session = cash_session_service.open_session(
            location_id=location_id,
            cashier_id=cashier_id,
            opening_balance=opening_balance,
        )
    except WorkflowError as exc:
        _fail(exc)
        return
    click.echo(f"PASS Opened cash session {session.id} for cashier {cashier_id}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(locations_group)
    app.cli.add_command(products_group)
    app.cli.add_command(inventory_group)
    app.cli.add_command(sessions_group)
