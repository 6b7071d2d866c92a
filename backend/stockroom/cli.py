# Overview: Flask CLI command group for bootstrap and ledger inspection.

# backend/stockroom/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask stock <command> [options]
#
# - python -m flask stock init-db
#   Create all tables (no-op for tables that already exist).
# - python -m flask stock reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask stock seed-demo [--force]
#   Load a small demo catalog with opening stock. Requires DEMO_SEED_ENABLED=1 or --force.
# - python -m flask stock verify-ledger [--product-id 1]
#   Compare every balance with the sum of its transactions. Exits 1 on mismatch.
# - python -m flask stock low-stock
#   List products at or under their minimum stock threshold.

import click
from flask import current_app
from flask.cli import with_appcontext

from .errors import StockroomError
from .extensions import db
from .models import Product
from .services import inventory_service, products_service, purchase_service


@click.group('stock')
def stock_group():
    """Inventory bootstrap and inspection commands."""


@stock_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables."""
    db.create_all()
    click.echo("PASS Tables created.")


@stock_group.command('reset-db')
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

    click.echo("PASS Database reset complete.")


DEMO_PRODUCTS = [
    {
        "product": {
            "name": "Mineral Water 550ml",
            "base_unit": "bottle",
            "purchase_price": "0.80",
            "retail_price": "1.50",
            "supplier": "Spring Co.",
            "min_stock_threshold": "24",
        },
        "units": [{"name": "case", "conversion_rate": "24"}],
        "opening": ("case", "10"),
    },
    {
        "product": {
            "name": "Copper Cable 2.5mm",
            "base_unit": "m",
            "purchase_price": "1.2000",
            "retail_price": "2.5000",
            "supplier": "Wire Works",
            "min_stock_threshold": "50",
        },
        "units": [{"name": "roll", "conversion_rate": "100", "retail_price": "230.00"}],
        "opening": ("roll", "3"),
    },
    {
        "product": {
            "name": "Hex Bolt M8",
            "base_unit": "pc",
            "purchase_price": "0.0500",
            "retail_price": "0.1500",
            "supplier": "Fastener Depot",
        },
        "units": [{"name": "box", "conversion_rate": "200"}],
        "opening": ("box", "5"),
    },
]


@stock_group.command('seed-demo')
@click.option('--force', is_flag=True, help='Seed even when DEMO_SEED_ENABLED is off')
@with_appcontext
def seed_demo(force):
    """Create demo products and receive opening stock through a purchase order."""
    if not (force or current_app.config.get("DEMO_SEED_ENABLED")):
        raise click.ClickException("Demo seeding is disabled (set DEMO_SEED_ENABLED=1 or pass --force)")

    if db.session.query(Product.id).first():
        click.echo("SKIP Catalog is not empty; demo data not loaded.")
        return

    lines = []
    try:
        for spec in DEMO_PRODUCTS:
            product = products_service.create_product(dict(spec["product"]))
            for unit in spec["units"]:
                products_service.add_package_unit(product.id, dict(unit))
            unit, quantity = spec["opening"]
            lines.append({"product_id": product.id, "quantity": quantity, "unit": unit})
            click.echo(f"  + {product.code} {product.name}")

        order = purchase_service.create_purchase_order(supplier="Opening stock", items=lines)
        purchase_service.confirm_purchase_order(order.id)
    except StockroomError as e:
        raise click.ClickException(e.message)

    click.echo(f"PASS Demo data loaded (opening order {order.order_number}).")


@stock_group.command('verify-ledger')
@click.option('--product-id', type=int, default=None, help='Check a single product')
@with_appcontext
def verify_ledger(product_id):
    """Compare balances with transaction sums."""
    try:
        result = inventory_service.verify_ledger(product_id)
    except StockroomError as e:
        raise click.ClickException(e.message)

    click.echo(f"Checked {result['checked']} product(s)")
    for row in result["mismatches"]:
        click.echo(
            f"FAIL product {row['product_id']} ({row['product_name']}): "
            f"record {row['record_quantity']} != ledger {row['ledger_quantity']}"
        )
    if not result["consistent"]:
        raise SystemExit(1)
    click.echo("PASS Ledger is consistent.")


@stock_group.command('low-stock')
@with_appcontext
def low_stock():
    """List products at or under their minimum stock threshold."""
    rows = inventory_service.list_low_stock()
    if not rows:
        click.echo("No low-stock products.")
        return
    for row in rows:
        click.echo(
            f"{row['code']}  {row['name']:<30} qty={row['quantity']} "
            f"min={row['min_stock_threshold']} deficit={row['deficit']}"
        )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(stock_group)
