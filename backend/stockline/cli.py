# Overview: Flask CLI command groups for bootstrap, stock checks, voids and the offline queue.

# backend/stockline/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables (idempotent).
# - python -m flask system seed-demo
#   Create a demo department with unit, volume, variant and master perfume products.
#
# Stock:
# - python -m flask stock check 1 3
# - python -m flask stock check 2 1 --ml-amount 50
# - python -m flask stock check-variant 4 2
#
# Sales:
# - python -m flask sales void 12 --reason "Customer returned" --actor cashier-1
#
# Offline queue:
# - python -m flask queue list
# - python -m flask queue sync
# - python -m flask queue clear --yes
# - python -m flask queue watch [--iterations 10]
#   Probe HEALTH_CHECK_URL every QUEUE_POLL_INTERVAL_SECONDS and replay the queue when it comes back.

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .models import Department, Product, ProductVariant, TRACKING_UNIT, TRACKING_VOLUME
from .services import sales_service, stock_service
from .services.notifications import LogNotifier, Notifier
from .services.offline_queue import operation_summary
from .services.sync_service import build_sync_coordinator


class EchoNotifier(Notifier):
    """Prints operator messages to the terminal."""

    _PREFIX = {"info": "INFO", "success": "PASS", "warning": "WARN", "error": "FAIL"}

    def notify(self, level: str, message: str) -> None:
        click.echo(f"{self._PREFIX.get(level, level.upper())} {message}", err=level == "error")


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables."""
    db.create_all()
    click.echo("PASS Database tables created.")


@system_group.command('seed-demo')
@click.option('--department', 'department_name', default='Main Shop', show_default=True)
@with_appcontext
def seed_demo(department_name):
    """Create a department with one product of each stock kind."""
    department = db.session.query(Department).filter_by(name=department_name).first()
    if not department:
        department = Department(name=department_name)
        db.session.add(department)
        db.session.flush()

    master_name = current_app.config["MASTER_VOLUME_PRODUCT_NAME"]
    soap = Product(department_id=department.id, name="Bar Soap", tracking_mode=TRACKING_UNIT, unit_stock=10)
    master = Product(department_id=department.id, name=master_name, tracking_mode=TRACKING_VOLUME, volume_stock=500.0)
    body_oil = Product(department_id=department.id, name="Body Oil", tracking_mode=TRACKING_VOLUME, volume_stock=1000.0)
    shirt = Product(department_id=department.id, name="T-Shirt", tracking_mode=TRACKING_UNIT, unit_stock=0)
    db.session.add_all([soap, master, body_oil, shirt])
    db.session.flush()

    db.session.add_all([
        ProductVariant(product_id=shirt.id, name="T-Shirt / M", stock=5),
        ProductVariant(product_id=shirt.id, name="T-Shirt / L", stock=3),
    ])
    db.session.commit()

    click.echo(f"PASS Seeded department {department.name} (ID: {department.id})")
    for product in (soap, master, body_oil, shirt):
        click.echo(f"  product {product.id:<4} {product.name:<20} {product.tracking_mode}")


@click.group('stock')
def stock_group():
    """Stock availability checks."""


def _echo_availability(result):
    status = "PASS available" if result.available else "FAIL unavailable"
    click.echo(f"{status} (current stock: {result.current_stock})")
    if result.message:
        click.echo(f"  {result.message}")


@stock_group.command('check')
@click.argument('product_id', type=int)
@click.argument('quantity', type=int)
@click.option('--tracking', help='Tracking hint used when the product has no tracking mode (unit, ml)')
@click.option('--ml-amount', type=float, help='Milliliters requested for volume-tracked products')
@with_appcontext
def check_product(product_id, quantity, tracking, ml_amount):
    """Check whether a product can cover QUANTITY."""
    _echo_availability(stock_service.check_stock_availability(product_id, quantity, tracking, ml_amount))


@stock_group.command('check-variant')
@click.argument('variant_id', type=int)
@click.argument('quantity', type=int)
@with_appcontext
def check_variant(variant_id, quantity):
    """Check whether a variant can cover QUANTITY."""
    _echo_availability(stock_service.check_variant_stock_availability(variant_id, quantity))


@click.group('sales')
def sales_group():
    """Sale maintenance."""


@sales_group.command('void')
@click.argument('sale_id', type=int)
@click.option('--reason', required=True)
@click.option('--actor', 'actor_id', required=True, help='Id of the user performing the void')
@with_appcontext
def void_sale_cli(sale_id, reason, actor_id):
    """Void a completed sale and restore its stock."""
    if not sales_service.void_sale(sale_id, reason, actor_id, notifier=EchoNotifier()):
        raise SystemExit(1)


@click.group('queue')
def queue_group():
    """Offline operation queue."""


@queue_group.command('list')
@with_appcontext
def list_queue():
    """Show pending operations in replay order."""
    operations = current_app.extensions["offline_queue"].get_all()
    if not operations:
        click.echo("Queue is empty.")
        return

    click.echo(f"{'ID':<38} {'Type':<8} {'Table':<18} {'Record':<8} {'Timestamp'}")
    for op in operations:
        summary = operation_summary(op)
        click.echo(
            f"{summary['id']:<38} {summary['type']:<8} {summary['table']:<18} "
            f"{str(summary['record_id']):<8} {summary['timestamp']}"
        )
    click.echo(f"\nTotal: {len(operations)} pending")


@queue_group.command('sync')
@with_appcontext
def sync_queue():
    """Replay the queue once against the record store."""
    queue = current_app.extensions["offline_queue"]
    result = queue.sync()
    status = "WARN" if result.failed else "PASS"
    click.echo(f"{status} {result.success} synced, {result.failed} failed, {queue.count()} still queued")
    if result.failed:
        raise SystemExit(1)


@queue_group.command('clear')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def clear_queue(yes):
    """Drop every pending operation without replaying it."""
    if not yes:
        click.confirm("WARN Pending offline changes will be lost. Are you sure?", abort=True)
    current_app.extensions["offline_queue"].clear()
    click.echo("PASS Queue cleared.")


@queue_group.command('watch')
@click.option('--iterations', type=int, default=None, help='Stop after N polls (default: run until interrupted)')
@click.option('--quiet', is_flag=True, help='Log messages instead of printing them')
@with_appcontext
def watch_queue(iterations, quiet):
    """Poll connectivity and replay the queue whenever the backend comes back online."""
    notifier = LogNotifier() if quiet else EchoNotifier()
    coordinator = build_sync_coordinator(current_app, current_app.extensions["offline_queue"], notifier=notifier)
    click.echo(f"START online={coordinator.is_online} pending={coordinator.queue_count}")
    try:
        coordinator.run(iterations=iterations)
    except KeyboardInterrupt:
        click.echo("\nSTOP watch interrupted")
    label = coordinator.indicator_label()
    if label:
        click.echo(label)


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(stock_group)
    app.cli.add_command(sales_group)
    app.cli.add_command(queue_group)
