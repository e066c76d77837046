# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/retail_api/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--store "Main Store"] [--admin-email admin@retail.local]
#   Idempotent bootstrap: creates tables, a default store and an admin user.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask users list [--store-id 1]
# - python -m flask users create --name "Ana" --email ana@retail.local --password "Password123!" --role user --store-id 1
# - python -m flask users unlock ana@retail.local
#   Clear failed login attempts and any lock.
#
# Inventory:
# - python -m flask inventory low-stock [--store-id 1]
#
# Sessions:
# - python -m flask sessions cleanup --days 30
#   Delete expired or revoked sessions older than the window.

import click
from flask.cli import with_appcontext

from .errors import ApiError
from .extensions import db
from .models import InventoryLedger, Product, Store, User
from .models.auth import ROLES, ROLE_ADMIN
from .schemas import CreateUserRequest
from .services import auth_service, session_service, user_service

DEFAULT_PASSWORD = "Password123!"


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--store', 'store_name', default='Main Store', help='Default store name')
@click.option('--admin-email', default='admin@retail.local', help='Admin email')
@click.option('--admin-password', default=DEFAULT_PASSWORD, help='Admin password')
@with_appcontext
def init_system(store_name, admin_email, admin_password):
    """
    Initialize the system: tables, default store and admin user.

    SECURITY: Change the default password immediately in production!
    """
    click.echo("START Initializing retail system...")
    db.create_all()

    store = db.session.query(Store).filter_by(name=store_name).first()
    if not store:
        store = Store(name=store_name, is_active=True)
        db.session.add(store)
        db.session.commit()
        click.echo(f"PASS Created default store: {store.name} (ID: {store.id})")
    else:
        click.echo(f"PASS Using existing store: {store.name} (ID: {store.id})")

    admin = db.session.query(User).filter_by(email=admin_email.lower()).first()
    if admin:
        click.echo(f"PASS Admin already exists: {admin.email}")
    else:
        try:
            admin = auth_service.create_user(CreateUserRequest(
                name="Administrator",
                email=admin_email.lower(),
                password=admin_password,
                role=ROLE_ADMIN,
            ))
        except ApiError as exc:
            raise click.ClickException(exc.message)
        click.echo(f"PASS Created admin: {admin.email}")

    click.echo("\nDONE System initialized.")


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
    """User inspection and bootstrap."""


@users_group.command('create')
@click.option('--name', prompt=True, help='Display name')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(ROLES), default='user', show_default=True, help='Role')
@click.option('--store-id', type=int, help='Store (required for role=user)')
@with_appcontext
def create_user_cmd(name, email, password, role, store_id):
    """Create a user."""
    if role != ROLE_ADMIN and store_id is None:
        raise click.UsageError("--store-id is required for store users")
    try:
        user = auth_service.create_user(CreateUserRequest(
            name=name,
            email=email.strip().lower(),
            password=password,
            role=role,
            store_id=store_id,
        ))
    except ApiError as exc:
        raise click.ClickException(exc.message)
    click.echo(f"PASS Created user {user.email} (ID: {user.id}, role: {user.role})")


@users_group.command('list')
@click.option('--store-id', type=int, help='Filter by store ID')
@with_appcontext
def list_users(store_id):
    """List all users with role, store and lock state."""
    query = db.session.query(User)
    if store_id:
        query = query.filter_by(store_id=store_id)
    users = query.order_by(User.id).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "=" * 80)
    click.echo(f"{'ID':<5} {'Email':<32} {'Role':<7} {'Store':<7} {'Active':<8} {'Locked'}")
    click.echo("=" * 80)
    for user in users:
        click.echo(
            f"{user.id:<5} {user.email:<32} {user.role:<7} {str(user.store_id or '-'):<7} "
            f"{'Yes' if user.is_active else 'No':<8} {'Yes' if user.is_locked() else 'No'}"
        )
    click.echo("=" * 80 + "\n")


@users_group.command('unlock')
@click.argument('email')
@with_appcontext
def unlock_user(email):
    """Reset failed login attempts and clear the lock."""
    user = db.session.query(User).filter_by(email=email.strip().lower()).first()
    if not user:
        raise click.ClickException(f"User not found: {email}")
    user_service.reset_login_attempts(None, user.id)
    click.echo(f"PASS Unlocked {user.email}")


@click.group('inventory')
def inventory_group():
    """Inventory inspection."""


@inventory_group.command('low-stock')
@click.option('--store-id', type=int, help='Filter by store ID')
@with_appcontext
def low_stock(store_id):
    """List ledger rows at or below their minimum."""
    query = (
        db.session.query(InventoryLedger, Product, Store)
        .join(Product, Product.id == InventoryLedger.product_id)
        .join(Store, Store.id == InventoryLedger.store_id)
        .filter(InventoryLedger.quantity <= InventoryLedger.min_stock)
    )
    if store_id:
        query = query.filter(InventoryLedger.store_id == store_id)
    rows = query.order_by(Store.name, InventoryLedger.quantity).all()

    if not rows:
        click.echo("No low stock rows.")
        return

    for row, product, store in rows:
        click.echo(f"{store.name:<20} {product.sku:<16} {product.name:<30} {row.quantity:>5} / min {row.min_stock}")


@click.group('sessions')
def sessions_group():
    """Session maintenance."""


@sessions_group.command('cleanup')
@click.option('--days', type=int, default=30, show_default=True, help='Keep sessions newer than this')
@with_appcontext
def cleanup_sessions(days):
    """Delete expired or revoked sessions older than the retention window."""
    deleted = session_service.cleanup_expired_sessions(days=days)
    click.echo(f"PASS Deleted {deleted} sessions")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(inventory_group)
    app.cli.add_command(sessions_group)
