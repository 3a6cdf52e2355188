# Overview: Flask CLI command groups for bootstrap, device tokens, and sync maintenance.

# backend/pharmasync/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users and device tokens:
# - python -m flask users create --name "Amina" --role OWNER
#   Create a user; prints the generated id.
# - python -m flask users list
#   List users with role and active status.
# - python -m flask users issue-token --user-id <id> --device "Counter tablet"
#   Issue a bearer token for a device. The token is printed once.
# - python -m flask users revoke-tokens --user-id <id>
#   Revoke every active token of a user (lost device).
#
# Sync maintenance:
# - python -m flask sync purge-keys
#   Delete expired idempotency keys.
# - python -m flask sync expiring --days 60
#   List batches expiring within the window, with their alert level.
# - python -m flask sync fefo-plan --product-id <id> --quantity 8
#   Show which batches a decrement would draw from (read-only).

import uuid

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import User
from .models.auth import ROLES
from .services import fefo_service, idempotency_service, session_service
from .time_utils import to_utc_z
from .validation import AllocationError, ValidationError


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


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

    click.echo("PASS Database reset complete. Run 'python -m flask users create' next.")


@click.group('users')
def users_group():
    """User and device token commands."""


@users_group.command('create')
@click.option('--name', prompt=True, help='Display name')
@click.option('--role', type=click.Choice(ROLES), prompt=True, help='Role')
@click.option('--user-id', default=None, help='Explicit id (a uuid4 is generated otherwise)')
@with_appcontext
def create_user_cli(name, role, user_id):
    """Create a user."""
    user_id = user_id or str(uuid.uuid4())
    if db.session.query(User).filter_by(id=user_id).first():
        click.echo(f"FAIL User {user_id} already exists")
        return

    db.session.add(User(id=user_id, name=name, role=role, is_active=True))
    db.session.commit()
    click.echo(f"PASS Created {role} user: {name}")
    click.echo(f"     User ID: {user_id}")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users."""
    users = db.session.query(User).order_by(User.name).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*90)
    click.echo(f"{'ID':<38} {'Name':<25} {'Role':<10} {'Active'}")
    click.echo("="*90)
    for user in users:
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<38} {user.name:<25} {user.role:<10} {active_str}")
    click.echo("="*90 + "\n")


@users_group.command('issue-token')
@click.option('--user-id', required=True, help='User ID')
@click.option('--device', 'device_label', default=None, help='Device label')
@with_appcontext
def issue_token_cli(user_id, device_label):
    """Issue a bearer token for a device."""
    try:
        session, token = session_service.issue_session(user_id, device_label=device_label)
    except ValueError as e:
        click.echo(f"FAIL {e}")
        return

    click.echo(f"PASS Token issued for {user_id} ({session.role}), expires {to_utc_z(session.expires_at)}")
    click.echo("SECURITY The token is shown only once:")
    click.echo(token)


@users_group.command('revoke-tokens')
@click.option('--user-id', required=True, help='User ID')
@with_appcontext
def revoke_tokens_cli(user_id):
    """Revoke every active token of a user."""
    count = session_service.revoke_all_user_sessions(user_id, reason="Revoked from CLI")
    click.echo(f"PASS Revoked {count} session(s) for {user_id}")


@click.group('sync')
def sync_group():
    """Sync maintenance and inspection commands."""


@sync_group.command('purge-keys')
@with_appcontext
def purge_keys_cli():
    """Delete expired idempotency keys."""
    deleted = idempotency_service.purge_expired()
    click.echo(f"PASS Purged {deleted} expired idempotency key(s)")


@sync_group.command('expiring')
@click.option('--days', type=int, default=fefo_service.WARNING_DAYS, show_default=True)
@with_appcontext
def expiring_cli(days):
    """List batches with stock left that expire within --days."""
    batches = fefo_service.get_expiring_batches(days)
    if not batches:
        click.echo("No batches expiring in that window.")
        return

    for batch in batches:
        level = fefo_service.expiration_alert_level(batch.expiration_date)
        click.echo(
            f"{level:<9} {to_utc_z(batch.expiration_date)} "
            f"lot={batch.lot_number} product={batch.product_id} qty={batch.quantity}"
        )


@sync_group.command('fefo-plan')
@click.option('--product-id', required=True, help='Product ID')
@click.option('--quantity', type=int, required=True, help='Units to allocate')
@with_appcontext
def fefo_plan_cli(product_id, quantity):
    """Show the FEFO allocation for a decrement without applying it."""
    try:
        plan = fefo_service.plan_fefo_allocation(product_id, quantity)
    except (AllocationError, ValidationError) as e:
        click.echo(f"FAIL {e}")
        return

    for allocation in plan.allocations:
        click.echo(f"lot={allocation.lot_number} batch={allocation.batch_id} qty={allocation.quantity}")
    click.echo(f"PASS {plan.total} unit(s) across {len(plan.allocations)} batch(es)")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(sync_group)
