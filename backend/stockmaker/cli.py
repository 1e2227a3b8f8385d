# Overview: Flask CLI command groups for bootstrap, users and the reminder schedule.

# backend/stockmaker/cli.py
# Commands (run from the backend directory with FLASK_APP=wsgi.py):
#
# - flask system init [--email admin@stockmaker.local] [--password ...]
#   Create tables (if missing) and the first admin user. Idempotent.
# - flask users list
# - flask users create --email staff@shop.in --password "Password123!" --role staff
# - flask reminders run [--date 2026-01-31] [--lookahead 3]
#   The scheduled reminder batch; point cron at this once a day, e.g.
#   0 9 * * *  cd /srv/stockmaker/backend && flask reminders run
# - flask reminders mark-overdue
#   Only flip past-due unpaid sales to overdue, without sending anything.

import json

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import User
from .services.auth_service import AuthError, PasswordValidationError, create_user
from .services import reminder_service
from .time_utils import parse_iso_date


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init')
@click.option('--email', default='admin@stockmaker.local', help='Admin email')
@click.option('--password', default='Password123!', help='Admin password (change it after first login)')
@with_appcontext
def init_system(email, password):
    """Create tables and the first admin account."""
    db.create_all()
    click.echo("PASS Tables ready")

    existing = db.session.query(User).filter_by(role="admin").first()
    if existing:
        click.echo(f"PASS Admin already exists: {existing.email}")
        return

    try:
        user = create_user(email=email, password=password, role="admin", full_name="Administrator")
    except (PasswordValidationError, AuthError) as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Created admin: {user.email}")
    click.echo("WARN Change the default password immediately")


@click.group('users')
def users_group():
    """User management commands."""


@users_group.command('list')
@with_appcontext
def list_users():
    users = db.session.query(User).order_by(User.id.asc()).all()
    if not users:
        click.echo("No users found")
        return
    for user in users:
        status = "active" if user.is_active else "inactive"
        click.echo(f"{user.id:>4}  {user.email:<40} {user.role:<6} {status}")


@users_group.command('create')
@click.option('--email', prompt=True)
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
@click.option('--role', type=click.Choice(['admin', 'staff']), default='staff', show_default=True)
@click.option('--full-name', default=None)
@with_appcontext
def create_user_command(email, password, role, full_name):
    try:
        user = create_user(email=email, password=password, role=role, full_name=full_name)
    except (PasswordValidationError, AuthError) as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Created {user.role} user {user.email} (ID: {user.id})")


@click.group('reminders')
def reminders_group():
    """Payment reminder commands."""


@reminders_group.command('run')
@click.option('--date', 'run_date', default=None, help='Business date YYYY-MM-DD (default: today)')
@click.option('--lookahead', type=int, default=None, help='Days ahead to remind about (default: config)')
@click.option('--json', 'as_json', is_flag=True, help='Print the full result as JSON')
@with_appcontext
def run_reminders(run_date, lookahead, as_json):
    """Send due/overdue payment reminders."""
    try:
        today = parse_iso_date(run_date) if run_date else None
    except ValueError:
        raise click.BadParameter("must be YYYY-MM-DD", param_hint="--date")

    result = reminder_service.run_reminder_batch(today=today, lookahead_days=lookahead)
    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    click.echo(
        f"Reminders for {result.run_date.isoformat()}: scanned={result.scanned} sent={result.sent} "
        f"duplicates={result.skipped_duplicates} no_recipient={result.skipped_no_recipient} "
        f"failed={result.failed} errors={result.errors} marked_overdue={result.marked_overdue}"
    )
    for name, stats in result.channels.items():
        click.echo(f"  {name}: {stats.succeeded}/{stats.attempted} delivered")


@reminders_group.command('mark-overdue')
@with_appcontext
def mark_overdue():
    marked = reminder_service.mark_overdue_sales()
    click.echo(f"Marked {marked} sale(s) overdue")


def register_commands(app):
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(reminders_group)
