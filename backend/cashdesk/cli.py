# Overview: Flask CLI command groups for bootstrap, inspection, and the daily escalation tick.

# backend/cashdesk/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create missing tables and seed engine settings from the environment.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Deficits:
# - python -m flask deficits list [--status pending]
#   List deficits, newest first.
# - python -m flask deficits show 12
#   Show one deficit with its payment ledger.
# - python -m flask deficits escalate [--today 2026-10-19]
#   Promote pending deficits past their due date. Schedule once per day (cron).
# - python -m flask deficits capacity [--period 2026-10]
#   Payroll deduction capacity for a month (advisory).
#
# Settings:
# - python -m flask settings show
#   Print engine settings (the PIN hash is never shown).

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .models.deficits import VALID_STATUSES
from .money import format_cents
from .services import escalation_service, payroll_service, settings_service
from .services.deficit_store import get_store
from .services.settlement_service import workflow_stage
from .time_utils import parse_iso_date


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create missing tables and seed engine settings (idempotent)."""
    click.echo("BUILD  Creating missing tables...")
    db.create_all()

    settings = settings_service.get_settings()
    click.echo(
        f"PASS Settings ready: grace {settings.due_date_grace_days} day(s), "
        f"monthly salary {format_cents(settings.monthly_salary_cents)}"
    )
    click.echo(f"PASS {len(get_store())} deficit record(s) loaded")


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

    # Cached collection belongs to the dropped data
    current_app.extensions.pop("deficit_store", None)

    click.echo("PASS Database reset complete. Run 'python -m flask system init-db' to seed settings.")


@click.group('deficits')
def deficits_group():
    """Deficit inspection and scheduled jobs."""


@deficits_group.command('list')
@click.option('--status', type=click.Choice(VALID_STATUSES), help='Filter by status')
@with_appcontext
def list_deficits_cli(status):
    """
    List deficits, newest first.

    Example:
        flask deficits list
        flask deficits list --status overdue
    """
    records = get_store().list(status=status)

    if not records:
        click.echo("No deficits found.")
        return

    click.echo("\n" + "="*100)
    click.echo(f"{'ID':<5} {'Date':<12} {'Shift':<7} {'Short':>14} {'Remaining':>14} {'Status':<9} {'Stage'}")
    click.echo("="*100)

    for r in records:
        click.echo(
            f"{r.id:<5} {r.date.isoformat():<12} {r.shift:<7} "
            f"{format_cents(r.short_amount_cents):>14} {format_cents(r.remaining_balance_cents):>14} "
            f"{r.status:<9} {workflow_stage(r)}"
        )

    click.echo("="*100 + "\n")


@deficits_group.command('show')
@click.argument('record_id', type=int)
@with_appcontext
def show_deficit_cli(record_id):
    """Show one deficit with its payment ledger."""
    from .validation import NotFound

    try:
        r = get_store().get(record_id)
    except NotFound as e:
        raise click.ClickException(str(e))

    click.echo(f"Deficit #{r.id} ({r.shift}, {r.date.isoformat()}, due {r.due_date.isoformat()})")
    click.echo(f"  Short:     {format_cents(r.short_amount_cents)}")
    click.echo(f"  Remaining: {format_cents(r.remaining_balance_cents)}")
    click.echo(f"  Status:    {r.status}{' (was overdue)' if r.was_overdue else ''}")
    click.echo(f"  Stage:     {workflow_stage(r)}")
    if r.paid_from_payroll:
        click.echo(f"  Payroll:   {r.payroll_period}")
    if r.receipt_number:
        click.echo(f"  Receipt:   {r.receipt_number} ({r.copies_printed} copie(s))")

    if r.partial_payments:
        click.echo("  Payments:")
        for p in r.partial_payments:
            marker = "*" if p.synthesized else " "
            click.echo(f"   {marker} {p.timestamp:%Y-%m-%d %H:%M} {format_cents(p.amount_cents):>14} {p.method:<8} {p.notes or ''}")


@deficits_group.command('escalate')
@click.option('--today', 'today_str', help='Business date YYYY-MM-DD (default: today, UTC)')
@with_appcontext
def escalate_cli(today_str):
    """
    Promote pending deficits past their due date to overdue.

    Idempotent; schedule once per day.
    """
    try:
        today = parse_iso_date(today_str) if today_str else None
    except ValueError:
        raise click.BadParameter("expected YYYY-MM-DD", param_hint="--today")

    result = escalation_service.run_escalation(today=today)
    click.echo(
        f"PASS Escalation as of {result.as_of.isoformat()}: "
        f"{result.scanned} pending scanned, {len(result.promoted)} promoted"
    )
    for record_id in result.promoted:
        click.echo(f"  -> deficit {record_id} is now overdue")


@deficits_group.command('capacity')
@click.option('--period', help='Payroll month YYYY-MM (default: current month)')
@with_appcontext
def capacity_cli(period):
    """Show payroll deduction capacity for a month."""
    from .validation import ValidationError

    try:
        capacity = payroll_service.payroll_capacity(period)
    except ValidationError as e:
        raise click.BadParameter(str(e), param_hint="--period")

    click.echo(f"Period:      {capacity.period}")
    click.echo(f"Salary:      {format_cents(capacity.monthly_salary_cents)}")
    click.echo(f"Deductions:  {format_cents(capacity.deductions_cents)} ({len(capacity.record_ids)} deficit(s))")
    click.echo(f"Remaining:   {format_cents(capacity.remaining_cents)}")
    if capacity.over_capacity:
        click.echo("WARN Deductions exceed the monthly salary")


@click.group('settings')
def settings_group():
    """Engine settings."""


@settings_group.command('show')
@with_appcontext
def show_settings_cli():
    settings = settings_service.get_settings()
    for key, value in settings.to_dict().items():
        click.echo(f"{key:<22} {value}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(deficits_group)
    app.cli.add_command(settings_group)
