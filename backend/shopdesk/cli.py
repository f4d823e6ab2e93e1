# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/shopdesk/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# Shops:
# - python -m flask shop create --name "Corner Cafe" --code CAFE --latitude 51.5 --longitude -0.12
#   Create a shop (tenant). Coordinates enable the geofence.
# - python -m flask shop list
#   List shops with plan and payment status.
# - python -m flask shop expire-grace
#   Downgrade shops whose billing grace period has ended.
#
# Staff:
# - python -m flask staff create --shop-id 1 --first-name Ana --pin 1234
#   Create an employee; the initial PIN must be changed on first use.
# - python -m flask staff list --shop-id 1
#   List employees with active flag and PIN status.
# - python -m flask staff require-pin-change 7
#   Force an employee through the change-PIN flow.
# - python -m flask staff deactivate 7
#   Deactivate an employee (never deleted).
#
# Loyalty:
# - python -m flask loyalty audit --shop-id 1
#   Replay every customer's transactions and report ledger mismatches.
#
# Shift sessions:
# - python -m flask sessions open --shop-id 1
#   List open shift sessions.
# - python -m flask sessions requests --shop-id 1
#   List pending remote clock-in requests.
# - python -m flask sessions resolve-request 12 --approve --reviewer "Sam"
#   Approve (or --reject) a remote clock-in request.

import click
from flask.cli import with_appcontext

from .errors import ShopdeskError
from .extensions import db
from .models import Employee, Shop
from .services import billing_service, geofence_service, loyalty_service, pin_service, shift_service


# =============================================================================
# SHOP COMMANDS
# =============================================================================

@click.group('shop')
def shop_group():
    """Shop (tenant) management commands."""


@shop_group.command('create')
@click.option('--name', required=True, help='Shop name')
@click.option('--code', help='Short code (unique)')
@click.option('--timezone', 'tz_name', default='UTC', show_default=True, help='IANA timezone')
@click.option('--latitude', type=float, help='Shop latitude for the geofence')
@click.option('--longitude', type=float, help='Shop longitude for the geofence')
@click.option('--points-needed', type=int, default=10, show_default=True, help='Points for one reward')
@with_appcontext
def create_shop_cli(name, code, tz_name, latitude, longitude, points_needed):
    """Create a new shop."""
    if code and db.session.query(Shop).filter_by(code=code).first():
        click.echo(f"FAIL Shop with code '{code}' already exists")
        return
    if (latitude is None) != (longitude is None):
        click.echo("FAIL Provide both --latitude and --longitude, or neither")
        return

    shop = Shop(
        name=name,
        code=code,
        timezone=tz_name,
        latitude=latitude,
        longitude=longitude,
        points_needed=points_needed,
        is_active=True,
    )
    db.session.add(shop)
    db.session.commit()

    click.echo(f"PASS Created shop: {shop.name} (ID: {shop.id}, Code: {shop.code or '-'})")


@shop_group.command('list')
@with_appcontext
def list_shops_cli():
    """List all shops."""
    shops = db.session.query(Shop).order_by(Shop.id).all()

    if not shops:
        click.echo("No shops found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Name':<30} {'Code':<12} {'Active':<8} {'Plan':<8} {'Payment'}")
    click.echo("="*80)

    for shop in shops:
        active_str = "Yes" if shop.is_active else "No"
        click.echo(
            f"{shop.id:<5} {shop.name:<30} {shop.code or '-':<12} {active_str:<8} "
            f"{shop.plan_type:<8} {shop.payment_status}"
        )

    click.echo("="*80 + "\n")


@shop_group.command('expire-grace')
@with_appcontext
def expire_grace_cli():
    """Downgrade shops whose grace period has ended."""
    expired = billing_service.expire_grace_periods()
    if not expired:
        click.echo("No grace periods expired.")
        return
    click.echo(f"PASS Downgraded {len(expired)} shop(s): {', '.join(str(i) for i in expired)}")


# =============================================================================
# STAFF COMMANDS
# =============================================================================

@click.group('staff')
def staff_group():
    """Employee management commands."""


@staff_group.command('create')
@click.option('--shop-id', type=int, required=True, help='Shop ID')
@click.option('--first-name', required=True)
@click.option('--last-name')
@click.option('--pin', prompt=True, hide_input=True, confirmation_prompt=True, help='Initial 4-digit PIN')
@with_appcontext
def create_employee_cli(shop_id, first_name, last_name, pin):
    """Create an employee. They must change the PIN on first use."""
    try:
        employee = pin_service.create_employee(
            shop_id=shop_id,
            first_name=first_name,
            last_name=last_name,
            pin=pin,
        )
    except ShopdeskError as e:
        click.echo(f"FAIL {e.message}")
        return

    click.echo(f"PASS Created employee: {employee.display_name} (ID: {employee.id}, Shop: {employee.shop_id})")


@staff_group.command('list')
@click.option('--shop-id', type=int, required=True, help='Shop ID')
@with_appcontext
def list_employees_cli(shop_id):
    """List employees of a shop with PIN status."""
    employees = db.session.query(Employee).filter_by(shop_id=shop_id).order_by(Employee.id).all()
    if not employees:
        click.echo("No employees found.")
        return

    for e in employees:
        status = pin_service.check_pin_lifecycle(e)
        pin_str = f"must change ({status.reason})" if status.must_change else "ok"
        active_str = "active" if e.is_active else "inactive"
        click.echo(f"{e.id:<5} {e.display_name:<30} {active_str:<10} PIN {pin_str}")


@staff_group.command('require-pin-change')
@click.argument('employee_id', type=int)
@with_appcontext
def require_pin_change_cli(employee_id):
    """Force an employee to choose a new PIN."""
    try:
        employee = pin_service.require_pin_change(employee_id)
    except ShopdeskError as e:
        click.echo(f"FAIL {e.message}")
        return
    click.echo(f"PASS {employee.display_name} must change their PIN on next use")


@staff_group.command('deactivate')
@click.argument('employee_id', type=int)
@with_appcontext
def deactivate_employee_cli(employee_id):
    """Deactivate an employee."""
    try:
        employee = pin_service.deactivate_employee(employee_id)
    except ShopdeskError as e:
        click.echo(f"FAIL {e.message}")
        return
    click.echo(f"PASS Deactivated {employee.display_name} (ID: {employee.id})")


# =============================================================================
# LOYALTY COMMANDS
# =============================================================================

@click.group('loyalty')
def loyalty_group():
    """Loyalty ledger inspection commands."""


@loyalty_group.command('audit')
@click.option('--shop-id', type=int, required=True, help='Shop ID')
@with_appcontext
def audit_loyalty_cli(shop_id):
    """
    Verify every customer's balance against their transaction history.

    Exits with status 1 when any ledger is inconsistent.
    """
    failures = loyalty_service.audit_shop_ledgers(shop_id)
    if not failures:
        click.echo(f"PASS All loyalty ledgers of shop {shop_id} reconcile")
        return

    for report in failures:
        click.echo(
            f"FAIL customer {report['customer_id']}: current_points={report['current_points']} "
            f"replayed={report['replayed_balance']}"
        )
        for problem in report["problems"]:
            click.echo(f"     - {problem['issue']} (transaction {problem['transaction_id']})")
    raise SystemExit(1)


# =============================================================================
# SHIFT SESSION COMMANDS
# =============================================================================

@click.group('sessions')
def sessions_group():
    """Shift session inspection commands."""


@sessions_group.command('open')
@click.option('--shop-id', type=int, required=True, help='Shop ID')
@with_appcontext
def list_open_sessions_cli(shop_id):
    """List open shift sessions."""
    sessions = shift_service.list_open_sessions(shop_id)
    if not sessions:
        click.echo("No open sessions.")
        return

    for s in sessions:
        remaining = len(s.incomplete_task_names)
        click.echo(
            f"{s.id:<6} employee {s.employee_id:<5} since {s.clock_in_time:%Y-%m-%d %H:%M} "
            f"{remaining} task(s) left{' REMOTE' if s.is_remote else ''}"
        )


@sessions_group.command('requests')
@click.option('--shop-id', type=int, required=True, help='Shop ID')
@with_appcontext
def list_requests_cli(shop_id):
    """List pending remote clock-in requests."""
    requests = geofence_service.list_pending_requests(shop_id)
    if not requests:
        click.echo("No pending requests.")
        return

    for r in requests:
        distance = f"{round(r.distance_from_shop_m)}m" if r.distance_from_shop_m is not None else "unknown"
        click.echo(f"{r.id:<6} employee {r.employee_id:<5} at {r.requested_at:%Y-%m-%d %H:%M} distance {distance}")


@sessions_group.command('resolve-request')
@click.argument('request_id', type=int)
@click.option('--approve/--reject', default=True)
@click.option('--reviewer', required=True, help='Supervisor name')
@click.option('--notes')
@with_appcontext
def resolve_request_cli(request_id, approve, reviewer, notes):
    """Approve or reject a remote clock-in request."""
    try:
        request = geofence_service.resolve_clock_in_request(
            request_id=request_id,
            approve=approve,
            reviewed_by=reviewer,
            notes=notes,
        )
    except ShopdeskError as e:
        click.echo(f"FAIL {e.message}")
        return
    click.echo(f"PASS Request {request.id} {request.status}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(shop_group)
    app.cli.add_command(staff_group)
    app.cli.add_command(loyalty_group)
    app.cli.add_command(sessions_group)
