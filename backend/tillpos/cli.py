# Overview: Flask CLI command groups for bootstrap, tenant provisioning, register repair and archiving.

# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--company "Demo Store" --code DEMO --admin-password "..."]
#   Create all tables and, if no company exists, a default company.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system cleanup-sessions
#   Delete expired and revoked admin sessions.
#
# Company management (MULTI-TENANT):
# - python -m flask companies list
# - python -m flask companies create --name "Acme" --code ACME --admin-username admin --plan basic
#
# Register inspection/repair:
# - python -m flask registers list --company-id 1
# - python -m flask registers create --company-id 1 --name "Front Counter"
# - python -m flask registers sessions --company-id 1 --status open --limit 20
# - python -m flask registers inspect --company-id 1
#   Report registers whose flag and session disagree.
# - python -m flask registers repair --company-id 1 --register-id 3 --yes
#   Reset an inconsistent register to closed, or close duplicate open sessions.
# - python -m flask registers fix-tokens [--company-id 1]
#   Regenerate access tokens that are not URL-safe.
#
# Archiving:
# - python -m flask archive run --company-id 1 [--per-session]

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Company
from .models.registers import SESSION_CLOSED, SESSION_OPEN
from .models.tenancy import PLAN_LIMITS
from .services import (
    archive_service,
    persistence,
    register_service,
    session_service,
    tenant_service,
)
from .services.auth_service import PasswordValidationError
from .services.persistence import NotFoundError, PersistenceError
from .services.session_ledger import InconsistentStateError
from .validation import ConflictError, ValidationError


def _cents(value) -> str:
    if value is None:
        return "-"
    return f"{value / 100:.2f}"


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--company', 'company_name', default='Default Company', help='Company name')
@click.option('--code', default='DEFAULT', help='Company code')
@click.option('--admin-username', default='admin', help='Admin username')
@click.option('--admin-password', default='ChangeMe123', help='Admin password')
@with_appcontext
def init_system(company_name, code, admin_username, admin_password):
    """
    Create the schema and a default company if none exists.

    SECURITY: Change the admin password immediately in production!
    """
    click.echo("START Initializing tillpos...")
    db.create_all()
    click.echo("PASS Tables created")

    existing = db.session.query(Company).first()
    if existing:
        click.echo(f"PASS Using existing company: {existing.name} (ID: {existing.id}, Code: {existing.code})")
        return

    try:
        company = tenant_service.create_company(company_name, code, admin_username, admin_password)
    except (ValidationError, PasswordValidationError) as e:
        click.echo(f"FAIL {e}")
        return
    click.echo(f"PASS Created company: {company.name} (ID: {company.id}, Code: {company.code})")
    click.echo(f"   Admin login: {company.code} / {admin_username}")


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


@system_group.command('cleanup-sessions')
@with_appcontext
def cleanup_sessions_cli():
    """Delete expired and revoked admin sessions."""
    deleted = session_service.cleanup_expired_sessions()
    click.echo(f"Deleted {deleted} admin sessions.")


@click.group('companies')
def companies_group():
    """Company (tenant) management commands."""


@companies_group.command('list')
@with_appcontext
def list_companies_cli():
    """List all companies."""
    companies = tenant_service.list_companies()

    if not companies:
        click.echo("No companies found.")
        return

    click.echo("\n" + "="*90)
    click.echo(f"{'ID':<5} {'Name':<30} {'Code':<15} {'Plan':<10} {'Active':<8} {'Registers'}")
    click.echo("="*90)

    for company in companies:
        register_count = persistence.count_registers(company.id)
        active_str = "Yes" if company.is_active else "No"
        click.echo(
            f"{company.id:<5} {company.name:<30} {company.code:<15} {company.plan:<10} "
            f"{active_str:<8} {register_count}/{company.max_cash_registers}"
        )

    click.echo("="*90 + "\n")


@companies_group.command('create')
@click.option('--name', required=True, help='Company name')
@click.option('--code', required=True, help='Short code (unique)')
@click.option('--admin-username', default='admin', show_default=True, help='Admin username')
@click.option('--admin-password', prompt=True, hide_input=True, confirmation_prompt=True, help='Admin password')
@click.option('--plan', type=click.Choice(list(PLAN_LIMITS)), default='free', show_default=True)
@with_appcontext
def create_company_cli(name, code, admin_username, admin_password, plan):
    """Create a new company (tenant) with its admin account."""
    try:
        company = tenant_service.create_company(name, code, admin_username, admin_password, plan=plan)
    except (ValidationError, PasswordValidationError, ConflictError) as e:
        click.echo(f"FAIL {e}")
        return

    click.echo(f"PASS Created company: {company.name} (ID: {company.id}, Code: {company.code}, Plan: {company.plan})")


@click.group('registers')
def registers_group():
    """Register inspection and repair commands."""


@registers_group.command('list')
@click.option('--company-id', type=int, required=True, help='Company ID')
@with_appcontext
def list_registers_cli(company_id):
    """
    List registers with their reconciled state.

    Example:
        flask registers list --company-id 1
    """
    registers = persistence.list_registers(company_id)

    if not registers:
        click.echo("No registers found.")
        return

    click.echo("\n" + "="*100)
    click.echo(f"{'ID':<5} {'Name':<25} {'Employee':<20} {'State':<13} {'Balance':<12} {'Token'}")
    click.echo("="*100)

    for register in registers:
        state = register_service.inspect_register(company_id, register.id).state
        click.echo(
            f"{register.id:<5} {register.name:<25} {register.employee_name or '-':<20} "
            f"{state:<13} {_cents(register.current_balance_cents):<12} {register.access_token}"
        )

    click.echo("="*100 + "\n")


@registers_group.command('create')
@click.option('--company-id', type=int, required=True, help='Company ID')
@click.option('--name', required=True, help='Register name')
@click.option('--employee-id', type=int, help='Assigned cashier')
@with_appcontext
def create_register_cli(company_id, name, employee_id):
    """
    Create a cash register.

    Example:
        flask registers create --company-id 1 --name "Front Counter"
    """
    try:
        register = register_service.create_register(company_id, name, employee_id=employee_id)
    except (ValidationError, ConflictError, NotFoundError) as e:
        click.echo(f"FAIL Error: {e}")
        return

    click.echo(f"PASS Created register: {register.name}")
    click.echo(f"   Register ID: {register.id}")
    click.echo(f"   Access token: {register.access_token}")


@registers_group.command('sessions')
@click.option('--company-id', type=int, required=True, help='Company ID')
@click.option('--register-id', type=int, help='Filter by register ID')
@click.option('--status', type=click.Choice([SESSION_OPEN, SESSION_CLOSED]), help='Filter by status')
@click.option('--limit', type=int, default=20, help='Max sessions to show')
@with_appcontext
def list_sessions_cli(company_id, register_id, status, limit):
    """
    List register sessions.

    Example:
        flask registers sessions --company-id 1 --status open
    """
    sessions = persistence.list_sessions(company_id, register_id=register_id, status=status, limit=limit)

    if not sessions:
        click.echo("No sessions found.")
        return

    click.echo("\n" + "="*120)
    click.echo(
        f"{'ID':<38} {'Register':<18} {'Employee':<15} {'Status':<8} "
        f"{'Opened':<20} {'Sales':<6} {'Variance'}"
    )
    click.echo("="*120)

    for session in sessions:
        click.echo(
            f"{session.id:<38} {session.cash_register_name:<18} {session.employee_name or '-':<15} "
            f"{session.status:<8} {str(session.opened_at)[:19]:<20} {session.total_sales:<6} "
            f"{_cents(session.variance_cents)}"
        )

    click.echo("="*120 + "\n")


@registers_group.command('inspect')
@click.option('--company-id', type=int, required=True, help='Company ID')
@with_appcontext
def inspect_registers_cli(company_id):
    """Report registers whose active flag disagrees with their sessions."""
    findings = register_service.find_inconsistencies(company_id)
    if not findings:
        click.echo("PASS All registers consistent.")
        return

    for finding in findings:
        register = finding.register
        click.echo(f"WARN Register {register.id} ({register.name}): {finding.state}")


@registers_group.command('repair')
@click.option('--company-id', type=int, required=True, help='Company ID')
@click.option('--register-id', type=int, required=True, help='Register ID')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def repair_register_cli(company_id, register_id, yes):
    """
    Reset an inconsistent register (active, no open session) to closed,
    or close all but the newest of several open sessions.

    The register balance is discarded; no closing entry is written.
    """
    if not yes:
        click.confirm("WARN This discards the register balance. Continue?", abort=True)
    try:
        register = register_service.repair_register(company_id, register_id)
    except (NotFoundError, ConflictError, InconsistentStateError) as e:
        click.echo(f"FAIL {e}")
        return
    click.echo(f"PASS Register {register.id} ({register.name}) reset to closed")


@registers_group.command('fix-tokens')
@click.option('--company-id', type=int, help='Limit to one company')
@with_appcontext
def fix_tokens_cli(company_id):
    """Regenerate access tokens that are not URL-safe."""
    fixed = register_service.fix_invalid_tokens(company_id)
    for register in fixed:
        click.echo(f"FIXED Register {register.id} ({register.name}): {register.access_token}")
    click.echo(f"PASS {len(fixed)} tokens regenerated")


@click.group('archive')
def archive_group():
    """Archiving commands."""


@archive_group.command('run')
@click.option('--company-id', type=int, required=True, help='Company ID')
@click.option('--per-session', is_flag=True, help='Only archive sales of closed sessions')
@with_appcontext
def run_archive_cli(company_id, per_session):
    """Archive sales, then closed sessions."""
    try:
        result = archive_service.run_archive(company_id, per_session=per_session)
    except PersistenceError as e:
        click.echo(f"FAIL {e}")
        return
    click.echo(
        f"PASS Archived {result['sales_archived']} sales and "
        f"{result['sessions_archived']} sessions"
    )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(companies_group)  # Multi-tenant company management
    app.cli.add_command(registers_group)
    app.cli.add_command(archive_group)
