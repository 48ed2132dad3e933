# Overview: Flask CLI command groups for bootstrap, administration, and background workers.

# backend/printshop/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init [--name "Grupo Agil"] [--slug grupo-agil]
#   Idempotent bootstrap: root company, default permission matrix, superadmin user.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Companies (tenants):
# - python -m flask companies list
# - python -m flask companies create --name "Loja Azul" --slug loja-azul [--domain azul.example.com]
#
# Users:
# - python -m flask users create --company-slug loja-azul --email admin@azul.local --name "Admin" --role admin
#
# Module activation / permission matrix:
# - python -m flask modules list --company-slug loja-azul
# - python -m flask modules set --company-slug loja-azul vendas on
# - python -m flask perms list [--role vendedor]
# - python -m flask perms set vendedor vendas --view --edit --no-delete
#
# Workers:
# - python -m flask notifications dispatch
#   Deliver due PENDING notifications once.
# - python -m flask notifications worker [--interval 5]
#   Keep delivering until interrupted.
# - python -m flask production watch --company-slug loja-azul --email operador@azul.local
#   Print board changes as they happen.

import time

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .models import User
from .permissions import Role, Module, parse_role, parse_module
from .services.auth_service import create_user, PasswordValidationError
from .services import tenant_service
from .services import module_service
from .services import permission_service
from .services import notification_service
from .services import board_service
from .validation import ValidationError, ConflictError


def _company_or_fail(slug: str):
    company = tenant_service.get_company_by_slug(slug)
    if not company:
        raise click.ClickException(f"Company '{slug}' not found")
    return company


def _root_superadmin():
    root = tenant_service.get_root_company()
    if not root:
        raise click.ClickException("No root company. Run: python -m flask system init")
    user = db.session.query(User).filter_by(
        company_id=root.id,
        role=Role.SUPERADMIN.value,
        is_active=True,
    ).first()
    if not user:
        raise click.ClickException("No active superadmin in the root company")
    return user


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--name', default='Grupo Agil', show_default=True, help='Root company name')
@click.option('--slug', default='grupo-agil', show_default=True, help='Root company slug')
@click.option('--email', default='superadmin@printshop.local', show_default=True, help='Superadmin email')
@click.option('--password', default='Password123!', show_default=True, help='Superadmin password')
@with_appcontext
def init_system(name, slug, email, password):
    """
    Initialize the system: root company, permission matrix, superadmin.

    SECURITY: Change the superadmin password immediately in production!
    """
    click.echo("START Initializing printshop...")

    root = tenant_service.get_root_company()
    if not root:
        root = tenant_service.create_company(name=name, slug=slug, is_root=True)
        click.echo(f"PASS Created root company: {root.name} (ID: {root.id}, slug: {root.slug})")
    else:
        click.echo(f"PASS Using existing root company: {root.name} (ID: {root.id})")

    created = permission_service.assign_default_role_permissions()
    click.echo(f"PASS Permission matrix seeded ({created} new rows)")

    existing = db.session.query(User).filter_by(company_id=root.id, email=email.lower()).first()
    if existing:
        click.echo(f"WARN  User '{email}' already exists, skipping...")
    else:
        try:
            create_user(
                company_id=root.id,
                email=email,
                name="Superadmin",
                password=password,
                role=Role.SUPERADMIN.value,
            )
            click.echo(f"PASS Created superadmin: {email}")
        except PasswordValidationError as e:
            click.echo(f"FAIL Password validation failed: {str(e)}")

    click.echo("DONE printshop initialized.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """DEV/TEST only: drop and recreate all tables."""
    if not yes:
        click.confirm("This deletes ALL data. Continue?", abort=True)
    db.drop_all()
    db.create_all()
    click.echo("PASS Database reset.")


# =============================================================================
# COMPANY / USER MANAGEMENT
# =============================================================================

@click.group('companies')
def companies_group():
    """Company (tenant) management commands."""


@companies_group.command('list')
@with_appcontext
def list_companies_cli():
    companies = tenant_service.list_companies()
    if not companies:
        click.echo("No companies found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Name':<30} {'Slug':<20} {'Root':<6} {'Active':<8} {'Users'}")
    click.echo("="*80)
    for company in companies:
        user_count = db.session.query(User).filter_by(company_id=company.id).count()
        click.echo(
            f"{company.id:<5} {company.name:<30} {company.slug:<20} "
            f"{'Yes' if company.is_root else 'No':<6} {'Yes' if company.is_active else 'No':<8} {user_count}"
        )
    click.echo("="*80 + "\n")


@companies_group.command('create')
@click.option('--name', required=True, help='Company name')
@click.option('--slug', required=True, help='Login slug (unique)')
@click.option('--domain', help='Storefront domain')
@with_appcontext
def create_company_cli(name, slug, domain):
    try:
        company = tenant_service.create_company(name=name, slug=slug, domain=domain)
    except (ValidationError, ConflictError) as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Created company: {company.name} (ID: {company.id}, slug: {company.slug})")


@click.group('users')
def users_group():
    """User management commands."""


@users_group.command('create')
@click.option('--company-slug', required=True, help='Company slug')
@click.option('--email', prompt=True, help='Email address')
@click.option('--name', prompt=True, help='Display name')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice([r.value for r in Role]), prompt=True, help='Role')
@with_appcontext
def create_user_cli(company_slug, email, name, password, role):
    company = _company_or_fail(company_slug)
    try:
        user = create_user(company_id=company.id, email=email, name=name, password=password, role=role)
    except PasswordValidationError as e:
        raise click.ClickException(f"Password validation failed: {str(e)}")
    except ValueError as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Created user: {user.email} ({user.role}) in {company.slug}")


# =============================================================================
# MODULES / PERMISSION MATRIX
# =============================================================================

@click.group('modules')
def modules_group():
    """Per-company module activation."""


@modules_group.command('list')
@click.option('--company-slug', required=True)
@with_appcontext
def list_modules_cli(company_slug):
    company = _company_or_fail(company_slug)
    for entry in module_service.list_modules(company):
        flag = "ON " if entry["is_active"] else "off"
        click.echo(f"{flag} {entry['key']:<14} {entry['label']}")


@modules_group.command('set')
@click.option('--company-slug', required=True)
@click.argument('module', type=click.Choice([m.value for m in Module]))
@click.argument('state', type=click.Choice(['on', 'off']))
@with_appcontext
def set_module_cli(company_slug, module, state):
    company = _company_or_fail(company_slug)
    actor = _root_superadmin()
    row = module_service.set_active(company, parse_module(module), state == 'on', actor=actor)
    click.echo(f"PASS {company.slug}: {row.module} is now {'active' if row.is_active else 'inactive'}")


@click.group('perms')
def perms_group():
    """Role x module permission matrix."""


@perms_group.command('list')
@click.option('--role', type=click.Choice([r.value for r in Role if r != Role.SUPERADMIN]))
@with_appcontext
def list_permissions_cli(role):
    rows = permission_service.list_role_permissions(parse_role(role) if role else None)
    click.echo(f"{'Role':<12} {'Module':<14} {'view':<6} {'edit':<6} {'delete':<7} {'export'}")
    for row in rows:
        marks = ["x" if row[f"can_{c}"] else "-" for c in ("view", "edit", "delete", "export")]
        click.echo(f"{row['role']:<12} {row['module']:<14} {marks[0]:<6} {marks[1]:<6} {marks[2]:<7} {marks[3]}")


@perms_group.command('set')
@click.argument('role')
@click.argument('module', type=click.Choice([m.value for m in Module]))
@click.option('--view/--no-view', default=None)
@click.option('--edit/--no-edit', default=None)
@click.option('--delete/--no-delete', default=None)
@click.option('--export/--no-export', default=None)
@with_appcontext
def set_permission_cli(role, module, view, edit, delete, export):
    try:
        row = permission_service.set_role_permission(
            parse_role(role),
            parse_module(module),
            actor=_root_superadmin(),
            can_view=view,
            can_edit=edit,
            can_delete=delete,
            can_export=export,
        )
    except (ValueError, ConflictError) as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS {row.role}/{row.module}: {row.to_dict()}")


# =============================================================================
# WORKERS
# =============================================================================

@click.group('notifications')
def notifications_group():
    """Notification outbox worker."""


@notifications_group.command('dispatch')
@click.option('--limit', type=int, help='Max records (default NOTIFICATION_BATCH_SIZE)')
@with_appcontext
def dispatch_cli(limit):
    """Deliver due PENDING notifications once."""
    summary = notification_service.dispatch_pending(limit=limit)
    click.echo(
        f"Processed {summary.processed}: {len(summary.sent)} sent, "
        f"{len(summary.failed)} failed, {len(summary.retrying)} retrying"
    )


@notifications_group.command('worker')
@click.option('--interval', type=float, default=5.0, show_default=True, help='Seconds between passes')
@with_appcontext
def worker_cli(interval):
    """Deliver notifications until interrupted."""
    click.echo(f"Notification worker started (interval {interval}s). Ctrl+C to stop.")
    try:
        while True:
            summary = notification_service.dispatch_pending()
            if summary.processed:
                click.echo(f"{summary.to_dict()}")
            db.session.remove()
            time.sleep(interval)
    except KeyboardInterrupt:
        click.echo("Notification worker stopped.")


@click.group('production')
def production_group():
    """Production board tools."""


@production_group.command('watch')
@click.option('--company-slug', required=True)
@click.option('--email', required=True, help='Operator email (board is read as this user)')
@click.option('--interval', type=float, help='Seconds between polls (default BOARD_POLL_INTERVAL_SECONDS)')
@click.option('--iterations', type=int, help='Stop after N polls')
@with_appcontext
def watch_board_cli(company_slug, email, interval, iterations):
    """Poll the board and print every move."""
    company = _company_or_fail(company_slug)
    operator = db.session.query(User).filter_by(company_id=company.id, email=email.lower()).first()
    if not operator:
        raise click.ClickException(f"User '{email}' not found in {company.slug}")

    coordinator = board_service.BoardCoordinator(company, operator, poll_interval=interval)

    def on_change(diff, snapshot):
        for order_id in diff.added:
            click.echo(f"+ {order_id} -> {snapshot.column_of(order_id)}")
        for order_id, before, after in diff.moved:
            click.echo(f"~ {order_id}: {before} -> {after}")
        for order_id in diff.removed:
            click.echo(f"- {order_id} left the board")
        click.echo(f"  counts {snapshot.counts}")

    current_app.logger.info("Watching board of %s every %ss", company.slug, coordinator.poll_interval)
    try:
        coordinator.run(iterations=iterations, on_change=on_change)
    except KeyboardInterrupt:
        click.echo("Stopped.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(companies_group)
    app.cli.add_command(users_group)
    app.cli.add_command(modules_group)
    app.cli.add_command(perms_group)
    app.cli.add_command(notifications_group)
    app.cli.add_command(production_group)
