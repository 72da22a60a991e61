# Overview: Flask CLI command groups for bootstrap and user/branch assignment.

# backend/autoshop/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables (use `flask db upgrade` for migrated deployments).
#
# Branch management:
# - python -m flask branches create --name "Main Branch" --code "MAIN"
# - python -m flask branches list
#
# User assignments (identities live in the external identity provider):
# - python -m flask users assign-role --user-id <uuid> --email a@b.c --role POC
#   Creates the local profile on first use.
# - python -m flask users assign-branch --user-id <uuid> --branch-id 1 [--primary]

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Branch, UserProfile, UserRoleAssignment, UserBranchAssignment
from .services.authorization_service import Role


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database tables created.")


# =============================================================================
# BRANCH COMMANDS
# =============================================================================

@click.group('branches')
def branches_group():
    """Branch management commands."""


@branches_group.command('create')
@click.option('--name', required=True, help='Branch name')
@click.option('--code', required=True, help='Short code (unique)')
@click.option('--address', default=None, help='Street address')
@with_appcontext
def create_branch_cli(name, code, address):
    """Create a new branch."""
    existing = db.session.query(Branch).filter_by(code=code).first()
    if existing:
        click.echo(f"FAIL Branch with code '{code}' already exists")
        return

    branch = Branch(name=name, code=code, address=address, is_active=True)
    db.session.add(branch)
    db.session.commit()

    click.echo(f"PASS Created branch: {branch.name} (ID: {branch.id}, Code: {branch.code})")


@branches_group.command('list')
@with_appcontext
def list_branches_cli():
    """List all branches."""
    branches = db.session.query(Branch).order_by(Branch.id.asc()).all()

    if not branches:
        click.echo("No branches found.")
        return

    click.echo("\n" + "="*70)
    click.echo(f"{'ID':<5} {'Name':<30} {'Code':<15} {'Active'}")
    click.echo("="*70)

    for branch in branches:
        active_str = "Yes" if branch.is_active else "No"
        click.echo(f"{branch.id:<5} {branch.name:<30} {branch.code:<15} {active_str}")

    click.echo("="*70 + "\n")


# =============================================================================
# USER ASSIGNMENT COMMANDS
# =============================================================================

@click.group('users')
def users_group():
    """User role and branch assignment commands."""


@users_group.command('assign-role')
@click.option('--user-id', required=True, help='Identity provider user id')
@click.option('--role', required=True, type=click.Choice([r.value for r in Role]), help='Role code')
@click.option('--email', default=None, help='Email (required when the profile does not exist yet)')
@click.option('--full-name', default=None, help='Display name for a new profile')
@with_appcontext
def assign_role_cli(user_id, role, email, full_name):
    """Grant a role, creating the local profile if needed."""
    profile = db.session.get(UserProfile, user_id)
    if profile is None:
        if not email:
            click.echo("FAIL --email is required to create a new profile")
            return
        profile = UserProfile(id=user_id, email=email, full_name=full_name or email, is_active=True)
        db.session.add(profile)
        click.echo(f"PASS Created profile for {email}")

    existing = db.session.query(UserRoleAssignment).filter_by(user_id=user_id, role=role).first()
    if existing:
        click.echo(f"SKIP User {user_id} already has role {role}")
        db.session.commit()
        return

    db.session.add(UserRoleAssignment(user_id=user_id, role=role))
    db.session.commit()
    click.echo(f"PASS Assigned role {role} to {user_id}")


@users_group.command('assign-branch')
@click.option('--user-id', required=True, help='Identity provider user id')
@click.option('--branch-id', type=int, required=True, help='Branch ID')
@click.option('--primary', is_flag=True, help='Mark as the primary branch')
@with_appcontext
def assign_branch_cli(user_id, branch_id, primary):
    """Give a user access to a branch."""
    if db.session.get(UserProfile, user_id) is None:
        click.echo(f"FAIL User profile {user_id} not found (assign a role first)")
        return
    if db.session.get(Branch, branch_id) is None:
        click.echo(f"FAIL Branch ID {branch_id} not found")
        return

    existing = db.session.query(UserBranchAssignment).filter_by(user_id=user_id, branch_id=branch_id).first()
    if existing:
        existing.is_primary = existing.is_primary or primary
        db.session.commit()
        click.echo(f"SKIP User {user_id} already assigned to branch {branch_id}")
        return

    db.session.add(UserBranchAssignment(user_id=user_id, branch_id=branch_id, is_primary=primary))
    db.session.commit()
    click.echo(f"PASS Assigned branch {branch_id} to {user_id}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(branches_group)
    app.cli.add_command(users_group)
