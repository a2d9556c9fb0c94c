"""
Flask CLI commands for seeding and maintaining data.
"""

import click
from flask.cli import with_appcontext
from sqlalchemy.exc import SQLAlchemyError

from langcenter.auth import model_for_role
from langcenter.extensions import db
from langcenter.ledger import generate_missing_payments
from langcenter.maintenance import backfill_class_sessions, seed_level_thresholds
from langcenter.models import SchoolClass
from langcenter.utils.constants import ROLE_TEACHER, ROLE_STAFF, ROLE_MANAGER, ROLE_CASHIER


@click.command('seed-level-thresholds')
@click.option('--replace', is_flag=True, help='Delete existing bands before seeding.')
@with_appcontext
def seed_level_thresholds_command(replace):
    """Insert the default placement bands (A1 to C1)."""
    try:
        inserted = seed_level_thresholds(replace=replace)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        click.echo(f"✗ Seeding failed: {e}", err=True)
        raise click.Abort()

    if inserted:
        click.echo(f"✓ Seeded {inserted} level thresholds")
    else:
        click.echo("Level thresholds already exist, nothing to do (use --replace to overwrite)")


@click.command('backfill-class-sessions')
@with_appcontext
def backfill_class_sessions_command():
    """Set every class's session count to a random value between 12 and 24."""
    try:
        total, updated = backfill_class_sessions()
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        click.echo(f"✗ Backfill failed: {e}", err=True)
        raise click.Abort()

    click.echo(f"✓ Updated {updated} of {total} classes")


@click.command('generate-payments')
@click.option('--class-id', type=int, default=None, help='Only this class.')
@with_appcontext
def generate_payments_command(class_id):
    """Create unpaid entries for enrolled students of priced classes that have none."""
    school_class = None
    if class_id is not None:
        school_class = db.session.get(SchoolClass, class_id)
        if not school_class:
            click.echo(f"✗ Class {class_id} not found", err=True)
            raise click.Abort()

    try:
        created, skipped = generate_missing_payments(school_class)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        click.echo(f"✗ Generating payments failed: {e}", err=True)
        raise click.Abort()

    click.echo(f"✓ Created {created} payment records, skipped {skipped} existing")


@click.command('create-account')
@click.option('--role', type=click.Choice([ROLE_MANAGER, ROLE_STAFF, ROLE_TEACHER, ROLE_CASHIER]),
              default=ROLE_MANAGER, show_default=True)
@click.option('--name', prompt=True)
@click.option('--email', prompt=True)
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
@with_appcontext
def create_account_command(role, name, email, password):
    """Create a back-office account, e.g. the first manager."""
    model = model_for_role(role)
    email = email.strip().lower()
    if model.query.filter_by(email=email).first():
        click.echo(f"✗ A {role} with email {email} already exists", err=True)
        raise click.Abort()

    account = model(name=name.strip(), email=email)
    account.set_password(password)
    try:
        db.session.add(account)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        click.echo(f"✗ Could not create account: {e}", err=True)
        raise click.Abort()

    click.echo(f"✓ Created {role} {account.email} (ID: {account.id})")


def init_app(app):
    """Register CLI commands with Flask app."""
    app.cli.add_command(seed_level_thresholds_command)
    app.cli.add_command(backfill_class_sessions_command)
    app.cli.add_command(generate_payments_command)
    app.cli.add_command(create_account_command)
