"""
Flask CLI commands for platform bootstrap.

Commands:
- flask init-db: Create every table
- flask seed-features: Insert the built-in feature systems into the catalog
- flask create-superadmin: Create a global platform administrator
"""

import click
from sqlalchemy.exc import SQLAlchemyError

from tenant_erp.database import create_all, get_session
from tenant_erp.models import AppUser, UserStatus, UserType
from tenant_erp.services.auth_service import global_email_exists, normalize_email
from tenant_erp.services.system_feature_service import seed_builtin_systems
from tenant_erp.utils.validators import is_valid_email


def init_cli_commands(app):
    """Register CLI commands with Flask app."""

    @app.cli.command('init-db')
    def init_db_command():
        """Create database tables."""
        create_all()
        click.echo(click.style('✅ Database tables created', fg='green'))

    @app.cli.command('seed-features')
    def seed_features():
        """Insert missing built-in systems and their modules."""
        session = get_session()
        try:
            count = seed_builtin_systems(session)
        except SQLAlchemyError as e:
            session.rollback()
            click.echo(click.style(f'❌ Could not seed feature catalog: {e}', fg='red'))
            return
        click.echo(click.style(f'✅ {count} feature system(s) created', fg='green'))

    @app.cli.command('create-superadmin')
    @click.option('--email', prompt=True, help='Administrator email address')
    @click.option('--name', prompt=True, default='Platform Admin', help='Display name')
    @click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Administrator password')
    def create_superadmin(email, name, password):
        """Create a global superadmin with no institution (platform administrator)."""
        email = normalize_email(email)
        if not is_valid_email(email):
            click.echo(click.style('❌ Invalid email. Use format: user@example.com', fg='red'))
            return

        min_length = app.config.get('PASSWORD_MIN_LENGTH', 6)
        if len(password) < min_length:
            click.echo(click.style(f'❌ Password must be at least {min_length} characters long.', fg='red'))
            return

        session = get_session()
        if global_email_exists(session, email):
            click.echo(click.style(f'❌ A global account already exists for: {email}', fg='red'))
            return

        try:
            admin = AppUser(
                name=name.strip() or 'Platform Admin',
                email=email,
                user_type=UserType.SUPERADMIN.value,
                status=UserStatus.ACTIVE.value,
                failed_login_attempts=0,
            )
            admin.set_password(password)
            session.add(admin)
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            click.echo(click.style(f'❌ Error creating administrator: {e}', fg='red'))
            return

        click.echo(click.style('\n✅ Platform administrator created!', fg='green', bold=True))
        click.echo(f'   Email: {email}')
        click.echo(f'   ID: {admin.id}')
