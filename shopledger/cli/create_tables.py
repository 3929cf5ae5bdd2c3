# shopledger/cli/create_tables.py
import asyncio
import logging

import click

from shopledger.core.config import get_settings
from shopledger.core.enums import UserRole
from shopledger.core.exceptions import DuplicateKeyError
from shopledger.database import create_all, create_engine_from_settings, create_session_factory
from shopledger.services.users import SqlUserStore

logger = logging.getLogger(__name__)


async def _create_tables(seed_admin: bool) -> None:
    settings = get_settings()
    engine = create_engine_from_settings(settings)
    if engine is None:
        raise click.ClickException("DATABASE_URL is not set")

    try:
        # This will create all tables defined in models that inherit from Base
        await create_all(engine)
        click.echo("All tables created successfully!")

        if seed_admin:
            users = SqlUserStore(create_session_factory(engine))
            try:
                await users.create(settings.ADMIN_EMAIL, settings.ADMIN_PASSWORD, settings.ADMIN_NAME, UserRole.ADMIN)
                click.echo(f"Admin user {settings.ADMIN_EMAIL} created")
            except DuplicateKeyError:
                click.echo(f"Admin user {settings.ADMIN_EMAIL} already exists")
    finally:
        await engine.dispose()


@click.command()
@click.option("--seed-admin", is_flag=True, help="Also create the ADMIN_EMAIL user")
def create_tables(seed_admin):
    """Create all database tables directly using SQLAlchemy"""
    asyncio.run(_create_tables(seed_admin))


if __name__ == "__main__":
    create_tables()
