"""
Database Connection and Session Management.

This module sets up the asynchronous SQLAlchemy engine and session factory
shared by the API endpoints and the embedded job worker.
"""

from ai_office.core.config import settings
from ai_office.repos.sql import create_all, create_engine, create_sessionmaker

"""
engine:
    The global SQLAlchemy AsyncEngine instance, configured from
    ``AI_OFFICE_DATABASE_URL``.
"""
engine = create_engine(settings.database_url)

"""
async_session_maker:
    A global factory for creating new AsyncSession instances.
    Bound to the `engine` and configured to NOT expire on commit.
"""
async_session_maker = create_sessionmaker(engine)


async def init_db() -> None:
    """
    Initialize the database.

    Creates every ``ao_*`` table that does not exist yet.
    """
    await create_all(engine)
