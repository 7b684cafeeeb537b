"""
Shared fixtures for the identity reconciliation test suite.

Every test gets its own SQLite file database under tmp_path, so store,
engine and API tests exercise real SQL without a PostgreSQL server.
"""

import os

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
import pytest_asyncio

from database import DatabaseManager
from services.contact_store import ContactStore
from services.identity_service import IdentityService
from services.locks import IdentifierLocks


@pytest_asyncio.fixture
async def db_manager(tmp_path):
    manager = DatabaseManager(f"sqlite+aiosqlite:///{tmp_path / 'contacts.db'}")
    await manager.create_tables()
    yield manager
    await manager.dispose()


@pytest_asyncio.fixture
async def session(db_manager):
    async with db_manager.get_session() as db_session:
        yield db_session


@pytest.fixture
def store(session):
    return ContactStore(session)


@pytest.fixture
def identity_service(db_manager):
    return IdentityService(db_manager, locks=IdentifierLocks(), retry_backoff=0)
