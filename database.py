"""
Database connection and session management for Identity Reconciliation API
This module sets up the async SQLAlchemy engine and session factory with
pool sizing for local PostgreSQL, AWS RDS (Lambda) and SQLite test databases.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from config import settings, mask_database_url
from models import Base

logger = logging.getLogger(__name__)


def create_database_engine(database_url: str):
    """Create database engine with appropriate settings for environment"""
    if database_url.startswith("sqlite"):
        return create_async_engine(database_url, echo=settings.DB_ECHO)

    if settings.is_lambda_environment():
        # Lambda-optimized settings for RDS Proxy
        return create_async_engine(
            database_url,
            echo=settings.DB_ECHO,
            pool_pre_ping=True,
            pool_size=1,  # one concurrent execution per Lambda container
            max_overflow=0,
            pool_recycle=3600,
            pool_timeout=10,
            connect_args={
                "command_timeout": 10,
                "server_settings": {
                    "application_name": "identity-reconciliation-lambda",
                }
            }
        )

    return create_async_engine(
        database_url,
        echo=settings.DB_ECHO,
        pool_pre_ping=True,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_timeout=settings.DB_POOL_TIMEOUT,
        connect_args={
            "server_settings": {
                "application_name": "identity-reconciliation-local",
            }
        }
    )


class DatabaseManager:
    """
    Database connection manager that owns the async engine,
    session creation and connection lifecycle
    """

    def __init__(self, database_url: Optional[str] = None):
        self.database_url = database_url or settings.get_active_database_url()
        logger.info(f"Initializing database connection to: {mask_database_url(self.database_url)}")

        self.engine = create_database_engine(self.database_url)
        self.SessionLocal = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False
        )

    @property
    def dialect_name(self) -> str:
        return self.engine.dialect.name

    async def create_tables(self):
        """Create all database tables defined in models"""
        logger.info("Creating database tables...")
        async with self.engine.begin() as connection:
            await connection.run_sync(Base.metadata.create_all)
        logger.info("Database tables created successfully")

    async def test_connection(self) -> bool:
        """Test database connection"""
        try:
            async with self.engine.connect() as connection:
                await connection.execute(text("SELECT 1"))
            logger.debug("Database connection test successful")
            return True
        except Exception as e:
            logger.error(f"Database connection test failed: {e}")
            return False

    @asynccontextmanager
    async def get_session(self) -> AsyncIterator[AsyncSession]:
        """
        Context manager for database sessions with automatic cleanup
        Usage:
            async with db_manager.get_session() as session:
                # database operations
        Commits when the block exits cleanly, rolls back otherwise.
        """
        session = self.SessionLocal()
        try:
            yield session
            await session.commit()
        except Exception as e:
            await session.rollback()
            logger.debug(f"Database session rolled back: {e}")
            raise
        finally:
            await session.close()

    async def dispose(self):
        await self.engine.dispose()
