"""
Database table creation script for Identity Reconciliation API
Creates the contacts table and checks it can be queried.
Run this script after provisioning the database.
"""

import asyncio
import logging
import sys

from database import DatabaseManager
from services.contact_store import ContactStore

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


async def create_tables(db_manager: DatabaseManager) -> bool:
    """
    Create all database tables defined in the models and verify
    the contacts table is reachable
    """
    logger.info("Starting database table creation...")

    if not await db_manager.test_connection():
        logger.error("Database connection failed - cannot create tables")
        return False

    await db_manager.create_tables()

    async with db_manager.get_session() as session:
        count = await ContactStore(session).count()
        logger.info(f"Contacts table accessible - current count: {count}")

    return True


async def main() -> bool:
    logger.info("Identity Reconciliation API - Database Setup")

    db_manager = DatabaseManager()
    try:
        success = await create_tables(db_manager)
    finally:
        await db_manager.dispose()

    if success:
        logger.info("Database setup completed successfully!")
        logger.info("You can now start the API server with: python main.py")
    else:
        logger.error("Database setup failed! Check your database configuration and try again")
    return success


if __name__ == "__main__":
    sys.exit(0 if asyncio.run(main()) else 1)
