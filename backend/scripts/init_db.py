"""
Database initialization script.

Creates the Access Directory tables (invite codes, redemptions, Plex
users and tokens) if they do not exist. Existing tables are left as is.

Usage:
    python -m scripts.init_db
    python -m scripts.init_db --database-url sqlite:///./plexshare.db

Environment variables:
    PLEXSHARE_DATABASE_URL or DATABASE_URL: PostgreSQL or SQLite URL
"""

import os
import sys
import logging
from pathlib import Path

# Add backend directory to path
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

from sqlalchemy import inspect, text
from sqlalchemy.exc import SQLAlchemyError

from plexshare.config.settings import Settings, normalize_database_url
from plexshare.database.session import build_engine
from plexshare.db_base import Base

# Import all models to register them with Base.metadata
import plexshare.models  # noqa: F401

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def init_database(database_url: str) -> None:
    """
    Initialize database tables.

    Args:
        database_url: SQLAlchemy connection string
    """
    logger.info("Connecting to database...")
    engine = build_engine(database_url)
    engine.echo = os.getenv("SQL_ECHO", "false").lower() == "true"

    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1")).fetchone()
        logger.info("Database connection successful")
    except SQLAlchemyError as e:
        logger.error(f"Failed to connect to database: {e}")
        raise

    table_names = sorted(Base.metadata.tables.keys())
    logger.info(f"Tables to create/verify: {', '.join(table_names)}")

    try:
        Base.metadata.create_all(bind=engine)
        logger.info("All tables created/verified successfully")
    except SQLAlchemyError as e:
        logger.error(f"Failed to create tables: {e}")
        raise

    existing = set(inspect(engine).get_table_names())
    for table_name in table_names:
        logger.info(f"  {table_name}: {'EXISTS' if table_name in existing else 'MISSING'}")


def main():
    """Main entry point."""
    import argparse

    parser = argparse.ArgumentParser(description="Initialize database tables")
    parser.add_argument(
        "--database-url",
        type=str,
        help="Database URL (overrides PLEXSHARE_DATABASE_URL / DATABASE_URL)"
    )
    args = parser.parse_args()

    if args.database_url:
        database_url = normalize_database_url(args.database_url)
    else:
        database_url = Settings.from_env().database_url

    logger.info("Starting database initialization...")
    init_database(database_url)
    logger.info("Database initialization complete!")


if __name__ == "__main__":
    main()
