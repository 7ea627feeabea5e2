"""Database initialization with idempotent index migrations."""
import logging
from sqlalchemy import inspect, text
from sqlalchemy.orm import Session
from sqlalchemy.exc import OperationalError
from app.db.database import engine, SessionLocal, Base
from app.db import models  # noqa: F401  registers tables on Base.metadata

logger = logging.getLogger(__name__)

INDEX_MIGRATIONS = [
    ('quiz_attempts', 'idx_attempt_created',
     'CREATE INDEX IF NOT EXISTS idx_attempt_created ON quiz_attempts (created_at)'),
    ('wrong_answers', 'idx_wrong_answer_attempt',
     'CREATE INDEX IF NOT EXISTS idx_wrong_answer_attempt ON wrong_answers (attempt_id, position)'),
    ('review_entries', 'idx_review_entry_review',
     'CREATE INDEX IF NOT EXISTS idx_review_entry_review ON review_entries (review_id, position)'),
]
"""(table, index name, DDL) triples applied on startup when missing."""


def check_index_exists(inspector, table_name: str, index_name: str) -> bool:
    """Check if an index exists on a table."""
    try:
        indexes = inspector.get_indexes(table_name)
        return any(idx['name'] == index_name for idx in indexes)
    except Exception as e:
        logger.warning(f"Error checking index {index_name} in {table_name}: {e}")
        return False


def apply_schema_migrations(db: Session, bind=None) -> list:
    """
    Apply index migrations automatically on startup.

    All operations are idempotent and safe to run against an existing
    database.

    Returns:
        List of human-readable descriptions of the migrations applied
    """
    inspector = inspect(bind if bind is not None else engine)
    existing_tables = inspector.get_table_names()

    if not existing_tables:
        logger.info("No existing tables found. Schema will be created from scratch.")
        return []

    logger.info("Checking for necessary schema migrations...")
    migrations_applied = []

    for table_name, index_name, sql in INDEX_MIGRATIONS:
        if table_name not in existing_tables:
            continue
        if check_index_exists(inspector, table_name, index_name):
            continue
        try:
            logger.info(f"Creating index {index_name}...")
            db.execute(text(sql))
            migrations_applied.append(f"Created index {index_name}")
        except OperationalError as e:
            logger.warning(f"Could not create index {index_name}: {e}")

    if migrations_applied:
        try:
            db.commit()
            logger.info(f"Applied {len(migrations_applied)} schema migrations:")
            for migration in migrations_applied:
                logger.info(f"  - {migration}")
        except Exception as e:
            db.rollback()
            logger.error(f"Error committing migrations: {e}")
            raise
    else:
        logger.info("No schema migrations needed. Database is up to date.")

    return migrations_applied


def init_db() -> None:
    """
    Initialize database: create tables and apply migrations.

    Safe to call multiple times - all operations are idempotent.
    """
    logger.info("Initializing database...")

    Base.metadata.create_all(bind=engine)
    logger.info("Tables created/verified successfully.")

    db = SessionLocal()
    try:
        apply_schema_migrations(db)
        logger.info("Database initialization complete.")
    except Exception as e:
        logger.error(f"Error during database initialization: {e}")
        raise
    finally:
        db.close()


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    init_db()
