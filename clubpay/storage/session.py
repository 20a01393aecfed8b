"""Database session management with the context manager pattern.

Usage:
    with db_session() as db:
        db.add(row)
        db.commit()

    # With an explicit factory (tests, multiple databases)
    with db_session(factory) as db:
        ...
"""

from collections.abc import Generator
from contextlib import contextmanager

from sqlalchemy.orm import Session, sessionmaker

from clubpay.utils.logging import get_logger

logger = get_logger(__name__)


@contextmanager
def db_session(factory: sessionmaker[Session] | None = None) -> Generator[Session, None, None]:
    """Context manager for database sessions with automatic cleanup.

    Yields:
        Session: SQLAlchemy session

    Raises:
        RuntimeError: If no factory is given and the database is not initialized
        Exception: Any exception from within the context (after rollback)

    Note:
        - Session is rolled back on exception and always closed on exit
        - You must call db.commit() to persist changes
    """
    if factory is None:
        from clubpay.storage.database.base import get_session

        db = get_session()
    else:
        db = factory()

    try:
        logger.debug("db_session_created", session_id=id(db))
        yield db
    except Exception as e:
        logger.error(
            "db_session_error_rollback",
            error=str(e),
            error_type=type(e).__name__,
            session_id=id(db),
        )
        db.rollback()
        raise
    finally:
        logger.debug("db_session_closed", session_id=id(db))
        db.close()
