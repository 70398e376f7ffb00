"""Database session management.

Usage:
    with db_session() as db:
        row = db.get(InvoiceRow, invoice_id)
        db.commit()
"""

from collections.abc import Generator
from contextlib import contextmanager

from sqlalchemy.orm import Session

from opensignify.utils.logging import get_logger

logger = get_logger(__name__)


@contextmanager
def db_session() -> Generator[Session, None, None]:
    """Session that is rolled back on error and always closed.

    Callers must commit explicitly.

    Raises:
        RuntimeError: If the database has not been initialized
    """
    from opensignify.storage.database.base import get_session

    db = get_session()
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
