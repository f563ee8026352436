import logging
from contextlib import contextmanager

from sqlalchemy import create_engine, event, text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker

from .config import settings
from .errors import TransientStoreError

logger = logging.getLogger(__name__)

# check_same_thread=False lets FastAPI worker threads share SQLite connections
connect_args = {"check_same_thread": False} if settings.is_sqlite else {}

engine = create_engine(
    settings.resolved_database_url,
    connect_args=connect_args,
    pool_pre_ping=not settings.is_sqlite,
)


def enable_sqlite_fk(dbapi_connection, _):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


if settings.is_sqlite:
    event.listen(engine, "connect", enable_sqlite_fk)


SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine
)


# Dependency for FastAPI
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def supports_row_locks(db: Session) -> bool:
    return db.get_bind().dialect.name == "postgresql"


def apply_transaction_timeouts(db: Session, lock_timeout_ms: int, statement_timeout_ms: int) -> None:
    """
    Bound lock waits and statement time for the current transaction.

    SET LOCAL is scoped to the open transaction, so the values reset on
    commit/rollback. No-op on dialects without these settings.
    """
    if not supports_row_locks(db):
        return
    db.execute(text(f"SET LOCAL lock_timeout = '{int(lock_timeout_ms)}ms'"))
    db.execute(text(f"SET LOCAL statement_timeout = '{int(statement_timeout_ms)}ms'"))


@contextmanager
def transient_store_errors(db: Session):
    """
    Roll back and re-raise lock timeouts / connection trouble as TransientStoreError.

    The caller may retry the whole transaction.
    """
    try:
        yield
    except OperationalError as e:
        db.rollback()
        logger.warning(f"Transient store error, transaction rolled back: {e}")
        raise TransientStoreError() from e
