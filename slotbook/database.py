import logging
import os
import time
from dataclasses import dataclass
from typing import Callable, Generic, Optional, TypeVar

from sqlalchemy import create_engine, event
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from .config import DATABASE_URL
from .errors import AppError, InternalError

logger = logging.getLogger(__name__)

# Get environment-specific pool settings
POOL_SIZE = int(os.getenv("DB_POOL_SIZE", "20"))
MAX_OVERFLOW = int(os.getenv("DB_MAX_OVERFLOW", "30"))
POOL_TIMEOUT = int(os.getenv("DB_POOL_TIMEOUT", "30"))
POOL_RECYCLE = int(os.getenv("DB_POOL_RECYCLE", "300"))
ENABLE_QUERY_LOGGING = os.getenv("DB_LOG_SLOW_QUERIES", "true").lower() == "true"
SLOW_QUERY_THRESHOLD = float(os.getenv("DB_SLOW_QUERY_THRESHOLD", "1.0"))


def _engine_options(url: str) -> dict:
    if url.startswith("sqlite"):
        # SQLite is used for local development only; it has no server-side pool
        return {"connect_args": {"check_same_thread": False}}
    return {
        "pool_pre_ping": True,  # Test connections before using
        "pool_recycle": POOL_RECYCLE,
        "pool_size": POOL_SIZE,
        "max_overflow": MAX_OVERFLOW,
        "pool_timeout": POOL_TIMEOUT,
    }


# Configure engine with connection pooling
try:
    engine = create_engine(DATABASE_URL, echo=False, **_engine_options(DATABASE_URL))
    logger.info("✅ Database engine created successfully")
except Exception as e:
    logger.error(f"❌ Failed to create database engine: {e}")
    raise

# Slow query logging for performance monitoring
if ENABLE_QUERY_LOGGING:

    @event.listens_for(engine, "before_cursor_execute")
    def before_cursor_execute(conn, _cursor, statement, _parameters, context, _executemany):
        conn.info.setdefault("query_start_time", []).append(time.time())

    @event.listens_for(engine, "after_cursor_execute")
    def after_cursor_execute(conn, _cursor, statement, _parameters, context, _executemany):
        total = time.time() - conn.info["query_start_time"].pop(-1)
        if total > SLOW_QUERY_THRESHOLD:
            logger.warning(f"🐌 Slow query ({total:.2f}s): {statement[:200]}...")


SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


T = TypeVar("T")


@dataclass
class UnitOfWorkResult(Generic[T]):
    """Outcome of a unit of work: either a value or the error that aborted it."""

    value: Optional[T] = None
    error: Optional[AppError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: Optional[T] = None) -> "UnitOfWorkResult[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: AppError) -> "UnitOfWorkResult[T]":
        return cls(error=error)

    def unwrap(self) -> T:
        if self.error is not None:
            raise self.error
        return self.value


def run_unit_of_work(
    db: Session,
    work: Callable[[Session], UnitOfWorkResult[T]],
    *,
    on_integrity_error: Optional[Callable[[IntegrityError], AppError]] = None,
) -> UnitOfWorkResult[T]:
    """
    Run ``work`` as one transaction.

    Commits when the work returns a success result and rolls back when it returns a
    failure. Storage errors raised while flushing or committing become failure
    results; ``on_integrity_error`` classifies constraint violations.
    """
    try:
        result = work(db)
        if result.ok:
            db.commit()
        else:
            db.rollback()
        return result
    except IntegrityError as e:
        db.rollback()
        if on_integrity_error is not None:
            return UnitOfWorkResult.failure(on_integrity_error(e))
        logger.error(f"❌ Integrity error in unit of work: {e}")
        return UnitOfWorkResult.failure(InternalError("integrity error in unit of work", cause=e))
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"❌ Storage error in unit of work: {e}")
        return UnitOfWorkResult.failure(InternalError("storage error in unit of work", cause=e))
