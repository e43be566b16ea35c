"""
Database connection management.

Two handles to the same Postgres project:
    - Supabase client (PostgREST) for read-only master data
      (employees, orders, size categories, lines)
    - SQLAlchemy engine for the production tables (cutting, bundles,
      loading transactions), which need real multi-statement transactions
"""

from contextlib import contextmanager
from functools import lru_cache
from typing import Iterator, Optional
import zlib

import structlog
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from supabase import create_client, Client

from config.settings import settings

logger = structlog.get_logger(__name__)


class DatabaseConnectionError(Exception):
    """Failed to connect to Supabase."""
    pass


# ===================
# SUPABASE (master data)
# ===================

@lru_cache()
def get_supabase_client() -> Client:
    """
    Get cached Supabase client instance.

    Uses lru_cache to ensure only one client is created.
    Call get_supabase_client.cache_clear() to reconnect.

    Returns:
        Client: Supabase client

    Raises:
        DatabaseConnectionError: If connection fails
    """
    try:
        logger.info(
            "connecting_to_supabase",
            url=settings.supabase_url[:30] + "..."  # Log partial URL only
        )

        client = create_client(
            settings.supabase_url,
            settings.supabase_key
        )

        # Test connection with simple query
        client.table("size_categories").select("size_category_id").limit(1).execute()

        logger.info(
            "supabase_connected",
            status="success"
        )

        return client

    except Exception as e:
        logger.error(
            "supabase_connection_failed",
            error=str(e),
            error_type=type(e).__name__
        )
        raise DatabaseConnectionError(f"Failed to connect to Supabase: {e}") from e


# ===================
# SQLALCHEMY (production data)
# ===================

@lru_cache()
def get_engine() -> Engine:
    """
    Get cached SQLAlchemy engine for the production tables.

    Call get_engine.cache_clear() after changing DATABASE_URL.
    """
    dialect = settings.database_url.split(":", 1)[0]
    logger.info("creating_sql_engine", dialect=dialect)

    options = {"pool_pre_ping": True, "echo": settings.database_echo}
    if not dialect.startswith("sqlite"):
        options["pool_size"] = settings.database_pool_size

    return create_engine(settings.database_url, **options)


@lru_cache()
def get_session_factory() -> sessionmaker:
    """Get cached session factory bound to the production engine."""
    return sessionmaker(bind=get_engine(), autoflush=False, expire_on_commit=False)


@contextmanager
def transaction(session_factory: sessionmaker, operation_name: str) -> Iterator[Session]:
    """
    Run one unit of work in a single database transaction.

    Commits when the block exits cleanly, rolls back on any exception
    (application errors included) and always closes the session.

    Usage:
        with transaction(self.session_factory, "create_bundle") as session:
            session.add(bundle)
    """
    session = session_factory()
    logger.debug("db_transaction_start", operation=operation_name)
    try:
        with session.begin():
            yield session
        logger.debug("db_transaction_committed", operation=operation_name)
    except Exception as e:
        logger.debug(
            "db_transaction_rolled_back",
            operation=operation_name,
            error_type=type(e).__name__
        )
        raise
    finally:
        session.close()


def advisory_lock(session: Session, *key_parts: object) -> None:
    """
    Take a transaction-scoped advisory lock keyed by key_parts.

    PostgreSQL only; released automatically at commit/rollback. Other
    dialects serialize writers on their own (SQLite locks the whole file).
    """
    if session.bind.dialect.name != "postgresql":
        return

    key = "|".join(str(part) for part in key_parts)
    # crc32 fits in a signed bigint and is stable across processes
    lock_id = zlib.crc32(key.encode("utf-8"))
    session.execute(text("SELECT pg_advisory_xact_lock(:lock_id)"), {"lock_id": lock_id})


class DatabaseSession:
    """
    Context manager for read-only SQL operations with logging.

    Usage:
        with DatabaseSession(self.session_factory, "get_bundles") as session:
            rows = session.execute(select(Bundle)).scalars().all()
    """

    def __init__(self, session_factory: sessionmaker, operation_name: str):
        self.session_factory = session_factory
        self.operation_name = operation_name
        self.session: Optional[Session] = None

    def __enter__(self) -> Session:
        logger.debug(
            "db_operation_start",
            operation=self.operation_name
        )
        self.session = self.session_factory()
        return self.session

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type:
            logger.error(
                "db_operation_failed",
                operation=self.operation_name,
                error=str(exc_val),
                error_type=exc_type.__name__
            )
        else:
            logger.debug(
                "db_operation_complete",
                operation=self.operation_name
            )
        self.session.close()
        return False  # Don't suppress exceptions


# ===================
# HELPER FUNCTIONS
# ===================

def check_connection() -> dict:
    """
    Check health of both database handles.

    Returns:
        dict: Connection status with details
    """
    status = {"status": "healthy"}

    try:
        client = get_supabase_client()
        categories = client.table("size_categories").select("size_category_id", count="exact").execute()
        status["size_categories_count"] = categories.count
    except Exception as e:
        status["status"] = "unhealthy"
        status["supabase_error"] = str(e)

    try:
        with get_engine().connect() as conn:
            conn.execute(text("SELECT 1"))
        status["sql"] = "ok"
    except SQLAlchemyError as e:
        status["status"] = "unhealthy"
        status["sql_error"] = str(e)

    return status

