"""
Database configuration and connection management.

This module provides:
- SQLAlchemy engine construction with sane pool defaults
- Table definitions for entitlements and the applied payment event log
- Idempotent schema creation and a connectivity probe
"""
from typing import Optional

from sqlalchemy import (
    create_engine,
    MetaData,
    Table,
    Column,
    Integer,
    String,
    DateTime,
    CheckConstraint,
    Index,
)
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.sql import func

from quotarelay.core.config import settings


# SQLAlchemy metadata for table definitions
metadata = MetaData()

# Connection pooling configuration
POOL_SIZE = 10
MAX_OVERFLOW = 20
POOL_TIMEOUT = 30
POOL_RECYCLE = 3600  # Recycle connections after 1 hour


entitlements = Table(
    'entitlements',
    metadata,
    Column('customer_id', String(255), primary_key=True),
    Column('plan', String(100), nullable=False),
    # NULL means unlimited
    Column('message_limit', Integer, nullable=True),
    Column('messages_used', Integer, nullable=False, server_default='0'),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Column('updated_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    CheckConstraint('messages_used >= 0', name='ck_entitlements_messages_used_nonneg'),
)

# One row per applied checkout-completion event
payment_events = Table(
    'payment_events',
    metadata,
    Column('event_id', String(255), primary_key=True),
    Column('event_type', String(100), nullable=False),
    Column('customer_id', String(255), nullable=False),
    Column('price_id', String(255), nullable=False),
    Column('received_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Index('idx_payment_events_customer_id', 'customer_id'),
)


def get_database_url() -> Optional[str]:
    return settings.DATABASE_URL


def is_memory_sqlite(database_url: str) -> bool:
    """True for SQLite URLs whose database lives only inside one connection."""
    url = make_url(database_url)
    if url.get_backend_name() != "sqlite":
        return False
    database = url.database or ""
    return database in ("", ":memory:") or "mode=memory" in database or url.query.get("mode") == "memory"


def create_db_engine(database_url: Optional[str] = None) -> Engine:
    """
    Build a SQLAlchemy engine.

    Args:
        database_url: Optional override for DATABASE_URL

    Raises:
        ValueError: If no URL is configured, or the URL is in-memory SQLite
    """
    url = database_url or get_database_url()

    if not url:
        raise ValueError(
            "DATABASE_URL is not configured. "
            "Set DATABASE_URL in environment or .env file."
        )

    if is_memory_sqlite(url):
        raise ValueError(
            "In-memory SQLite is not supported. "
            "Point DATABASE_URL at a SQLite file or a PostgreSQL database."
        )

    if url.startswith("sqlite"):
        return create_engine(
            url,
            connect_args={"check_same_thread": False, "timeout": POOL_TIMEOUT},
        )

    return create_engine(
        url,
        pool_size=POOL_SIZE,
        max_overflow=MAX_OVERFLOW,
        pool_timeout=POOL_TIMEOUT,
        pool_recycle=POOL_RECYCLE,
        pool_pre_ping=True,
        echo=False,  # Set to True for SQL query logging
    )


def create_all_tables(engine: Engine) -> None:
    """
    Create all tables defined in metadata.

    This is idempotent - tables that already exist will not be recreated.
    """
    metadata.create_all(bind=engine)


def check_connection(engine: Engine) -> bool:
    """Return True when a trivial query succeeds."""
    with engine.connect() as conn:
        conn.exec_driver_sql("SELECT 1")
    return True
