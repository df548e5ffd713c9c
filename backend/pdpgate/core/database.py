"""
Database configuration and session management
"""
import logging
import re
import time
from typing import Generator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from pdpgate.core.config import get_settings
from pdpgate.core.logging_config import LoggingConfig
from pdpgate.core.metrics import (db_connection_pool_size,
                                  db_queries_total,
                                  db_query_duration_seconds)

logger = LoggingConfig.get_logger(__name__)

# Lazy initialization - don't create engine at module level
_engine: Optional[Engine] = None
_SessionLocal: Optional[sessionmaker] = None

# Base class for models
Base = declarative_base()

_TABLE_PATTERNS = {
    "select": re.compile(r"\bFROM\s+([\w.\"]+)", re.IGNORECASE),
    "insert": re.compile(r"\bINTO\s+([\w.\"]+)", re.IGNORECASE),
    "update": re.compile(r"^\s*UPDATE\s+([\w.\"]+)", re.IGNORECASE),
    "delete": re.compile(r"\bFROM\s+([\w.\"]+)", re.IGNORECASE),
}


def _statement_labels(statement: str):
    """Extract (operation, table) labels from a SQL statement"""
    stripped = statement.strip()
    operation = stripped.split()[0].lower() if stripped else "unknown"
    table = "unknown"
    pattern = _TABLE_PATTERNS.get(operation)
    if pattern:
        match = pattern.search(stripped)
        if match:
            table = match.group(1).strip('";').lower()
    return operation, table


def _setup_db_metrics(engine: Engine):
    """Setup SQLAlchemy event listeners for database metrics"""

    @event.listens_for(engine, "before_cursor_execute")
    def receive_before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
        conn.info.setdefault('query_start_time', []).append(time.time())

    @event.listens_for(engine, "after_cursor_execute")
    def receive_after_cursor_execute(conn, cursor, statement, parameters, context, executemany):
        if conn.info.get('query_start_time'):
            duration = time.time() - conn.info['query_start_time'].pop()
            operation, table = _statement_labels(statement)
            db_queries_total.labels(operation=operation, table=table).inc()
            db_query_duration_seconds.labels(operation=operation, table=table).observe(duration)

    @event.listens_for(engine, "checkout")
    def receive_checkout(dbapi_conn, connection_record, connection_proxy):
        pool = engine.pool
        if hasattr(pool, "checkedout"):
            db_connection_pool_size.labels(state="active").set(pool.checkedout())


def build_engine(database_url: str, **overrides) -> Engine:
    """Create an engine with the pool and timeout options used across the app"""
    settings = get_settings()
    kwargs = {
        "pool_pre_ping": True,
        "echo": settings.log_sqlalchemy,
    }
    if database_url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
    else:
        kwargs["pool_size"] = settings.database_pool_size
        kwargs["max_overflow"] = settings.database_max_overflow
        if "postgresql" in database_url:
            kwargs["connect_args"] = {"connect_timeout": 5}
    kwargs.update(overrides)

    engine = create_engine(database_url, **kwargs)
    _setup_db_metrics(engine)
    return engine


def get_engine() -> Engine:
    """Get or create database engine (lazy initialization)"""
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = build_engine(settings.database_url)

        sqlalchemy_logger = logging.getLogger("sqlalchemy.engine")
        if not settings.log_sqlalchemy:
            sqlalchemy_logger.setLevel(logging.WARNING)
            sqlalchemy_logger.propagate = False
    return _engine


def get_session_local() -> sessionmaker:
    """Get or create session factory (lazy initialization)"""
    global _SessionLocal
    if _SessionLocal is None:
        _SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=get_engine())
    return _SessionLocal


def create_tables(engine: Optional[Engine] = None):
    """Create all tables registered on Base.metadata"""
    import pdpgate.models  # noqa: F401 - register models

    Base.metadata.create_all(bind=engine or get_engine())
    logger.info("Database tables ensured", extra={"tables": sorted(Base.metadata.tables)})


def get_db() -> Generator[Session, None, None]:
    """
    Dependency for getting database session
    """
    SessionLocal = get_session_local()
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
