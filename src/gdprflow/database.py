"""Database session factory and configuration.

Provides database connectivity and session management for the compliance engine.
Includes a tenant-scoped session factory for background jobs.

The engine is created on first use so importing this module never opens a
connection or requires a database driver.
"""

from functools import lru_cache
from typing import Optional
from uuid import UUID

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session

from .config import get_settings

# Bound to the engine by get_engine()
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
)


def build_engine(database_url: str, **kwargs) -> Engine:
    """Create an engine, adding pool settings only for non-SQLite databases."""
    engine_kwargs = {
        "pool_pre_ping": True,  # Verify connections before using
        "echo": False,  # Set to True for SQL query logging
    }
    if not database_url.startswith("sqlite"):
        engine_kwargs["pool_size"] = 5
        engine_kwargs["max_overflow"] = 10
    engine_kwargs.update(kwargs)
    return create_engine(database_url, **engine_kwargs)


@lru_cache()
def get_engine(database_url: Optional[str] = None) -> Engine:
    """Get the process-wide engine and bind SessionLocal to it."""
    engine = build_engine(database_url or get_settings().DATABASE_URL)
    SessionLocal.configure(bind=engine)
    return engine


def new_session() -> Session:
    """Open a session on the configured engine."""
    get_engine()
    return SessionLocal()


def tenant_scoped_session(tenant_id: UUID) -> Session:
    """Create a database session scoped to a specific tenant.

    The tenant_id is stored in session.info["tenant_id"]. New rows with a
    tenant_id attribute left unset are filled in before flush. Queries must
    still filter on tenant_id explicitly.

    Example:
        session = tenant_scoped_session(tenant_uuid)
        try:
            service = RetentionService(db=session, audit=AuditLogger(session))
            service.execute_retention_policies(tenant_id=tenant_uuid)
        finally:
            session.close()
    """
    session = new_session()
    session.info["tenant_id"] = tenant_id
    return session


@event.listens_for(Session, "before_flush")
def auto_populate_tenant_id(session, flush_context, instances):
    """Set tenant_id on new records when the session carries a tenant context."""
    tenant_id = session.info.get("tenant_id")
    if not tenant_id:
        return

    for instance in session.new:
        if hasattr(instance, "tenant_id") and instance.tenant_id is None:
            instance.tenant_id = tenant_id
