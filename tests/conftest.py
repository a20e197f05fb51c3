"""Pytest fixtures for compliance engine tests.

Provides reusable test fixtures for:
- Database session on a fresh in-memory SQLite database per test
- Settings and regulatory config with test-friendly values
- Test tenants and users (plain, inactive, employee-linked)
- Audit logger bound to the test session

Usage:
    def test_policy_created(db_session, tenant, audit):
        service = RetentionService(db=db_session, audit=audit, settings=settings)
"""

import os
from datetime import timedelta
from typing import Generator

# Keep the engine lazy and the settings deterministic
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("LOG_JSON", "false")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from gdprflow.audit.service import AuditLogger
from gdprflow.config import RegulatoryConfig, Settings
from gdprflow.models import Base, Employee, Tenant, User, utcnow


@pytest.fixture(scope="function")
def db_session() -> Generator[Session, None, None]:
    """Create a fresh database for each test.

    StaticPool keeps the single in-memory connection alive across the
    commits the services perform.
    """
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        DATABASE_URL="sqlite://",
        RETENTION_BATCH_SIZE=1000,
        RETENTION_SWEEP_HOUR=2,
        RETENTION_LEASE_SECONDS=3600,
        CONSENT_WRITE_RETRIES=3,
        DPIA_KEYWORD_HEURISTICS=False,
    )


@pytest.fixture
def regulatory() -> RegulatoryConfig:
    return RegulatoryConfig(version="test-1")


@pytest.fixture
def audit(db_session: Session) -> AuditLogger:
    return AuditLogger(db_session)


@pytest.fixture(scope="function")
def tenant(db_session: Session) -> Tenant:
    """Create a test tenant."""
    tenant = Tenant(slug="acme", name="Acme GmbH")
    db_session.add(tenant)
    db_session.commit()
    db_session.refresh(tenant)
    return tenant


@pytest.fixture(scope="function")
def other_tenant(db_session: Session) -> Tenant:
    """Create a second tenant for isolation tests."""
    tenant = Tenant(slug="globex", name="Globex AG")
    db_session.add(tenant)
    db_session.commit()
    db_session.refresh(tenant)
    return tenant


@pytest.fixture(scope="function")
def user(db_session: Session, tenant: Tenant) -> User:
    """Create an active data subject."""
    user = User(
        tenant_id=tenant.id,
        email="alice@example.com",
        first_name="Alice",
        last_name="Example",
    )
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture(scope="function")
def stale_user(db_session: Session, tenant: Tenant) -> User:
    """Create an inactive user last updated 100 days ago."""
    user = User(
        tenant_id=tenant.id,
        email="bob@example.com",
        first_name="Bob",
        last_name="Stale",
        phone_number="+43 1 234567",
        bio="Former customer",
        is_active=False,
        updated_at=utcnow() - timedelta(days=100),
    )
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture(scope="function")
def employee_user(db_session: Session, tenant: Tenant) -> User:
    """Create an inactive user last updated 100 days ago who is also an employee."""
    user = User(
        tenant_id=tenant.id,
        email="carol@example.com",
        first_name="Carol",
        last_name="Staff",
        is_active=False,
        updated_at=utcnow() - timedelta(days=100),
    )
    db_session.add(user)
    db_session.flush()
    db_session.add(Employee(tenant_id=tenant.id, user_id=user.id, position="Accountant"))
    db_session.commit()
    db_session.refresh(user)
    return user
