"""
Pytest fixtures for the test suite.

Data-layer tests use a fresh in-memory SQLite engine per test, so tests do
not affect each other. StaticPool keeps one connection, so every session the
store adapters open sees the same database.
"""
from __future__ import annotations

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from pdp.context import PolicyContext


TEST_DB_URL = "sqlite:///:memory:"


@pytest.fixture
def engine():
    """Create a fresh in-memory SQLite engine for each test."""
    return create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )


@pytest.fixture
def tables(engine):
    """Create all ORM tables on the test engine."""
    from pdp.db.init_db import init_db
    init_db(engine)
    return engine


@pytest.fixture
def session_factory(tables):
    """Session factory for the SQLAlchemy stores, the same way bootstrap builds one."""
    from pdp.db.session import create_session_factory
    return create_session_factory(tables)


@pytest.fixture
def db_session(session_factory):
    """A single Session for tests that inspect rows directly."""
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def make_context():
    """
    Build a PolicyContext with sensible defaults: an internal USER reading
    a company-scoped resource of their own company.
    """

    def _make(**overrides) -> PolicyContext:
        values = {
            "user_id": "user-1",
            "company_id": "company-1",
            "company_type": "INTERNAL",
            "roles": ["USER"],
            "endpoint": "/api/orders/42",
            "http_method": "GET",
            "operation": "READ",
            "scope": "COMPANY",
            "resource_owner_id": "user-1",
            "resource_company_id": "company-1",
            "correlation_id": "corr-1",
        }
        values.update(overrides)
        return PolicyContext(**values)

    return _make
