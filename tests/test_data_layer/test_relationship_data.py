"""Tests for the SQLAlchemy company relationship store."""
from __future__ import annotations

from sqlalchemy import func, select

from pdp.db.repositories import SqlAlchemyRelationshipStore
from pdp.models.policy import CompanyRelationshipRow
from pdp.relationships import CompanyRelationship
from pdp.scope import ScopeResolver


def test_relationship_is_symmetric(session_factory):
    store = SqlAlchemyRelationshipStore(session_factory)
    store.save(CompanyRelationship("c1", "c2", kind="SUPPLIES"))

    assert store.relationship_active("c1", "c2") is True
    assert store.relationship_active("c2", "c1") is True
    assert store.relationship_active("c1", "c3") is False


def test_save_updates_existing_row_and_notifies(session_factory, db_session):
    changed: list[tuple[str, str]] = []
    store = SqlAlchemyRelationshipStore(session_factory)
    store.add_listener(lambda a, b: changed.append((a, b)))

    store.save(CompanyRelationship("c1", "c2"))
    store.save(CompanyRelationship("c1", "c2", status="TERMINATED"))

    assert store.relationship_active("c1", "c2") is False
    assert db_session.execute(select(func.count()).select_from(CompanyRelationshipRow)).scalar_one() == 1
    assert changed == [("c1", "c2"), ("c1", "c2")]


def test_scope_resolver_over_sqlalchemy_store(session_factory, make_context):
    store = SqlAlchemyRelationshipStore(session_factory)
    store.save(CompanyRelationship("company-1", "company-2"))
    resolver = ScopeResolver(store)

    ctx = make_context(company_type="CUSTOMER", scope="CROSS_COMPANY", resource_company_id="company-2")
    assert resolver.validate_scope(ctx) is None
    ctx = make_context(company_type="CUSTOMER", scope="CROSS_COMPANY", resource_company_id="company-3")
    assert resolver.validate_scope(ctx) == "scope_violation_cross_company_no_relationship"
