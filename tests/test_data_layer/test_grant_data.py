"""Tests for the SQLAlchemy grant store."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone

from pdp.db.repositories import SqlAlchemyGrantStore
from pdp.enums import GrantStatus, OperationType, PermissionType
from pdp.grants import UserGrantResolver, UserPermissionGrant

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _grant(**overrides) -> UserPermissionGrant:
    values = {
        "user_id": "user-1",
        "endpoint": "/api/orders/{id}",
        "operation": "WRITE",
        "permission_type": "DENY",
        "granted_by": "admin-1",
        "reason": "fraud investigation",
    }
    values.update(overrides)
    return UserPermissionGrant(**values)


def test_add_and_get_round_trip_fields(session_factory):
    store = SqlAlchemyGrantStore(session_factory)
    grant = store.add(_grant(scope="COMPANY", valid_until=NOW + timedelta(days=1)))

    loaded = store.get(grant.grant_id)
    assert loaded == grant
    assert loaded.valid_until.tzinfo is not None


def test_find_grants_matches_template_and_window(session_factory):
    store = SqlAlchemyGrantStore(session_factory)
    deny = store.add(_grant())
    store.add(_grant(permission_type="ALLOW"))
    store.add(_grant(valid_from=NOW + timedelta(hours=1)))
    store.add(_grant(valid_until=NOW - timedelta(hours=1)))
    store.add(_grant(endpoint="/api/invoices/{id}"))

    found = store.find_grants("user-1", "/api/orders/42", OperationType.WRITE, PermissionType.DENY, NOW)
    assert [g.grant_id for g in found] == [deny.grant_id]
    assert store.find_grants("user-1", "/api/orders/42", None, PermissionType.DENY, NOW) == []


def test_revoke_and_expire_notify_listeners(session_factory):
    changed: list[str] = []
    store = SqlAlchemyGrantStore(session_factory)
    store.add_listener(changed.append)

    grant = store.add(_grant())
    store.add(_grant(user_id="user-2", valid_until=NOW - timedelta(days=1)))

    assert store.revoke(grant.grant_id).status is GrantStatus.REVOKED
    assert store.revoke("missing") is None
    assert store.expire_stale(NOW) == 1
    assert store.get(grant.grant_id).status is GrantStatus.REVOKED
    assert changed == ["user-1", "user-2", "user-1", "user-2"]


def test_resolver_over_sqlalchemy_store(session_factory, make_context):
    store = SqlAlchemyGrantStore(session_factory)
    store.add(_grant())
    store.add(_grant(endpoint="/api/reports", operation="EXPORT", permission_type="ALLOW"))
    resolver = UserGrantResolver(store, clock=lambda: NOW)

    assert resolver.check_user_deny(make_context(operation="WRITE")) == "user_grant_explicit_deny"
    assert resolver.has_user_allow(make_context(operation="EXPORT", endpoint="/api/reports")) is True
    assert len(resolver.effective_grants("user-1")) == 2
