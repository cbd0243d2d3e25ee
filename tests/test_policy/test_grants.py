"""Tests for user permission grants and the grant resolver."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from pdp.enums import GrantStatus, OperationType, PermissionType
from pdp.grants import GrantError, InMemoryGrantStore, UserGrantResolver, UserPermissionGrant

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _grant(**overrides) -> UserPermissionGrant:
    values = {
        "user_id": "user-1",
        "endpoint": "/api/orders/{id}",
        "operation": "WRITE",
        "permission_type": "ALLOW",
    }
    values.update(overrides)
    return UserPermissionGrant(**values)


def _resolver(*grants: UserPermissionGrant) -> UserGrantResolver:
    return UserGrantResolver(InMemoryGrantStore(list(grants)), clock=lambda: NOW)


def test_grant_coerces_names_and_defaults_to_active():
    grant = _grant(operation="write", permission_type="deny")
    assert grant.operation is OperationType.WRITE
    assert grant.permission_type is PermissionType.DENY
    assert grant.status is GrantStatus.ACTIVE
    assert grant.grant_id


def test_grant_rejects_unknown_operation():
    with pytest.raises(GrantError, match="OperationType"):
        _grant(operation="PUBLISH")


def test_grant_rejects_blank_endpoint():
    with pytest.raises(GrantError):
        _grant(endpoint="  ")


def test_grant_validity_window():
    grant = _grant(valid_from=NOW - timedelta(days=1), valid_until=NOW + timedelta(days=1))
    assert grant.is_effective(NOW) is True
    assert grant.is_effective(NOW + timedelta(days=2)) is False
    assert grant.is_expired(NOW + timedelta(days=2)) is True
    assert grant.is_effective(NOW - timedelta(days=2)) is False


def test_naive_timestamps_are_treated_as_utc():
    grant = _grant(valid_until=datetime(2026, 3, 2))
    assert grant.valid_until.tzinfo is not None
    assert grant.is_effective(NOW) is True


def test_revoked_grant_is_not_effective():
    assert _grant(status="REVOKED").is_effective(NOW) is False


def test_template_endpoint_matches_concrete_path():
    grant = _grant()
    assert grant.matches("user-1", "/api/orders/42", OperationType.WRITE) is True
    assert grant.matches("user-1", "/api/orders/42/", OperationType.WRITE) is True
    assert grant.matches("user-1", "/api/orders/42/lines", OperationType.WRITE) is False
    assert grant.matches("user-2", "/api/orders/42", OperationType.WRITE) is False
    assert grant.matches("user-1", "/api/orders/42", OperationType.READ) is False


def test_check_user_deny_returns_reason(make_context):
    resolver = _resolver(_grant(permission_type="DENY"))
    ctx = make_context(operation="WRITE", endpoint="/api/orders/42")
    assert resolver.check_user_deny(ctx) == "user_grant_explicit_deny"
    assert resolver.has_user_allow(ctx) is False


def test_has_user_allow(make_context):
    resolver = _resolver(_grant())
    ctx = make_context(operation="WRITE", endpoint="/api/orders/42")
    assert resolver.check_user_deny(ctx) is None
    assert resolver.has_user_allow(ctx) is True


def test_expired_grant_is_ignored(make_context):
    resolver = _resolver(_grant(permission_type="DENY", valid_until=NOW - timedelta(minutes=1)))
    ctx = make_context(operation="WRITE", endpoint="/api/orders/42")
    assert resolver.check_user_deny(ctx) is None


def test_future_grant_is_ignored(make_context):
    resolver = _resolver(_grant(valid_from=NOW + timedelta(hours=1)))
    ctx = make_context(operation="WRITE", endpoint="/api/orders/42")
    assert resolver.has_user_allow(ctx) is False


def test_resolver_without_store_is_a_no_op(make_context):
    resolver = UserGrantResolver()
    ctx = make_context(operation="WRITE")
    assert resolver.enabled is False
    assert resolver.check_user_deny(ctx) is None
    assert resolver.has_user_allow(ctx) is False
    assert resolver.effective_grants("user-1") == []


def test_store_errors_propagate(make_context):
    class BrokenStore(InMemoryGrantStore):
        def find_grants(self, *args, **kwargs):
            raise RuntimeError("grant store unavailable")

    resolver = UserGrantResolver(BrokenStore())
    with pytest.raises(RuntimeError, match="unavailable"):
        resolver.check_user_deny(make_context())


def test_effective_grants_lists_only_grants_in_force():
    active = _grant()
    revoked = _grant(status="REVOKED")
    other_user = _grant(user_id="user-2")
    resolver = _resolver(active, revoked, other_user)
    assert [g.grant_id for g in resolver.effective_grants("user-1")] == [active.grant_id]


def test_store_revoke_and_expire_notify_listeners():
    changed: list[str] = []
    store = InMemoryGrantStore()
    store.add_listener(changed.append)

    grant = store.add(_grant())
    stale = store.add(_grant(user_id="user-2", valid_until=NOW - timedelta(days=1)))
    revoked = store.revoke(grant.grant_id)

    assert revoked.status is GrantStatus.REVOKED
    assert store.revoke("missing") is None
    assert store.expire_stale(NOW) == 1
    assert store.effective_grants("user-2", NOW) == []
    assert changed == ["user-1", "user-2", "user-1", "user-2"]
    assert stale.status is GrantStatus.ACTIVE


@pytest.mark.parametrize(
    "endpoint, expected",
    [
        ("/api/admin/users", True),
        ("/api/users/5/permissions/", True),
        ("/api/grants/1", True),
        ("/api/orders/1", False),
        (None, False),
    ],
)
def test_requires_explicit_grant(endpoint, expected):
    assert UserGrantResolver.requires_explicit_grant(endpoint) is expected
