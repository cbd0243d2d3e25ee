"""Tests for PolicyContext, PolicyDecision and the enum helpers."""
from __future__ import annotations

from dataclasses import FrozenInstanceError
from datetime import datetime, timedelta, timezone
from uuid import UUID

import pytest

from pdp.context import PolicyContext, PolicyContextError
from pdp.decision import PolicyDecision
from pdp.enums import (
    CompanyType,
    DataScope,
    OperationType,
    coerce_enum,
    is_read_only,
    operation_for_method,
    scope_includes,
    scope_level,
)


def test_context_normalizes_inputs():
    ctx = PolicyContext(
        user_id=UUID("12345678-1234-5678-1234-567812345678"),
        company_id=7,
        company_type="supplier",
        roles=["admin", " user ", ""],
        http_method="post",
        operation="WRITE",
        scope="company",
    )
    assert ctx.user_id == "12345678-1234-5678-1234-567812345678"
    assert ctx.company_id == "7"
    assert ctx.company_type is CompanyType.SUPPLIER
    assert ctx.roles == frozenset({"ADMIN", "USER"})
    assert ctx.http_method == "POST"
    assert ctx.operation is OperationType.WRITE
    assert ctx.scope is DataScope.COMPANY
    assert ctx.is_internal is False
    assert ctx.has_role("admin") is True
    assert ctx.has_any_role(["MANAGER", "USER"]) is True


def test_context_normalizes_tracing_fields(make_context):
    ctx = make_context(correlation_id=" corr-9 ", request_id="  ", request_ip=" 10.0.0.1 ")
    assert ctx.correlation_id == "corr-9"
    assert ctx.request_id is None
    assert ctx.request_ip == "10.0.0.1"
    assert make_context(request_ip="  ").request_ip is None


def test_context_requires_user_id():
    with pytest.raises(PolicyContextError):
        PolicyContext(user_id="  ")


def test_context_rejects_unknown_enum_names():
    with pytest.raises(PolicyContextError, match="CompanyType"):
        PolicyContext(user_id="u1", company_type="PARTNER")


def test_context_is_immutable(make_context):
    ctx = make_context()
    with pytest.raises(FrozenInstanceError):
        ctx.user_id = "other"


def test_fingerprint_ignores_tracing_fields(make_context):
    a = make_context(correlation_id="a", request_id="r1", request_ip="10.0.0.1")
    b = make_context(correlation_id="b", request_id="r2", request_ip="10.0.0.2")
    assert a.fingerprint() == b.fingerprint()
    assert a.fingerprint() != make_context(resource_owner_id="user-2").fingerprint()


def test_context_to_dict(make_context):
    data = make_context(roles=["USER", "ADMIN"]).to_dict()
    assert data["roles"] == ["ADMIN", "USER"]
    assert data["company_type"] == "INTERNAL"
    assert data["operation"] == "READ"


def test_decision_factories_and_outcome():
    allow = PolicyDecision.allow("role_default_allowed", "v1", "c1")
    deny = PolicyDecision.deny("role_no_default_access", "v1", None)
    assert allow.allowed and not allow.denied and allow.outcome == "ALLOW"
    assert deny.denied and deny.outcome == "DENY"
    assert "role_no_default_access" in deny.audit_message()
    assert allow.to_dict()["correlation_id"] == "c1"


def test_decision_expiry():
    decided = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)
    decision = PolicyDecision(allowed=True, reason="role_default_allowed", decided_at=decided)
    assert decision.is_expired(5, now=decided + timedelta(minutes=4)) is False
    assert decision.is_expired(5, now=decided + timedelta(minutes=6)) is True
    # Naive "now" is read as UTC.
    assert decision.is_expired(5, now=datetime(2026, 1, 1, 12, 10)) is True


def test_scope_hierarchy():
    assert scope_level(DataScope.SELF) < scope_level(DataScope.GLOBAL)
    assert scope_includes(DataScope.GLOBAL, DataScope.COMPANY) is True
    assert scope_includes(DataScope.SELF, DataScope.COMPANY) is False


def test_operation_helpers():
    assert is_read_only(OperationType.EXPORT) is True
    assert is_read_only(OperationType.APPROVE) is False
    assert operation_for_method("head") is OperationType.READ
    assert operation_for_method("PATCH") is OperationType.WRITE
    assert operation_for_method("DELETE") is OperationType.DELETE
    assert operation_for_method("TRACE") is None
    assert operation_for_method(None) is None


def test_coerce_enum():
    assert coerce_enum(DataScope, "cross_company") is DataScope.CROSS_COMPANY
    assert coerce_enum(DataScope, DataScope.SELF) is DataScope.SELF
    assert coerce_enum(DataScope, None) is None
    with pytest.raises(ValueError):
        coerce_enum(DataScope, "REGION")
