"""
Policy decision point.

Given a ``PolicyContext`` (who, which company, what operation on which
endpoint and resource) ``PolicyEngine.evaluate`` returns an ALLOW/DENY
``PolicyDecision`` with a reason and writes one audit record. Use
``build_policy_engine()`` for a fully wired engine.
"""

from .bootstrap import PolicyRuntime, build_policy_engine, build_policy_runtime
from .context import PolicyContext, PolicyContextError
from .decision import PolicyDecision
from .engine import PolicyEngine
from .enums import CompanyType, DataScope, GrantStatus, OperationType, PermissionType
from .grants import UserPermissionGrant
from .guard import CompanyTypeGuard
from .scope import ScopeResolver

__all__ = [
    "CompanyType",
    "CompanyTypeGuard",
    "DataScope",
    "GrantStatus",
    "OperationType",
    "PermissionType",
    "PolicyContext",
    "PolicyContextError",
    "PolicyDecision",
    "PolicyEngine",
    "PolicyRuntime",
    "ScopeResolver",
    "UserPermissionGrant",
    "build_policy_engine",
    "build_policy_runtime",
]
