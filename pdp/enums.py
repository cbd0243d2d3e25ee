"""
Closed vocabularies used by the policy decision point.

Every enum is ``str``-valued so members serialize as their names (audit rows,
events, YAML). Behavior that used to hang off the enums lives in small lookup
tables and pure functions below.
"""

from __future__ import annotations

from enum import Enum
from typing import TypeVar


class CompanyType(str, Enum):
    """Relationship of the requesting company to the platform owner."""

    INTERNAL = "INTERNAL"
    CUSTOMER = "CUSTOMER"
    SUPPLIER = "SUPPLIER"
    SUBCONTRACTOR = "SUBCONTRACTOR"


class OperationType(str, Enum):
    READ = "READ"
    WRITE = "WRITE"
    DELETE = "DELETE"
    APPROVE = "APPROVE"
    EXPORT = "EXPORT"
    MANAGE = "MANAGE"


class DataScope(str, Enum):
    """Breadth of data a request covers, narrowest first."""

    SELF = "SELF"
    COMPANY = "COMPANY"
    CROSS_COMPANY = "CROSS_COMPANY"
    GLOBAL = "GLOBAL"


class PermissionType(str, Enum):
    ALLOW = "ALLOW"
    DENY = "DENY"


class GrantStatus(str, Enum):
    ACTIVE = "ACTIVE"
    EXPIRED = "EXPIRED"
    REVOKED = "REVOKED"


class RelationshipStatus(str, Enum):
    ACTIVE = "ACTIVE"
    SUSPENDED = "SUSPENDED"
    TERMINATED = "TERMINATED"


# ---- Lookup tables -------------------------------------------------------------------


_SCOPE_LEVEL: dict[DataScope, int] = {
    DataScope.SELF: 0,
    DataScope.COMPANY: 1,
    DataScope.CROSS_COMPANY: 2,
    DataScope.GLOBAL: 3,
}

_READ_ONLY_OPERATIONS = frozenset({OperationType.READ, OperationType.EXPORT})

_METHOD_OPERATIONS: dict[str, OperationType] = {
    "GET": OperationType.READ,
    "HEAD": OperationType.READ,
    "OPTIONS": OperationType.READ,
    "POST": OperationType.WRITE,
    "PUT": OperationType.WRITE,
    "PATCH": OperationType.WRITE,
    "DELETE": OperationType.DELETE,
}


def scope_level(scope: DataScope) -> int:
    """Hierarchy level: 0 for SELF up to 3 for GLOBAL."""
    return _SCOPE_LEVEL[scope]


def scope_includes(scope: DataScope, other: DataScope) -> bool:
    """True if ``scope`` is at least as broad as ``other``."""
    return _SCOPE_LEVEL[scope] >= _SCOPE_LEVEL[other]


def is_read_only(operation: OperationType) -> bool:
    return operation in _READ_ONLY_OPERATIONS


def operation_for_method(http_method: str | None) -> OperationType | None:
    """Map an HTTP method to the operation it performs; None when unknown."""
    if not http_method:
        return None
    return _METHOD_OPERATIONS.get(http_method.strip().upper())


E = TypeVar("E", bound=Enum)


def coerce_enum(enum_cls: type[E], value: E | str | None) -> E | None:
    """
    Accept an enum member, its name (any case) or None.

    Raises ValueError for unknown names so callers can wrap it in their own
    construction error.
    """

    if value is None or isinstance(value, enum_cls):
        return value
    if isinstance(value, str):
        key = value.strip().upper()
        try:
            return enum_cls[key]
        except KeyError:
            pass
    raise ValueError(f"unknown {enum_cls.__name__}: {value!r}")
