"""Immutable per-request input to every policy component."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable
from uuid import UUID

from .enums import CompanyType, DataScope, OperationType, coerce_enum


class PolicyContextError(ValueError):
    """Raised when a PolicyContext is built from invalid values."""


def _id_or_none(value: str | UUID | None) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _normalize_roles(roles: Iterable[str] | str | None) -> frozenset[str]:
    if roles is None:
        return frozenset()
    if isinstance(roles, str):
        roles = [roles]
    return frozenset(str(r).strip().upper() for r in roles if r and str(r).strip())


@dataclass(frozen=True)
class PolicyContext:
    """
    Everything the decision point knows about one request.

    Built once by the caller (normally from an authenticated session plus the
    resource lookup) and never mutated; a new context is built per request.

    Enum fields accept members or their names. ``company_type`` and
    ``operation`` may be None: the company-type guard turns that into a
    denial instead of a construction error. Identifiers are normalized to
    strings so UUIDs and their text form compare equal.
    """

    user_id: str
    company_id: str | None = None
    company_type: CompanyType | None = None
    roles: frozenset[str] = field(default_factory=frozenset)

    endpoint: str | None = None
    http_method: str | None = None
    operation: OperationType | None = None
    scope: DataScope | None = None
    """Requested data scope; None lets the scope resolver infer it from the endpoint."""

    resource_owner_id: str | None = None
    resource_company_id: str | None = None

    correlation_id: str | None = None
    request_id: str | None = None
    request_ip: str | None = None

    def __post_init__(self) -> None:
        user_id = _id_or_none(self.user_id)
        if user_id is None:
            raise PolicyContextError("user_id must be set")

        try:
            company_type = coerce_enum(CompanyType, self.company_type)
            operation = coerce_enum(OperationType, self.operation)
            scope = coerce_enum(DataScope, self.scope)
        except ValueError as exc:
            raise PolicyContextError(str(exc)) from exc

        endpoint = self.endpoint.strip() if self.endpoint else None
        http_method = self.http_method.strip().upper() if self.http_method else None

        # Frozen dataclass: normalize through object.__setattr__ during construction only.
        object.__setattr__(self, "user_id", user_id)
        object.__setattr__(self, "company_id", _id_or_none(self.company_id))
        object.__setattr__(self, "company_type", company_type)
        object.__setattr__(self, "roles", _normalize_roles(self.roles))
        object.__setattr__(self, "endpoint", endpoint or None)
        object.__setattr__(self, "http_method", http_method or None)
        object.__setattr__(self, "operation", operation)
        object.__setattr__(self, "scope", scope)
        object.__setattr__(self, "resource_owner_id", _id_or_none(self.resource_owner_id))
        object.__setattr__(self, "resource_company_id", _id_or_none(self.resource_company_id))
        object.__setattr__(self, "correlation_id", _id_or_none(self.correlation_id))
        object.__setattr__(self, "request_id", _id_or_none(self.request_id))
        object.__setattr__(self, "request_ip", _id_or_none(self.request_ip))

    @property
    def is_internal(self) -> bool:
        return self.company_type is CompanyType.INTERNAL

    def has_role(self, role: str) -> bool:
        return role.upper() in self.roles

    def has_any_role(self, roles: Iterable[str]) -> bool:
        return any(r.upper() in self.roles for r in roles)

    def fingerprint(self) -> tuple[Any, ...]:
        """
        Stable cache key over every field that can influence a decision.

        Tracing fields (correlation/request id, ip) are excluded so repeated
        requests with identical semantics share an entry.
        """

        return (
            self.user_id,
            self.company_id,
            self.company_type,
            tuple(sorted(self.roles)),
            self.endpoint,
            self.http_method,
            self.operation,
            self.scope,
            self.resource_owner_id,
            self.resource_company_id,
        )

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-serializable dict."""
        return {
            "user_id": self.user_id,
            "company_id": self.company_id,
            "company_type": self.company_type.value if self.company_type else None,
            "roles": sorted(self.roles),
            "endpoint": self.endpoint,
            "http_method": self.http_method,
            "operation": self.operation.value if self.operation else None,
            "scope": self.scope.value if self.scope else None,
            "resource_owner_id": self.resource_owner_id,
            "resource_company_id": self.resource_company_id,
            "correlation_id": self.correlation_id,
            "request_id": self.request_id,
            "request_ip": self.request_ip,
        }
