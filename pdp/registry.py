"""
Policy registry: the administrative endpoint catalog.

Each entry says, for one endpoint and operation, which data scope applies,
which company types may call it at all and which roles get default access.
The engine does not need a registry to decide; when one is wired in it

- denies company types an entry does not list (platform policy), and
- replaces the role default table for that endpoint with the entry's roles.

Callers also use it to pre-populate contexts (``context_defaults``).
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Iterable

from .constants import POLICY_VERSION_DEFAULT, REASON_PLATFORM
from .context import PolicyContext
from .enums import CompanyType, DataScope, OperationType, coerce_enum, operation_for_method
from .paths import endpoint_matches, normalize_path
from .scope import infer_scope_from_endpoint

logger = logging.getLogger(__name__)


class RegistryError(ValueError):
    """Raised when a registry entry is built from invalid values."""


@dataclass(frozen=True)
class RegistryEntry:
    endpoint: str
    operation: OperationType
    scope: DataScope
    allowed_company_types: frozenset[CompanyType] = frozenset()
    """Empty means every company type may call the endpoint."""
    default_roles: frozenset[str] = frozenset()
    requires_grant: bool = False
    active: bool = True
    policy_version: str = POLICY_VERSION_DEFAULT
    description: str | None = None

    def __post_init__(self) -> None:
        if not self.endpoint or not str(self.endpoint).strip():
            raise RegistryError("registry entry endpoint cannot be empty")
        try:
            operation = coerce_enum(OperationType, self.operation)
            scope = coerce_enum(DataScope, self.scope)
            company_types = frozenset(coerce_enum(CompanyType, c) for c in self.allowed_company_types)
        except ValueError as exc:
            raise RegistryError(f"registry entry {self.endpoint!r}: {exc}") from exc
        if operation is None:
            raise RegistryError(f"registry entry {self.endpoint!r}: operation cannot be null")
        if scope is None:
            raise RegistryError(f"registry entry {self.endpoint!r}: scope cannot be null")

        object.__setattr__(self, "endpoint", normalize_path(str(self.endpoint)))
        object.__setattr__(self, "operation", operation)
        object.__setattr__(self, "scope", scope)
        object.__setattr__(self, "allowed_company_types", company_types)
        object.__setattr__(self, "default_roles", frozenset(r.strip().upper() for r in self.default_roles if r))

    def is_company_type_allowed(self, company_type: CompanyType | None) -> bool:
        if not self.allowed_company_types:
            return True
        return company_type is not None and company_type in self.allowed_company_types

    def has_role_access(self, role: str) -> bool:
        return role.upper() in self.default_roles


class PolicyRegistry:
    """In-memory catalog of registry entries; exact endpoints win over templates."""

    def __init__(self, entries: Iterable[RegistryEntry] = ()) -> None:
        self._exact: dict[tuple[str, OperationType], RegistryEntry] = {}
        self._templates: list[RegistryEntry] = []
        for entry in entries:
            self.register(entry)

    def register(self, entry: RegistryEntry) -> None:
        key = (entry.endpoint, entry.operation)
        if key in self._exact or any(
            e.endpoint == entry.endpoint and e.operation is entry.operation for e in self._templates
        ):
            raise RegistryError(f"duplicate registry entry {entry.endpoint!r} {entry.operation.value}")
        if "{" in entry.endpoint:
            self._templates.append(entry)
        else:
            self._exact[key] = entry

    @property
    def entries(self) -> list[RegistryEntry]:
        return [*self._exact.values(), *self._templates]

    def lookup(self, endpoint: str | None, operation: OperationType | None) -> RegistryEntry | None:
        """Active entry for (endpoint, operation), or None."""
        if not endpoint or operation is None:
            return None
        entry = self._exact.get((normalize_path(endpoint), operation))
        if entry is not None:
            return entry if entry.active else None
        for candidate in self._templates:
            if candidate.active and candidate.operation is operation and endpoint_matches(candidate.endpoint, endpoint):
                return candidate
        return None

    def requires_grant(self, endpoint: str | None, operation: OperationType | None) -> bool:
        entry = self.lookup(endpoint, operation)
        return bool(entry and entry.requires_grant)

    def context_defaults(self, endpoint: str, http_method: str | None) -> dict[str, object]:
        """
        Operation and scope for a raw request, for callers building a PolicyContext.

        Falls back to the HTTP method mapping and endpoint scope inference when
        no entry matches.
        """

        operation = operation_for_method(http_method)
        entry = self.lookup(endpoint, operation)
        return {
            "endpoint": endpoint,
            "http_method": http_method,
            "operation": operation,
            "scope": entry.scope if entry is not None else infer_scope_from_endpoint(endpoint),
        }

    def check_platform_policy(self, context: PolicyContext) -> str | None:
        """Return a denial reason if the entry for this request excludes the company type."""
        entry = self.lookup(context.endpoint, context.operation)
        if entry is None:
            return None
        if not entry.is_company_type_allowed(context.company_type):
            logger.info(
                "Platform policy denied company_type=%s endpoint=%s",
                context.company_type.value if context.company_type else None,
                context.endpoint,
            )
            return f"{REASON_PLATFORM}_company_type_not_allowed"
        return None
