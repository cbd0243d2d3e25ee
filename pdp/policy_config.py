"""
Policy YAML loader.

Expected shape (simplified):

    policy:
      version: v1
      super_admin_roles: [SUPER_ADMIN, SYSTEM_ADMIN]
      roles:
        ADMIN: [ALL]
        USER: [READ]
      registry:
        - endpoint: /api/users/{id}
          operation: WRITE
          scope: COMPANY
          allowed_company_types: [INTERNAL]
          default_roles: [ADMIN]

Loaded once at startup; the result is immutable.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from .constants import POLICY_VERSION_DEFAULT, SUPER_ADMIN_ROLES
from .enums import OperationType
from .registry import PolicyRegistry, RegistryEntry, RegistryError
from .roles import ALL_OPERATIONS, DEFAULT_ROLE_TABLE

ALL_KEYWORD = "ALL"


class PolicyConfigError(ValueError):
    """Raised when the policy YAML configuration is invalid."""


class RegistryEntryModel(BaseModel):
    endpoint: str
    operation: str
    scope: str
    allowed_company_types: list[str] = Field(default_factory=list)
    default_roles: list[str] = Field(default_factory=list)
    requires_grant: bool = False
    active: bool = True
    policy_version: str | None = None
    description: str | None = None


class PolicyConfigModel(BaseModel):
    version: str = POLICY_VERSION_DEFAULT
    super_admin_roles: list[str] = Field(default_factory=lambda: sorted(SUPER_ADMIN_ROLES))
    roles: dict[str, list[str]] | None = None
    registry: list[RegistryEntryModel] = Field(default_factory=list)

    @field_validator("roles")
    @classmethod
    def _roles_have_operations(cls, value: dict[str, list[str]] | None) -> dict[str, list[str]] | None:
        if value is None:
            return value
        for role, ops in value.items():
            if not role.strip():
                raise ValueError("role names cannot be empty")
            for op in ops:
                if op.upper() != ALL_KEYWORD and op.upper() not in OperationType.__members__:
                    raise ValueError(f"role {role!r} lists unknown operation {op!r}")
        return value


@dataclass(frozen=True)
class PolicyConfig:
    """Fully-loaded policy configuration."""

    version: str
    super_admin_roles: frozenset[str]
    role_table: Mapping[str, frozenset[OperationType]]
    registry: PolicyRegistry

    @classmethod
    def default(cls) -> PolicyConfig:
        return cls(
            version=POLICY_VERSION_DEFAULT,
            super_admin_roles=SUPER_ADMIN_ROLES,
            role_table=dict(DEFAULT_ROLE_TABLE),
            registry=PolicyRegistry(),
        )


def _role_operations(ops: list[str]) -> frozenset[OperationType]:
    if any(op.upper() == ALL_KEYWORD for op in ops):
        return ALL_OPERATIONS
    return frozenset(OperationType[op.upper()] for op in ops)


def build_policy_config(raw: Mapping[str, Any]) -> PolicyConfig:
    try:
        model = PolicyConfigModel.model_validate(raw)
    except ValidationError as exc:
        raise PolicyConfigError(str(exc)) from exc

    if model.roles is None:
        role_table: Mapping[str, frozenset[OperationType]] = dict(DEFAULT_ROLE_TABLE)
    else:
        role_table = {name.strip().upper(): _role_operations(ops) for name, ops in model.roles.items()}

    try:
        registry = PolicyRegistry(
            RegistryEntry(
                endpoint=e.endpoint,
                operation=e.operation,
                scope=e.scope,
                allowed_company_types=frozenset(e.allowed_company_types),
                default_roles=frozenset(e.default_roles),
                requires_grant=e.requires_grant,
                active=e.active,
                policy_version=e.policy_version or model.version,
                description=e.description,
            )
            for e in model.registry
        )
    except RegistryError as exc:
        raise PolicyConfigError(str(exc)) from exc

    return PolicyConfig(
        version=model.version,
        super_admin_roles=frozenset(r.strip().upper() for r in model.super_admin_roles),
        role_table=role_table,
        registry=registry,
    )


def load_policy_config(path: Path) -> PolicyConfig:
    raw_text = path.read_text(encoding="utf-8")
    raw: dict[str, Any] = yaml.safe_load(raw_text) or {}

    if "policy" not in raw:
        raise PolicyConfigError(f"Missing top-level 'policy' key in config: {path}")

    return build_policy_config(raw["policy"] or {})
