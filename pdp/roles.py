"""
Role default access.

Baseline capability table mapping role names to the operations they may
perform without an explicit grant. Elevated tiers (admin, manager) cover
every operation; the baseline USER role only reads.

The table can be replaced from the policy YAML (``policy.roles``). When a
policy registry is wired in, an entry's ``default_roles`` take precedence
for that endpoint.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Iterable, Mapping

from .constants import ROLE_ADMIN, ROLE_MANAGER, ROLE_SUPER_ADMIN, ROLE_SYSTEM_ADMIN, ROLE_USER
from .enums import OperationType

if TYPE_CHECKING:
    from .registry import PolicyRegistry

logger = logging.getLogger(__name__)


ALL_OPERATIONS: frozenset[OperationType] = frozenset(OperationType)

DEFAULT_ROLE_TABLE: Mapping[str, frozenset[OperationType]] = {
    ROLE_SUPER_ADMIN: ALL_OPERATIONS,
    ROLE_SYSTEM_ADMIN: ALL_OPERATIONS,
    ROLE_ADMIN: ALL_OPERATIONS,
    ROLE_MANAGER: ALL_OPERATIONS,
    ROLE_USER: frozenset({OperationType.READ}),
}


class RoleDefaultResolver:
    def __init__(
        self,
        role_table: Mapping[str, Iterable[OperationType]] | None = None,
        registry: PolicyRegistry | None = None,
    ) -> None:
        table = DEFAULT_ROLE_TABLE if role_table is None else role_table
        self._table = {name.upper(): frozenset(ops) for name, ops in table.items()}
        self._registry = registry

    @property
    def role_table(self) -> Mapping[str, frozenset[OperationType]]:
        return dict(self._table)

    def operations_for(self, roles: Iterable[str]) -> frozenset[OperationType]:
        """Union of default operations over the given roles; unknown roles add nothing."""
        ops: set[OperationType] = set()
        for role in roles:
            ops.update(self._table.get(role.upper(), ()))
        return frozenset(ops)

    def has_default_access(
        self,
        roles: Iterable[str] | None,
        operation: OperationType | None,
        endpoint: str | None = None,
    ) -> bool:
        role_set = frozenset(r.upper() for r in roles or ())
        if not role_set or operation is None:
            return False

        if self._registry is not None and endpoint:
            entry = self._registry.lookup(endpoint, operation)
            if entry is not None and entry.default_roles:
                allowed = bool(role_set & entry.default_roles)
                logger.debug(
                    "Registry role check endpoint=%s required=%s roles=%s allowed=%s",
                    endpoint,
                    sorted(entry.default_roles),
                    sorted(role_set),
                    allowed,
                )
                return allowed

        return operation in self.operations_for(role_set)
