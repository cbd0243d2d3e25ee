"""
Per-user permission grants.

A grant is an administrator-created override of role defaults for one
(user, endpoint, operation). Precedence in the engine is:

    1. explicit DENY grant   -> always denies, even for elevated roles
    2. role default          -> standard access
    3. explicit ALLOW grant  -> extends access a role does not give

Only ACTIVE grants inside their validity window count. The decision point
never changes a grant; stores change them on revocation or expiry.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import datetime
import logging
import threading
from uuid import uuid4

from .constants import REASON_USER_GRANT_DENIED
from .context import PolicyContext
from .decision import as_utc, utcnow
from .enums import DataScope, GrantStatus, OperationType, PermissionType, coerce_enum
from .paths import endpoint_matches

logger = logging.getLogger(__name__)

GrantListener = Callable[[str], None]
"""Called with the user id whose grants changed."""

SENSITIVE_ENDPOINT_MARKERS: tuple[str, ...] = ("/admin/", "/permissions/", "/grants/")


class GrantError(ValueError):
    """Raised when a grant is built from invalid values."""


def _aware(ts: datetime | None) -> datetime | None:
    return None if ts is None else as_utc(ts)


@dataclass(frozen=True)
class UserPermissionGrant:
    user_id: str
    endpoint: str
    """Exact path or path template, e.g. ``/api/orders/{id}``."""
    operation: OperationType
    permission_type: PermissionType
    status: GrantStatus = GrantStatus.ACTIVE
    scope: DataScope | None = None
    valid_from: datetime | None = None
    valid_until: datetime | None = None
    granted_by: str | None = None
    reason: str | None = None
    grant_id: str = field(default_factory=lambda: str(uuid4()))

    def __post_init__(self) -> None:
        if self.user_id is None or not str(self.user_id).strip():
            raise GrantError("grant requires a user_id")
        if not self.endpoint or not self.endpoint.strip():
            raise GrantError("grant endpoint cannot be empty")
        try:
            operation = coerce_enum(OperationType, self.operation)
            permission_type = coerce_enum(PermissionType, self.permission_type)
            status = coerce_enum(GrantStatus, self.status)
            scope = coerce_enum(DataScope, self.scope)
        except ValueError as exc:
            raise GrantError(str(exc)) from exc
        if operation is None or permission_type is None or status is None:
            raise GrantError("grant requires operation, permission_type and status")

        object.__setattr__(self, "user_id", str(self.user_id).strip())
        object.__setattr__(self, "endpoint", self.endpoint.strip())
        object.__setattr__(self, "operation", operation)
        object.__setattr__(self, "permission_type", permission_type)
        object.__setattr__(self, "status", status)
        object.__setattr__(self, "scope", scope)
        object.__setattr__(self, "valid_from", _aware(self.valid_from))
        object.__setattr__(self, "valid_until", _aware(self.valid_until))

    def is_expired(self, now: datetime | None = None) -> bool:
        if self.valid_until is None:
            return False
        return (_aware(now) or utcnow()) > self.valid_until

    def is_effective(self, now: datetime | None = None) -> bool:
        """ACTIVE and inside [valid_from, valid_until]."""
        if self.status is not GrantStatus.ACTIVE:
            return False
        now = _aware(now) or utcnow()
        if self.valid_from is not None and now < self.valid_from:
            return False
        return not self.is_expired(now)

    def matches(self, user_id: str, endpoint: str | None, operation: OperationType | None) -> bool:
        return (
            self.user_id == str(user_id)
            and self.operation is operation
            and endpoint_matches(self.endpoint, endpoint)
        )


# ---- Store contract ------------------------------------------------------------------


class GrantStore(ABC):
    """Read-only lookups used by the resolver, plus change notification for caches."""

    def __init__(self) -> None:
        self._listeners: list[GrantListener] = []

    def add_listener(self, listener: GrantListener) -> None:
        self._listeners.append(listener)

    def _notify(self, user_id: str) -> None:
        for listener in self._listeners:
            listener(user_id)

    @abstractmethod
    def find_grants(
        self,
        user_id: str,
        endpoint: str | None,
        operation: OperationType | None,
        permission_type: PermissionType,
        at: datetime,
    ) -> list[UserPermissionGrant]:
        """Effective grants of ``permission_type`` matching (user, endpoint, operation) at ``at``."""

    @abstractmethod
    def effective_grants(self, user_id: str, at: datetime) -> list[UserPermissionGrant]:
        """All grants in force for the user at ``at``."""


class InMemoryGrantStore(GrantStore):
    def __init__(self, grants: list[UserPermissionGrant] | None = None) -> None:
        super().__init__()
        self._lock = threading.Lock()
        self._grants: dict[str, UserPermissionGrant] = {g.grant_id: g for g in grants or []}

    def find_grants(self, user_id, endpoint, operation, permission_type, at):
        with self._lock:
            candidates = list(self._grants.values())
        return [
            g
            for g in candidates
            if g.permission_type is permission_type and g.is_effective(at) and g.matches(user_id, endpoint, operation)
        ]

    def effective_grants(self, user_id, at):
        with self._lock:
            candidates = list(self._grants.values())
        return [g for g in candidates if g.user_id == str(user_id) and g.is_effective(at)]

    def add(self, grant: UserPermissionGrant) -> UserPermissionGrant:
        with self._lock:
            self._grants[grant.grant_id] = grant
        logger.info(
            "Grant added id=%s user=%s %s %s %s",
            grant.grant_id,
            grant.user_id,
            grant.permission_type.value,
            grant.operation.value,
            grant.endpoint,
        )
        self._notify(grant.user_id)
        return grant

    def revoke(self, grant_id: str) -> UserPermissionGrant | None:
        return self._set_status(grant_id, GrantStatus.REVOKED)

    def expire_stale(self, now: datetime | None = None) -> int:
        """Mark ACTIVE grants past ``valid_until`` as EXPIRED; returns how many changed."""
        now = _aware(now) or utcnow()
        with self._lock:
            stale = [g.grant_id for g in self._grants.values() if g.status is GrantStatus.ACTIVE and g.is_expired(now)]
        for grant_id in stale:
            self._set_status(grant_id, GrantStatus.EXPIRED)
        return len(stale)

    def _set_status(self, grant_id: str, status: GrantStatus) -> UserPermissionGrant | None:
        with self._lock:
            grant = self._grants.get(grant_id)
            if grant is None:
                return None
            updated = replace(grant, status=status)
            self._grants[grant_id] = updated
        logger.info("Grant %s id=%s user=%s", status.value.lower(), grant_id, updated.user_id)
        self._notify(updated.user_id)
        return updated


# ---- Resolver ------------------------------------------------------------------------


class UserGrantResolver:
    """
    Answers the two grant questions the engine asks.

    Without a store both checks are no-ops (no deny, no allow), so the
    engine works before the grant subsystem is wired in. Store failures are
    not caught here: the engine's fail-closed boundary turns them into DENY.
    """

    def __init__(self, store: GrantStore | None = None, clock: Callable[[], datetime] = utcnow) -> None:
        self._store = store
        self._clock = clock

    @property
    def enabled(self) -> bool:
        return self._store is not None

    def check_user_deny(self, context: PolicyContext) -> str | None:
        if self._store is None:
            return None
        grants = self._store.find_grants(
            context.user_id, context.endpoint, context.operation, PermissionType.DENY, self._clock()
        )
        if grants:
            logger.info(
                "Explicit DENY grant user=%s endpoint=%s operation=%s grant=%s reason=%s",
                context.user_id,
                context.endpoint,
                context.operation.value if context.operation else None,
                grants[0].grant_id,
                grants[0].reason,
            )
            return REASON_USER_GRANT_DENIED
        return None

    def has_user_allow(self, context: PolicyContext) -> bool:
        if self._store is None:
            return False
        grants = self._store.find_grants(
            context.user_id, context.endpoint, context.operation, PermissionType.ALLOW, self._clock()
        )
        if grants:
            logger.debug("Explicit ALLOW grant user=%s endpoint=%s", context.user_id, context.endpoint)
        return bool(grants)

    def effective_grants(self, user_id: str) -> list[UserPermissionGrant]:
        if self._store is None:
            return []
        return self._store.effective_grants(str(user_id), self._clock())

    @staticmethod
    def requires_explicit_grant(endpoint: str | None) -> bool:
        """Sensitive endpoints (admin, permission management) need an explicit grant."""
        if not endpoint:
            return False
        return any(marker in endpoint for marker in SENSITIVE_ENDPOINT_MARKERS)
