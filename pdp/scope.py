"""
Data scope validation.

Checks that the requested scope matches the actual ownership of the
resource being accessed:

    SELF           resource owner is the requesting user
    COMPANY        resource belongs to the requesting user's company
    CROSS_COMPANY  internal staff, or an active relationship between companies
    GLOBAL         super-admin roles only

When the caller supplies no scope it is inferred from the endpoint path.
"""

from __future__ import annotations

import logging
from typing import Iterable

from .constants import REASON_SCOPE, SUPER_ADMIN_ROLES
from .context import PolicyContext
from .enums import CompanyType, DataScope
from .relationships import RelationshipStore

logger = logging.getLogger(__name__)


# Segment prefixes, so /admin-tools and /profiles match too. "me" is exact.
_SELF_PREFIXES = ("self", "profile")
_GLOBAL_PREFIXES = ("admin", "system")


def infer_scope_from_endpoint(endpoint: str | None) -> DataScope:
    """
    Default scope for a path when the caller did not classify the request.

    /api/users/me -> SELF, /api/admin/companies -> GLOBAL, anything else ->
    COMPANY. A missing endpoint falls back to SELF, the narrowest scope.
    """

    if not endpoint:
        return DataScope.SELF
    segments = {s.lower() for s in endpoint.split("?", 1)[0].split("/") if s}
    if any(s == "me" or s.startswith(_SELF_PREFIXES) for s in segments):
        return DataScope.SELF
    if any(s.startswith(_GLOBAL_PREFIXES) for s in segments):
        return DataScope.GLOBAL
    return DataScope.COMPANY


def _same(a: object | None, b: object | None) -> bool:
    return a is not None and b is not None and str(a) == str(b)


class ScopeResolver:
    def __init__(
        self,
        relationship_store: RelationshipStore | None = None,
        super_admin_roles: Iterable[str] = SUPER_ADMIN_ROLES,
    ) -> None:
        self._relationships = relationship_store
        self._super_admin_roles = frozenset(r.upper() for r in super_admin_roles)

    @staticmethod
    def infer_scope_from_endpoint(endpoint: str | None) -> DataScope:
        return infer_scope_from_endpoint(endpoint)

    def effective_scope(self, context: PolicyContext) -> DataScope:
        return context.scope if context.scope is not None else infer_scope_from_endpoint(context.endpoint)

    def validate_scope(self, context: PolicyContext) -> str | None:
        """Return a denial reason, or None if the scope is valid for this resource."""

        scope = self.effective_scope(context)
        if scope is DataScope.SELF:
            return self._validate_self(context)
        if scope is DataScope.COMPANY:
            return self._validate_company(context)
        if scope is DataScope.CROSS_COMPANY:
            return self._validate_cross_company(context)
        return self._validate_global(context)

    def _validate_self(self, context: PolicyContext) -> str | None:
        # Collection access (no specific owner) is filtered by the data layer.
        if context.resource_owner_id is None:
            return None
        if context.resource_owner_id != context.user_id:
            logger.info(
                "SELF scope denied user=%s owner=%s",
                context.user_id,
                context.resource_owner_id,
            )
            return f"{REASON_SCOPE}_self_not_owner"
        return None

    def _validate_company(self, context: PolicyContext) -> str | None:
        if context.company_id is None:
            logger.warning("COMPANY scope denied: user=%s has no company", context.user_id)
            return f"{REASON_SCOPE}_company_user_no_company"
        if context.resource_company_id is None:
            return None
        if context.resource_company_id != context.company_id:
            logger.info(
                "COMPANY scope denied company=%s resource_company=%s",
                context.company_id,
                context.resource_company_id,
            )
            return f"{REASON_SCOPE}_company_different_company"
        return None

    def _validate_cross_company(self, context: PolicyContext) -> str | None:
        if context.company_id is None:
            logger.warning("CROSS_COMPANY scope denied: user=%s has no company", context.user_id)
            return f"{REASON_SCOPE}_cross_company_user_no_company"
        if _same(context.resource_company_id, context.company_id):
            return None
        if context.is_internal:
            return None
        if self._relationship_active(context.company_id, context.resource_company_id):
            return None
        logger.info(
            "CROSS_COMPANY scope denied company=%s resource_company=%s: no active relationship",
            context.company_id,
            context.resource_company_id,
        )
        return f"{REASON_SCOPE}_cross_company_no_relationship"

    def _validate_global(self, context: PolicyContext) -> str | None:
        if not context.has_any_role(self._super_admin_roles):
            logger.warning("GLOBAL scope denied user=%s roles=%s", context.user_id, sorted(context.roles))
            return f"{REASON_SCOPE}_global_not_admin"
        return None

    def _relationship_active(self, company_id: str, resource_company_id: str | None) -> bool:
        if resource_company_id is None or self._relationships is None:
            return False
        return self._relationships.relationship_active(company_id, resource_company_id)

    # ---- Boolean form -----------------------------------------------------------------

    def can_access(
        self,
        user_id: object,
        resource_owner_id: object | None,
        company_id: object | None,
        resource_company_id: object | None,
        scope: DataScope | None,
        *,
        company_type: CompanyType | None = None,
        roles: Iterable[str] = (),
    ) -> bool:
        """
        Yes/no variant for callers that already hold a concrete resource.

        Unlike validate_scope, a missing owner or resource company is a no:
        there is nothing to prove access against. ``scope=None`` means SELF.
        """

        scope = scope or DataScope.SELF
        if scope is DataScope.SELF:
            return _same(resource_owner_id, user_id)
        if scope is DataScope.COMPANY:
            return _same(resource_company_id, company_id)
        if scope is DataScope.CROSS_COMPANY:
            if company_id is None:
                return False
            if _same(resource_company_id, company_id) or company_type is CompanyType.INTERNAL:
                return True
            return self._relationship_active(str(company_id), None if resource_company_id is None else str(resource_company_id))
        return any(r.upper() in self._super_admin_roles for r in roles)
