"""
Company-type guardrails.

Outer structural boundary based on the requesting company's relationship
type. These rules are hard limits: no user grant or role can override them.

    INTERNAL       no restriction
    CUSTOMER       READ only
    SUPPLIER       READ, plus WRITE on purchase-order endpoints
    SUBCONTRACTOR  READ, plus WRITE on production-order endpoints

Pure functions of the context: no I/O, no state.
"""

from __future__ import annotations

import logging

from .constants import REASON_GUARDRAIL
from .context import PolicyContext
from .enums import CompanyType, OperationType

logger = logging.getLogger(__name__)


PURCHASE_ORDER_MARKERS: tuple[str, ...] = ("/purchase-orders", "/po/", "/supplier/orders")
PRODUCTION_ORDER_MARKERS: tuple[str, ...] = ("/production-orders", "/production/", "/subcontractor/orders")

# Operations each company type may perform regardless of endpoint.
_BASE_OPERATIONS: dict[CompanyType, frozenset[OperationType]] = {
    CompanyType.INTERNAL: frozenset(OperationType),
    CompanyType.CUSTOMER: frozenset({OperationType.READ}),
    CompanyType.SUPPLIER: frozenset({OperationType.READ}),
    CompanyType.SUBCONTRACTOR: frozenset({OperationType.READ}),
}


def _matches_any(endpoint: str | None, markers: tuple[str, ...]) -> bool:
    if not endpoint:
        return False
    return any(marker in endpoint for marker in markers)


def is_purchase_order_endpoint(endpoint: str | None) -> bool:
    return _matches_any(endpoint, PURCHASE_ORDER_MARKERS)


def is_production_order_endpoint(endpoint: str | None) -> bool:
    return _matches_any(endpoint, PRODUCTION_ORDER_MARKERS)


class CompanyTypeGuard:
    """Stateless guard; one instance can be shared by every evaluation."""

    def check_guardrails(self, context: PolicyContext) -> str | None:
        """Return a denial reason, or None when the company type permits the operation."""

        company_type = context.company_type
        operation = context.operation

        if company_type is None:
            logger.warning("company_type missing user=%s; denying", context.user_id)
            return f"{REASON_GUARDRAIL}_null_company_type"
        if operation is None:
            logger.warning("operation missing endpoint=%s; denying", context.endpoint)
            return f"{REASON_GUARDRAIL}_null_operation"

        if operation in _BASE_OPERATIONS[company_type]:
            return None

        if company_type is CompanyType.CUSTOMER:
            reason = f"{REASON_GUARDRAIL}_customer_readonly"
        elif company_type is CompanyType.SUPPLIER:
            reason = self._limited_write(context, is_purchase_order_endpoint, "supplier")
        else:
            reason = self._limited_write(context, is_production_order_endpoint, "subcontractor")

        if reason is not None:
            logger.info(
                "Guardrail denied company=%s type=%s operation=%s endpoint=%s reason=%s",
                context.company_id,
                company_type.value,
                operation.value,
                context.endpoint,
                reason,
            )
        return reason

    @staticmethod
    def _limited_write(context: PolicyContext, endpoint_allowed, label: str) -> str | None:
        if context.operation is OperationType.WRITE:
            if endpoint_allowed(context.endpoint):
                return None
            return f"{REASON_GUARDRAIL}_{label}_limited_write"
        return f"{REASON_GUARDRAIL}_{label}_operation_denied"

    def is_operation_allowed(self, company_type: CompanyType | None, operation: OperationType | None) -> bool:
        """Capability check over the same table, ignoring endpoint carve-outs."""
        if company_type is None or operation is None:
            return False
        return operation in _BASE_OPERATIONS[company_type]
