"""Tests for company-type guardrails."""
from __future__ import annotations

import pytest

from pdp.enums import CompanyType, OperationType
from pdp.guard import CompanyTypeGuard, is_production_order_endpoint, is_purchase_order_endpoint


@pytest.fixture
def guard():
    return CompanyTypeGuard()


@pytest.mark.parametrize("operation", list(OperationType))
def test_internal_has_no_restriction(guard, make_context, operation):
    ctx = make_context(company_type="INTERNAL", operation=operation, endpoint="/api/anything")
    assert guard.check_guardrails(ctx) is None


def test_customer_read_allowed(guard, make_context):
    assert guard.check_guardrails(make_context(company_type="CUSTOMER", operation="READ")) is None


@pytest.mark.parametrize("operation", ["WRITE", "DELETE", "APPROVE", "EXPORT", "MANAGE"])
def test_customer_is_readonly(guard, make_context, operation):
    ctx = make_context(company_type="CUSTOMER", operation=operation)
    assert guard.check_guardrails(ctx) == "company_type_guardrail_customer_readonly"


def test_supplier_can_write_purchase_orders(guard, make_context):
    ctx = make_context(company_type="SUPPLIER", operation="WRITE", endpoint="/api/purchase-orders/7")
    assert guard.check_guardrails(ctx) is None


def test_supplier_write_elsewhere_is_denied(guard, make_context):
    ctx = make_context(company_type="SUPPLIER", operation="WRITE", endpoint="/api/invoices/7")
    assert guard.check_guardrails(ctx) == "company_type_guardrail_supplier_limited_write"


def test_supplier_delete_is_denied_even_on_purchase_orders(guard, make_context):
    ctx = make_context(company_type="SUPPLIER", operation="DELETE", endpoint="/api/purchase-orders/7")
    assert guard.check_guardrails(ctx) == "company_type_guardrail_supplier_operation_denied"


def test_subcontractor_can_write_production_orders(guard, make_context):
    ctx = make_context(company_type="SUBCONTRACTOR", operation="WRITE", endpoint="/api/production-orders/3")
    assert guard.check_guardrails(ctx) is None


def test_subcontractor_write_on_purchase_orders_is_denied(guard, make_context):
    ctx = make_context(company_type="SUBCONTRACTOR", operation="WRITE", endpoint="/api/purchase-orders/3")
    assert guard.check_guardrails(ctx) == "company_type_guardrail_subcontractor_limited_write"


def test_subcontractor_approve_is_denied(guard, make_context):
    ctx = make_context(company_type="SUBCONTRACTOR", operation="APPROVE", endpoint="/api/production-orders/3")
    assert guard.check_guardrails(ctx) == "company_type_guardrail_subcontractor_operation_denied"


def test_missing_company_type_is_denied(guard, make_context):
    ctx = make_context(company_type=None)
    assert guard.check_guardrails(ctx) == "company_type_guardrail_null_company_type"


def test_missing_operation_is_denied(guard, make_context):
    ctx = make_context(operation=None)
    assert guard.check_guardrails(ctx) == "company_type_guardrail_null_operation"


def test_is_operation_allowed_ignores_endpoint_carve_outs(guard):
    assert guard.is_operation_allowed(CompanyType.INTERNAL, OperationType.DELETE) is True
    assert guard.is_operation_allowed(CompanyType.CUSTOMER, OperationType.READ) is True
    assert guard.is_operation_allowed(CompanyType.SUPPLIER, OperationType.WRITE) is False
    assert guard.is_operation_allowed(None, OperationType.READ) is False
    assert guard.is_operation_allowed(CompanyType.INTERNAL, None) is False


@pytest.mark.parametrize(
    "endpoint, expected",
    [
        ("/api/purchase-orders", True),
        ("/api/po/12", True),
        ("/api/supplier/orders/5", True),
        ("/api/orders/5", False),
        (None, False),
    ],
)
def test_purchase_order_endpoints(endpoint, expected):
    assert is_purchase_order_endpoint(endpoint) is expected


def test_production_order_endpoints():
    assert is_production_order_endpoint("/api/production/batches") is True
    assert is_production_order_endpoint("/api/subcontractor/orders") is True
    assert is_production_order_endpoint("/api/purchase-orders") is False
