from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict


class AuditLogOut(BaseModel):
    """One audit row as shown to operators."""

    model_config = ConfigDict(from_attributes=True)

    audit_id: str
    user_id: str
    company_id: str | None
    company_type: str | None
    endpoint: str | None
    http_method: str | None
    operation: str | None
    scope: str | None
    decision: str
    reason: str
    policy_version: str | None
    correlation_id: str | None
    request_id: str | None
    latency_ms: float | None
    created_at: datetime


class AuditStats(BaseModel):
    total_decisions: int
    allow_decisions: int
    deny_decisions: int
    deny_rate: float
    """Percentage of DENY decisions, rounded to two decimals."""
    average_latency_ms: float


class PolicyAuditEvent(BaseModel):
    """Event published to the audit topic for analytics and alerting consumers."""

    model_config = ConfigDict(from_attributes=True)

    event_type: str = "PolicyAuditEvent"
    audit_id: str
    user_id: str
    user_roles: str | None = None
    company_id: str | None = None
    company_type: str | None = None
    endpoint: str | None = None
    http_method: str | None = None
    operation: str | None = None
    scope: str | None = None
    decision: str
    reason: str
    policy_version: str | None = None
    timestamp: datetime
    latency_ms: float | None = None
    request_id: str | None = None
    correlation_id: str | None = None
    request_ip: str | None = None

    @property
    def event_key(self) -> str:
        return self.correlation_id or self.request_id or self.user_id
