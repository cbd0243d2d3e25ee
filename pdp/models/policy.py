from __future__ import annotations

from datetime import datetime
from uuid import uuid4

from sqlalchemy import DateTime, Float, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from pdp.db.base import Base
from pdp.decision import utcnow


def _uuid() -> str:
    return str(uuid4())


def _naive_utcnow() -> datetime:
    # Columns hold naive UTC; SQLite has no timezone support.
    return utcnow().replace(tzinfo=None)


class PolicyDecisionAudit(Base):
    """Append-only; rows are inserted once and never updated."""

    __tablename__ = "policy_decisions_audit"
    __table_args__ = (
        Index("ix_policy_audit_user_created", "user_id", "created_at"),
        Index("ix_policy_audit_decision_created", "decision", "created_at"),
    )

    audit_id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)

    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    company_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    company_type: Mapped[str | None] = mapped_column(String(20), nullable=True)
    user_roles: Mapped[str | None] = mapped_column(Text, nullable=True)

    endpoint: Mapped[str | None] = mapped_column(String(500), nullable=True)
    http_method: Mapped[str | None] = mapped_column(String(10), nullable=True)
    operation: Mapped[str | None] = mapped_column(String(20), nullable=True)
    scope: Mapped[str | None] = mapped_column(String(20), nullable=True)

    decision: Mapped[str] = mapped_column(String(10), nullable=False)
    reason: Mapped[str] = mapped_column(String(500), nullable=False)
    policy_version: Mapped[str | None] = mapped_column(String(20), nullable=True)

    request_ip: Mapped[str | None] = mapped_column(String(45), nullable=True)
    request_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    correlation_id: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)
    latency_ms: Mapped[float | None] = mapped_column(Float, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=_naive_utcnow, nullable=False)


class UserPermission(Base):
    __tablename__ = "user_permissions"
    __table_args__ = (Index("ix_user_permissions_user_status", "user_id", "status"),)

    grant_id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    endpoint: Mapped[str] = mapped_column(String(500), nullable=False)
    operation: Mapped[str] = mapped_column(String(20), nullable=False)
    permission_type: Mapped[str] = mapped_column(String(10), nullable=False)
    status: Mapped[str] = mapped_column(String(10), nullable=False, default="ACTIVE")
    scope: Mapped[str | None] = mapped_column(String(20), nullable=True)

    valid_from: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    valid_until: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    granted_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=_naive_utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_naive_utcnow, onupdate=_naive_utcnow, nullable=False)


class CompanyRelationshipRow(Base):
    __tablename__ = "company_relationships"
    __table_args__ = (UniqueConstraint("source_company_id", "target_company_id"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    source_company_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    target_company_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="ACTIVE")
    kind: Mapped[str | None] = mapped_column(String(50), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=_naive_utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_naive_utcnow, onupdate=_naive_utcnow, nullable=False)
