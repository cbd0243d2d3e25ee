"""
SQLAlchemy adapters for the audit repository, grant store and relationship store.

Every call opens its own short-lived session from the injected factory, so
one adapter instance can be shared between threads. Timestamps are stored as
naive UTC and handed back timezone-aware.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
import logging

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from pdp.audit import AuditRecord, AuditRepository
from pdp.constants import DECISION_DENY
from pdp.decision import as_utc, utcnow
from pdp.enums import GrantStatus, OperationType, PermissionType
from pdp.grants import GrantStore, UserPermissionGrant
from pdp.models.policy import CompanyRelationshipRow, PolicyDecisionAudit, UserPermission
from pdp.relationships import CompanyRelationship, RelationshipStore

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], Session]


def _to_db(ts: datetime | None) -> datetime | None:
    return None if ts is None else as_utc(ts).replace(tzinfo=None)


def _from_db(ts: datetime | None) -> datetime | None:
    return None if ts is None else as_utc(ts)


# ---- Audit ---------------------------------------------------------------------------


def _record_from_row(row: PolicyDecisionAudit) -> AuditRecord:
    return AuditRecord(
        audit_id=row.audit_id,
        user_id=row.user_id,
        company_id=row.company_id,
        company_type=row.company_type,
        user_roles=row.user_roles,
        endpoint=row.endpoint,
        http_method=row.http_method,
        operation=row.operation,
        scope=row.scope,
        decision=row.decision,
        reason=row.reason,
        policy_version=row.policy_version,
        request_ip=row.request_ip,
        request_id=row.request_id,
        correlation_id=row.correlation_id,
        latency_ms=row.latency_ms,
        created_at=_from_db(row.created_at),
    )


class SqlAlchemyAuditRepository(AuditRepository):
    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    def save(self, record: AuditRecord) -> None:
        row = PolicyDecisionAudit(
            audit_id=record.audit_id,
            user_id=record.user_id,
            company_id=record.company_id,
            company_type=record.company_type,
            user_roles=record.user_roles,
            endpoint=record.endpoint,
            http_method=record.http_method,
            operation=record.operation,
            scope=record.scope,
            decision=record.decision,
            reason=record.reason,
            policy_version=record.policy_version,
            request_ip=record.request_ip,
            request_id=record.request_id,
            correlation_id=record.correlation_id,
            latency_ms=record.latency_ms,
            created_at=_to_db(record.created_at),
        )
        with self._session_factory() as db:
            db.add(row)
            db.commit()

    def recent_by_user(self, user_id, limit):
        stmt = (
            select(PolicyDecisionAudit)
            .where(PolicyDecisionAudit.user_id == str(user_id))
            .order_by(PolicyDecisionAudit.created_at.desc())
            .limit(limit)
        )
        with self._session_factory() as db:
            return [_record_from_row(r) for r in db.execute(stmt).scalars()]

    def deny_since(self, since, limit):
        stmt = (
            select(PolicyDecisionAudit)
            .where(PolicyDecisionAudit.decision == DECISION_DENY, PolicyDecisionAudit.created_at >= _to_db(since))
            .order_by(PolicyDecisionAudit.created_at.desc())
            .limit(limit)
        )
        with self._session_factory() as db:
            return [_record_from_row(r) for r in db.execute(stmt).scalars()]

    def count_by_decision_since(self, decision, since):
        stmt = select(func.count()).where(
            PolicyDecisionAudit.decision == decision, PolicyDecisionAudit.created_at >= _to_db(since)
        )
        with self._session_factory() as db:
            return int(db.execute(stmt).scalar_one())

    def average_latency_since(self, since):
        stmt = select(func.avg(PolicyDecisionAudit.latency_ms)).where(
            PolicyDecisionAudit.created_at >= _to_db(since)
        )
        with self._session_factory() as db:
            value = db.execute(stmt).scalar_one_or_none()
        return None if value is None else float(value)

    def by_correlation_id(self, correlation_id):
        stmt = (
            select(PolicyDecisionAudit)
            .where(PolicyDecisionAudit.correlation_id == correlation_id)
            .order_by(PolicyDecisionAudit.created_at.asc())
        )
        with self._session_factory() as db:
            return [_record_from_row(r) for r in db.execute(stmt).scalars()]


# ---- Grants --------------------------------------------------------------------------


def _grant_from_row(row: UserPermission) -> UserPermissionGrant:
    return UserPermissionGrant(
        grant_id=row.grant_id,
        user_id=row.user_id,
        endpoint=row.endpoint,
        operation=row.operation,
        permission_type=row.permission_type,
        status=row.status,
        scope=row.scope,
        valid_from=_from_db(row.valid_from),
        valid_until=_from_db(row.valid_until),
        granted_by=row.granted_by,
        reason=row.reason,
    )


class SqlAlchemyGrantStore(GrantStore):
    """
    Grants live in ``user_permissions``.

    The validity window and status are filtered in SQL; endpoint matching is
    done in Python because grant endpoints may be path templates.
    """

    def __init__(self, session_factory: SessionFactory) -> None:
        super().__init__()
        self._session_factory = session_factory

    def _effective_stmt(self, user_id: str, at: datetime):
        at_db = _to_db(at)
        return select(UserPermission).where(
            UserPermission.user_id == str(user_id),
            UserPermission.status == GrantStatus.ACTIVE.value,
            or_(UserPermission.valid_from.is_(None), UserPermission.valid_from <= at_db),
            or_(UserPermission.valid_until.is_(None), UserPermission.valid_until >= at_db),
        )

    def find_grants(self, user_id, endpoint, operation, permission_type, at):
        if operation is None:
            return []
        operation = OperationType(operation)
        stmt = self._effective_stmt(user_id, at).where(
            UserPermission.operation == operation.value,
            UserPermission.permission_type == PermissionType(permission_type).value,
        )
        with self._session_factory() as db:
            rows = list(db.execute(stmt).scalars())
        grants = [_grant_from_row(r) for r in rows]
        return [g for g in grants if g.matches(user_id, endpoint, operation)]

    def effective_grants(self, user_id, at):
        with self._session_factory() as db:
            rows = list(db.execute(self._effective_stmt(user_id, at)).scalars())
        return [_grant_from_row(r) for r in rows]

    def get(self, grant_id: str) -> UserPermissionGrant | None:
        with self._session_factory() as db:
            row = db.get(UserPermission, grant_id)
            return None if row is None else _grant_from_row(row)

    def add(self, grant: UserPermissionGrant) -> UserPermissionGrant:
        row = UserPermission(
            grant_id=grant.grant_id,
            user_id=grant.user_id,
            endpoint=grant.endpoint,
            operation=grant.operation.value,
            permission_type=grant.permission_type.value,
            status=grant.status.value,
            scope=grant.scope.value if grant.scope else None,
            valid_from=_to_db(grant.valid_from),
            valid_until=_to_db(grant.valid_until),
            granted_by=grant.granted_by,
            reason=grant.reason,
        )
        with self._session_factory() as db:
            db.add(row)
            db.commit()
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
        with self._session_factory() as db:
            row = db.get(UserPermission, grant_id)
            if row is None:
                return None
            row.status = GrantStatus.REVOKED.value
            db.commit()
            grant = _grant_from_row(row)
        logger.info("Grant revoked id=%s user=%s", grant_id, grant.user_id)
        self._notify(grant.user_id)
        return grant

    def expire_stale(self, now: datetime | None = None) -> int:
        """Mark ACTIVE grants past ``valid_until`` as EXPIRED; returns how many changed."""
        now_db = _to_db(now or utcnow())
        stmt = select(UserPermission).where(
            UserPermission.status == GrantStatus.ACTIVE.value,
            UserPermission.valid_until.is_not(None),
            UserPermission.valid_until < now_db,
        )
        with self._session_factory() as db:
            rows = list(db.execute(stmt).scalars())
            for row in rows:
                row.status = GrantStatus.EXPIRED.value
            db.commit()
            users = sorted({row.user_id for row in rows})
        if rows:
            logger.info("Expired %d stale grants", len(rows))
        for user_id in users:
            self._notify(user_id)
        return len(rows)


# ---- Relationships -------------------------------------------------------------------


class SqlAlchemyRelationshipStore(RelationshipStore):
    def __init__(self, session_factory: SessionFactory) -> None:
        super().__init__()
        self._session_factory = session_factory

    def relationship_active(self, company_a, company_b):
        a, b = str(company_a), str(company_b)
        stmt = (
            select(CompanyRelationshipRow.id)
            .where(
                CompanyRelationshipRow.status == "ACTIVE",
                or_(
                    (CompanyRelationshipRow.source_company_id == a) & (CompanyRelationshipRow.target_company_id == b),
                    (CompanyRelationshipRow.source_company_id == b) & (CompanyRelationshipRow.target_company_id == a),
                ),
            )
            .limit(1)
        )
        with self._session_factory() as db:
            return db.execute(stmt).first() is not None

    def save(self, relationship: CompanyRelationship) -> None:
        stmt = select(CompanyRelationshipRow).where(
            CompanyRelationshipRow.source_company_id == relationship.source_company_id,
            CompanyRelationshipRow.target_company_id == relationship.target_company_id,
        )
        with self._session_factory() as db:
            row = db.execute(stmt).scalar_one_or_none()
            if row is None:
                row = CompanyRelationshipRow(
                    source_company_id=relationship.source_company_id,
                    target_company_id=relationship.target_company_id,
                )
                db.add(row)
            row.status = relationship.status.value
            row.kind = relationship.kind
            db.commit()
        logger.info(
            "Relationship saved source=%s target=%s status=%s",
            relationship.source_company_id,
            relationship.target_company_id,
            relationship.status.value,
        )
        self._notify(relationship.source_company_id, relationship.target_company_id)
