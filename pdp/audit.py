"""
Policy decision audit.

Every evaluated request produces exactly one append-only audit record:

- written synchronously to the audit repository (on the request path, so
  repositories must be fast), and
- published asynchronously to the audit event topic for analytics.

Neither path raises into the caller. A failed write is logged with its
traceback and counted in ``failed_writes``; publish failures are handled by
the background publisher. Read-only queries serve operators.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import asdict, dataclass, field
from datetime import datetime
import logging
import threading
from uuid import uuid4

from .constants import DECISION_ALLOW, DECISION_DENY
from .context import PolicyContext
from .decision import PolicyDecision, as_utc, utcnow
from .events import AuditEventPublisher
from .schemas.audit import AuditStats, PolicyAuditEvent

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuditRecord:
    """Denormalized copy of (context subset, decision, latency)."""

    user_id: str
    decision: str
    reason: str
    created_at: datetime
    company_id: str | None = None
    company_type: str | None = None
    user_roles: str | None = None
    endpoint: str | None = None
    http_method: str | None = None
    operation: str | None = None
    scope: str | None = None
    policy_version: str | None = None
    request_ip: str | None = None
    request_id: str | None = None
    correlation_id: str | None = None
    latency_ms: float | None = None
    audit_id: str = field(default_factory=lambda: str(uuid4()))

    @property
    def allowed(self) -> bool:
        return self.decision == DECISION_ALLOW

    @classmethod
    def from_decision(
        cls,
        context: PolicyContext,
        decision: PolicyDecision,
        latency_ms: float,
        created_at: datetime | None = None,
    ) -> AuditRecord:
        return cls(
            user_id=context.user_id,
            company_id=context.company_id,
            company_type=context.company_type.value if context.company_type else None,
            user_roles=",".join(sorted(context.roles)) or None,
            endpoint=context.endpoint,
            http_method=context.http_method,
            operation=context.operation.value if context.operation else None,
            scope=context.scope.value if context.scope else None,
            decision=decision.outcome,
            reason=decision.reason,
            policy_version=decision.policy_version,
            request_ip=context.request_ip,
            request_id=context.request_id,
            correlation_id=context.correlation_id or decision.correlation_id,
            latency_ms=round(float(latency_ms), 3),
            created_at=created_at or utcnow(),
        )

    def to_event(self) -> PolicyAuditEvent:
        data = asdict(self)
        data["timestamp"] = data.pop("created_at")
        return PolicyAuditEvent.model_validate(data)

    def summary(self) -> str:
        return f"[{self.created_at.isoformat()}] {self.decision} - {self.operation} on {self.endpoint} ({self.reason})"


# ---- Repository contract -------------------------------------------------------------


class AuditRepository(ABC):
    """Append-only store; records are never updated or deleted through it."""

    @abstractmethod
    def save(self, record: AuditRecord) -> None: ...

    @abstractmethod
    def recent_by_user(self, user_id: str, limit: int) -> list[AuditRecord]:
        """Newest first."""

    @abstractmethod
    def deny_since(self, since: datetime, limit: int) -> list[AuditRecord]:
        """DENY records at or after ``since``, newest first."""

    @abstractmethod
    def count_by_decision_since(self, decision: str, since: datetime) -> int: ...

    @abstractmethod
    def average_latency_since(self, since: datetime) -> float | None: ...

    @abstractmethod
    def by_correlation_id(self, correlation_id: str) -> list[AuditRecord]:
        """Oldest first, so the chain reads in request order."""


class InMemoryAuditRepository(AuditRepository):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: list[AuditRecord] = []

    def _snapshot(self) -> list[AuditRecord]:
        with self._lock:
            return list(self._records)

    def save(self, record: AuditRecord) -> None:
        with self._lock:
            self._records.append(record)

    def recent_by_user(self, user_id, limit):
        rows = [r for r in self._snapshot() if r.user_id == str(user_id)]
        rows.sort(key=lambda r: r.created_at, reverse=True)
        return rows[:limit]

    def deny_since(self, since, limit):
        since = as_utc(since)
        rows = [r for r in self._snapshot() if r.decision == DECISION_DENY and as_utc(r.created_at) >= since]
        rows.sort(key=lambda r: r.created_at, reverse=True)
        return rows[:limit]

    def count_by_decision_since(self, decision, since):
        since = as_utc(since)
        return sum(1 for r in self._snapshot() if r.decision == decision and as_utc(r.created_at) >= since)

    def average_latency_since(self, since):
        since = as_utc(since)
        latencies = [
            r.latency_ms for r in self._snapshot() if r.latency_ms is not None and as_utc(r.created_at) >= since
        ]
        if not latencies:
            return None
        return sum(latencies) / len(latencies)

    def by_correlation_id(self, correlation_id):
        rows = [r for r in self._snapshot() if r.correlation_id == correlation_id]
        rows.sort(key=lambda r: r.created_at)
        return rows


# ---- Sink ----------------------------------------------------------------------------


class PolicyAuditSink:
    def __init__(
        self,
        repository: AuditRepository,
        publisher: AuditEventPublisher | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._repository = repository
        self._publisher = publisher
        self._clock = clock
        self._failures_lock = threading.Lock()
        self.failed_writes = 0

    @property
    def repository(self) -> AuditRepository:
        return self._repository

    def log_decision(self, context: PolicyContext, decision: PolicyDecision, latency_ms: float) -> AuditRecord | None:
        """Synchronous write followed by an asynchronous publish of the same record."""
        record = self.log_decision_sync(context, decision, latency_ms)
        if record is not None:
            self.publish_async(record)
        return record

    def log_decision_sync(
        self, context: PolicyContext, decision: PolicyDecision, latency_ms: float
    ) -> AuditRecord | None:
        """
        Write one audit record; returns it, or None if the write failed.

        Never raises: the decision has already been made and must stand.
        """

        try:
            record = AuditRecord.from_decision(context, decision, latency_ms, created_at=self._clock())
            self._repository.save(record)
        except Exception:
            with self._failures_lock:
                self.failed_writes += 1
            logger.exception(
                "Failed to write policy decision audit endpoint=%s reason=%s correlation=%s",
                getattr(context, "endpoint", None),
                decision.reason,
                decision.correlation_id,
            )
            return None

        if record.allowed:
            logger.info(
                "POLICY ALLOW user=%s company=%s endpoint=%s operation=%s reason=%s latency=%.3fms correlation=%s",
                record.user_id,
                record.company_id,
                record.endpoint,
                record.operation,
                record.reason,
                record.latency_ms,
                record.correlation_id,
            )
        else:
            logger.warning(
                "POLICY DENY user=%s company=%s endpoint=%s operation=%s reason=%s latency=%.3fms correlation=%s",
                record.user_id,
                record.company_id,
                record.endpoint,
                record.operation,
                record.reason,
                record.latency_ms,
                record.correlation_id,
            )
        return record

    def publish_async(self, record: AuditRecord) -> None:
        if self._publisher is None:
            return
        try:
            self._publisher.publish(record.to_event())
        except Exception:
            logger.exception("Failed to enqueue audit event correlation=%s", record.correlation_id)

    # ---- Queries ----------------------------------------------------------------------

    def recent_logs_for_user(self, user_id: str, limit: int = 50) -> list[AuditRecord]:
        return self._repository.recent_by_user(str(user_id), limit)

    def deny_decisions_since(self, since: datetime, limit: int = 100) -> list[AuditRecord]:
        return self._repository.deny_since(since, limit)

    def stats_since(self, since: datetime) -> AuditStats:
        allow_count = self._repository.count_by_decision_since(DECISION_ALLOW, since)
        deny_count = self._repository.count_by_decision_since(DECISION_DENY, since)
        total = allow_count + deny_count
        deny_rate = (deny_count / total) * 100.0 if total else 0.0
        avg_latency = self._repository.average_latency_since(since)
        return AuditStats(
            total_decisions=total,
            allow_decisions=allow_count,
            deny_decisions=deny_count,
            deny_rate=round(deny_rate, 2),
            average_latency_ms=round(avg_latency, 2) if avg_latency is not None else 0.0,
        )

    def decision_chain(self, correlation_id: str) -> list[AuditRecord]:
        return self._repository.by_correlation_id(correlation_id)
