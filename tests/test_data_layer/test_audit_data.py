"""
Tests for the SQLAlchemy audit repository.

Uses the session_factory fixture: a fresh in-memory SQLite database per test.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone

from sqlalchemy import select

from pdp.audit import AuditRecord, PolicyAuditSink
from pdp.db.repositories import SqlAlchemyAuditRepository
from pdp.decision import PolicyDecision
from pdp.models.policy import PolicyDecisionAudit

T0 = datetime(2026, 2, 1, 10, 0, tzinfo=timezone.utc)


def _record(make_context, *, seconds=0, allowed=True, latency=1.0, **ctx) -> AuditRecord:
    decision = (
        PolicyDecision.allow("role_default_allowed", "v1", ctx.get("correlation_id", "corr-1"))
        if allowed
        else PolicyDecision.deny("role_no_default_access", "v1", ctx.get("correlation_id", "corr-1"))
    )
    created_at = T0 + timedelta(seconds=seconds)
    return AuditRecord.from_decision(make_context(**ctx), decision, latency, created_at=created_at)


def test_save_writes_one_row(session_factory, db_session, make_context):
    repo = SqlAlchemyAuditRepository(session_factory)
    record = _record(make_context, roles=["ADMIN", "USER"], request_ip="10.0.0.5")
    repo.save(record)

    row = db_session.execute(select(PolicyDecisionAudit)).scalar_one()
    assert row.audit_id == record.audit_id
    assert row.user_roles == "ADMIN,USER"
    assert row.decision == "ALLOW"
    assert row.request_ip == "10.0.0.5"
    # Stored as naive UTC.
    assert row.created_at == datetime(2026, 2, 1, 10, 0)


def test_recent_by_user_returns_aware_timestamps_newest_first(session_factory, make_context):
    repo = SqlAlchemyAuditRepository(session_factory)
    for i in range(3):
        repo.save(_record(make_context, seconds=i, correlation_id=f"c{i}"))
    repo.save(_record(make_context, user_id="user-2"))

    records = repo.recent_by_user("user-1", 2)
    assert [r.correlation_id for r in records] == ["c2", "c1"]
    assert records[0].created_at == T0 + timedelta(seconds=2)


def test_deny_since_and_counts(session_factory, make_context):
    repo = SqlAlchemyAuditRepository(session_factory)
    repo.save(_record(make_context, seconds=0, allowed=False, latency=2.0))
    repo.save(_record(make_context, seconds=10, allowed=True, latency=4.0))
    repo.save(_record(make_context, seconds=20, allowed=False, latency=6.0))

    since = T0 + timedelta(seconds=5)
    assert [r.created_at for r in repo.deny_since(since, 10)] == [T0 + timedelta(seconds=20)]
    assert repo.count_by_decision_since("DENY", since) == 1
    assert repo.count_by_decision_since("ALLOW", since) == 1
    assert repo.average_latency_since(since) == 5.0
    assert repo.average_latency_since(T0 + timedelta(hours=1)) is None


def test_sink_queries_over_sqlalchemy(session_factory, make_context):
    sink = PolicyAuditSink(SqlAlchemyAuditRepository(session_factory), clock=lambda: T0)
    ctx = make_context(correlation_id="trace")
    sink.log_decision_sync(ctx, PolicyDecision.allow("role_default_allowed", "v1", "trace"), 1.0)
    sink.log_decision_sync(ctx, PolicyDecision.deny("role_no_default_access", "v1", "trace"), 3.0)

    stats = sink.stats_since(T0)
    assert stats.total_decisions == 2
    assert stats.deny_rate == 50.0
    assert stats.average_latency_ms == 2.0
    assert len(sink.decision_chain("trace")) == 2
    assert sink.failed_writes == 0
