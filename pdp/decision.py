"""Immutable output of one policy evaluation."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from .constants import DECISION_ALLOW, DECISION_DENY, POLICY_VERSION_DEFAULT


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(ts: datetime) -> datetime:
    return ts if ts.tzinfo is not None else ts.replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class PolicyDecision:
    """
    ALLOW or DENY with a machine-readable reason.

    Decisions are write-once: a later request gets a new decision, an old
    one is never edited.
    """

    allowed: bool
    reason: str
    policy_version: str = POLICY_VERSION_DEFAULT
    decided_at: datetime = field(default_factory=utcnow)
    correlation_id: str | None = None

    @classmethod
    def allow(cls, reason: str, policy_version: str, correlation_id: str | None) -> PolicyDecision:
        return cls(allowed=True, reason=reason, policy_version=policy_version, correlation_id=correlation_id)

    @classmethod
    def deny(cls, reason: str, policy_version: str, correlation_id: str | None) -> PolicyDecision:
        return cls(allowed=False, reason=reason, policy_version=policy_version, correlation_id=correlation_id)

    @property
    def denied(self) -> bool:
        return not self.allowed

    @property
    def outcome(self) -> str:
        return DECISION_ALLOW if self.allowed else DECISION_DENY

    def is_expired(self, ttl_minutes: int, now: datetime | None = None) -> bool:
        """True once ``decided_at + ttl_minutes`` lies in the past."""
        current = as_utc(now) if now is not None else utcnow()
        return as_utc(self.decided_at) + timedelta(minutes=ttl_minutes) < current

    def audit_message(self) -> str:
        return (
            f"[{self.decided_at.isoformat()}] {self.outcome} - {self.reason} "
            f"(policy: {self.policy_version}, correlation: {self.correlation_id})"
        )

    def to_dict(self) -> dict[str, object]:
        return {
            "allowed": self.allowed,
            "reason": self.reason,
            "policy_version": self.policy_version,
            "decided_at": self.decided_at.isoformat(),
            "correlation_id": self.correlation_id,
        }
