"""
Policy engine (policy decision point).

Combines the guard and resolvers into one ALLOW/DENY decision. Evaluation
order, first DENY wins:

    1. Company-type guardrails       hard boundary, never overridable
    1b. Platform policy (registry)   only when a registry is wired in
    2. Explicit user DENY grant      beats every role
    3. Role default access
         yes -> scope check -> ALLOW role_default_allowed
         no  -> explicit user ALLOW grant?
                  yes -> scope check -> ALLOW user_grant_explicit_allow
                  no  -> DENY role_no_default_access
    4. Any exception                 DENY policy_evaluation_error

The engine holds only its injected collaborators, so one instance can be
shared by any number of concurrent callers.
"""

from __future__ import annotations

import logging
import time

from .audit import PolicyAuditSink
from .cache import PolicyCache
from .constants import (
    POLICY_VERSION_DEFAULT,
    REASON_ERROR,
    REASON_ROLE_DEFAULT_ALLOWED,
    REASON_ROLE_NO_DEFAULT,
    REASON_USER_GRANT,
    REASON_USER_GRANT_ALLOWED,
)
from .context import PolicyContext
from .decision import PolicyDecision
from .grants import UserGrantResolver
from .guard import CompanyTypeGuard
from .registry import PolicyRegistry
from .roles import RoleDefaultResolver
from .scope import ScopeResolver

logger = logging.getLogger(__name__)


class PolicyEngine:
    """
    Usage:
        engine = PolicyEngine(CompanyTypeGuard(), ScopeResolver())
        decision = engine.evaluate(context)
        if not decision.allowed:
            raise Forbidden(decision.reason)
    """

    def __init__(
        self,
        guard: CompanyTypeGuard,
        scope_resolver: ScopeResolver,
        grant_resolver: UserGrantResolver | None = None,
        role_resolver: RoleDefaultResolver | None = None,
        *,
        registry: PolicyRegistry | None = None,
        cache: PolicyCache | None = None,
        audit_sink: PolicyAuditSink | None = None,
        policy_version: str = POLICY_VERSION_DEFAULT,
    ) -> None:
        self._guard = guard
        self._scope = scope_resolver
        self._grants = grant_resolver or UserGrantResolver()
        self._roles = role_resolver or RoleDefaultResolver(registry=registry)
        self._registry = registry
        self._cache = cache
        self._audit = audit_sink
        self._policy_version = policy_version

    @property
    def policy_version(self) -> str:
        return self._policy_version

    @property
    def cache(self) -> PolicyCache | None:
        return self._cache

    # ---- Public API -------------------------------------------------------------------

    def evaluate(self, context: PolicyContext) -> PolicyDecision:
        """Decide ALLOW/DENY for ``context``; never raises."""

        start = time.perf_counter()
        decision = self._evaluate_safely(context)
        latency_ms = (time.perf_counter() - start) * 1000.0

        logger.debug(
            "Policy evaluation completed in %.3fms - %s %s",
            latency_ms,
            decision.outcome,
            decision.reason,
        )
        if self._audit is not None:
            try:
                self._audit.log_decision(context, decision, latency_ms)
            except Exception:
                # The decision stands even when auditing it fails.
                logger.exception("Audit sink failed correlation=%s", decision.correlation_id)
        return decision

    def quick_check(self, context: PolicyContext) -> bool:
        """Boolean form of evaluate for capability checks; not audited."""
        return self._evaluate_safely(context).allowed

    # ---- Evaluation -------------------------------------------------------------------

    def _evaluate_safely(self, context: PolicyContext) -> PolicyDecision:
        try:
            if self._cache is None:
                return self._decide(context)
            generation = self._cache.generation
            cached = self._cache.get(context)
            if cached is not None:
                return cached
            decision = self._decide(context)
            # Grant validity windows lapse without a store change, so no eviction would fire.
            if not decision.reason.startswith(REASON_USER_GRANT):
                self._cache.put(context, decision, generation)
            return decision
        except Exception:
            logger.exception(
                "Error evaluating policy user=%s endpoint=%s; denying by default",
                getattr(context, "user_id", None),
                getattr(context, "endpoint", None),
            )
            return PolicyDecision.deny(REASON_ERROR, self._policy_version, getattr(context, "correlation_id", None))

    def _decide(self, context: PolicyContext) -> PolicyDecision:
        logger.debug(
            "Evaluating policy user=%s endpoint=%s operation=%s",
            context.user_id,
            context.endpoint,
            context.operation.value if context.operation else None,
        )

        denial = self._guard.check_guardrails(context)
        if denial is not None:
            return self._deny(denial, context, "company type guardrail")

        if self._registry is not None:
            denial = self._registry.check_platform_policy(context)
            if denial is not None:
                return self._deny(denial, context, "platform policy")

        denial = self._grants.check_user_deny(context)
        if denial is not None:
            return self._deny(denial, context, "explicit user deny")

        if self._roles.has_default_access(context.roles, context.operation, context.endpoint):
            allow_reason = REASON_ROLE_DEFAULT_ALLOWED
        elif self._grants.has_user_allow(context):
            allow_reason = REASON_USER_GRANT_ALLOWED
        else:
            logger.info("Policy DENIED - no role default access user=%s roles=%s", context.user_id, sorted(context.roles))
            return PolicyDecision.deny(REASON_ROLE_NO_DEFAULT, self._policy_version, context.correlation_id)

        denial = self._scope.validate_scope(context)
        if denial is not None:
            return self._deny(denial, context, "scope validation")

        logger.info(
            "Policy ALLOWED user=%s endpoint=%s operation=%s reason=%s",
            context.user_id,
            context.endpoint,
            context.operation.value if context.operation else None,
            allow_reason,
        )
        return PolicyDecision.allow(allow_reason, self._policy_version, context.correlation_id)

    def _deny(self, reason: str, context: PolicyContext, stage: str) -> PolicyDecision:
        logger.info("Policy DENIED by %s: %s", stage, reason)
        return PolicyDecision.deny(reason, self._policy_version, context.correlation_id)
