"""
Decision cache.

Read-through optimization only: entries are keyed by the context
fingerprint, expire after ``ttl_minutes`` (``PolicyDecision.is_expired``)
and must be evicted when a grant or company relationship changes, or a
revoked grant would keep producing stale decisions. ``bootstrap`` wires the
store change listeners to ``evict_user`` / ``evict_company``.
"""

from __future__ import annotations

from collections import OrderedDict
from collections.abc import Callable
from dataclasses import replace
from datetime import datetime
import logging
import threading
from typing import Any

from .constants import CACHE_TTL_MINUTES
from .context import PolicyContext
from .decision import PolicyDecision, utcnow

logger = logging.getLogger(__name__)

# Positions inside PolicyContext.fingerprint().
_USER = 0
_COMPANY = 1
_ENDPOINT = 4
_RESOURCE_COMPANY = 9


class PolicyCache:
    """Thread-safe in-memory LRU of decisions with TTL."""

    def __init__(
        self,
        ttl_minutes: int = CACHE_TTL_MINUTES,
        max_entries: int = 10_000,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._ttl = ttl_minutes
        self._max_entries = max_entries
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: OrderedDict[tuple[Any, ...], PolicyDecision] = OrderedDict()
        self._hits = 0
        self._misses = 0
        self._generation = 0

    @property
    def generation(self) -> int:
        """Bumped by every eviction and clear; capture it before deciding."""
        with self._lock:
            return self._generation

    def get(self, context: PolicyContext) -> PolicyDecision | None:
        """
        Cached decision for an equivalent context, re-stamped with this
        request's correlation id; None on miss or expiry.
        """

        key = context.fingerprint()
        with self._lock:
            cached = self._entries.get(key)
            if cached is None:
                self._misses += 1
                return None
            if cached.is_expired(self._ttl, now=self._clock()):
                del self._entries[key]
                self._misses += 1
                logger.debug("Cache EXPIRED user=%s endpoint=%s", context.user_id, context.endpoint)
                return None
            self._entries.move_to_end(key)
            self._hits += 1
        if cached.correlation_id == context.correlation_id:
            return cached
        return replace(cached, correlation_id=context.correlation_id)

    def put(self, context: PolicyContext, decision: PolicyDecision, generation: int | None = None) -> bool:
        """
        Store a decision; returns False when it was dropped.

        A decision computed before an eviction may rest on the state the
        eviction invalidated, so it is only stored if ``generation`` still
        matches.
        """

        key = context.fingerprint()
        with self._lock:
            if generation is not None and generation != self._generation:
                logger.debug("Cache SKIP stale decision user=%s endpoint=%s", context.user_id, context.endpoint)
                return False
            self._entries[key] = decision
            self._entries.move_to_end(key)
            while len(self._entries) > self._max_entries:
                self._entries.popitem(last=False)
        return True

    def _evict_where(self, predicate: Callable[[tuple[Any, ...]], bool]) -> int:
        with self._lock:
            self._generation += 1
            stale = [k for k in self._entries if predicate(k)]
            for k in stale:
                del self._entries[k]
        return len(stale)

    def evict_user(self, user_id: str) -> int:
        if user_id is None:
            return 0
        user_id = str(user_id)
        evicted = self._evict_where(lambda k: k[_USER] == user_id)
        if evicted:
            logger.info("Cache EVICT user=%s (%d entries)", user_id, evicted)
        return evicted

    def evict_company(self, company_id: str) -> int:
        """Drop entries where the company is either the subject's or the resource's."""
        if company_id is None:
            return 0
        company_id = str(company_id)
        evicted = self._evict_where(lambda k: company_id in (k[_COMPANY], k[_RESOURCE_COMPANY]))
        if evicted:
            logger.info("Cache EVICT company=%s (%d entries)", company_id, evicted)
        return evicted

    def evict_endpoint(self, endpoint: str) -> int:
        if not endpoint:
            return 0
        evicted = self._evict_where(lambda k: k[_ENDPOINT] == endpoint)
        if evicted:
            logger.info("Cache EVICT endpoint=%s (%d entries)", endpoint, evicted)
        return evicted

    def on_relationship_changed(self, company_a: str, company_b: str) -> None:
        self.evict_company(company_a)
        self.evict_company(company_b)

    def clear(self) -> None:
        with self._lock:
            size = len(self._entries)
            self._entries.clear()
            self._generation += 1
        logger.warning("Cache CLEAR - %d entries removed", size)

    def stats(self) -> dict[str, object]:
        with self._lock:
            return {
                "size": len(self._entries),
                "hits": self._hits,
                "misses": self._misses,
                "ttl_minutes": self._ttl,
                "max_entries": self._max_entries,
            }
