"""
Asynchronous audit event channel.

Audit events are published fire-and-forget: ``publish`` only enqueues, a
daemon thread drains the bounded queue and sends each event with retries.
A slow or failing channel never adds latency to an authorization decision;
when the queue is full new events are dropped and counted.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
import logging
import queue
import threading
import time
from typing import Any

import requests

from .constants import AUDIT_TOPIC
from .schemas.audit import PolicyAuditEvent

logger = logging.getLogger(__name__)


class EventChannelError(RuntimeError):
    """Raised by a channel when an event could not be delivered."""


class EventChannel(ABC):
    @abstractmethod
    def send(self, topic: str, key: str, payload: dict[str, Any]) -> None:
        """Deliver one event or raise."""


class InMemoryEventChannel(EventChannel):
    """Collects events in a list; used by tests and local runs."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.events: list[tuple[str, str, dict[str, Any]]] = []

    def send(self, topic: str, key: str, payload: dict[str, Any]) -> None:
        with self._lock:
            self.events.append((topic, key, payload))


class HttpEventChannel(EventChannel):
    """
    POSTs each event as JSON to a collector endpoint.

    The topic and event key travel as ``X-Event-Topic`` / ``X-Event-Key``
    headers so the collector can route them onto its own bus.
    """

    def __init__(self, url: str, timeout_seconds: float = 5.0, session: requests.Session | None = None) -> None:
        self._url = url
        self._timeout = timeout_seconds
        self._session = session or requests.Session()

    def send(self, topic: str, key: str, payload: dict[str, Any]) -> None:
        headers = {"Content-Type": "application/json", "X-Event-Topic": topic, "X-Event-Key": key}
        try:
            resp = self._session.post(self._url, json=payload, headers=headers, timeout=self._timeout)
        except requests.RequestException as exc:
            raise EventChannelError(f"audit event POST failed: {type(exc).__name__}") from exc
        if resp.status_code >= 300:
            raise EventChannelError(f"audit event collector returned status={resp.status_code}")


_STOP = object()


class AuditEventPublisher:
    """Bounded queue plus one worker thread that sends events with exponential backoff."""

    def __init__(
        self,
        channel: EventChannel,
        topic: str = AUDIT_TOPIC,
        queue_size: int = 1000,
        max_retries: int = 3,
        backoff_seconds: float = 0.5,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._channel = channel
        self._topic = topic
        self._queue: queue.Queue[object] = queue.Queue(maxsize=queue_size)
        self._max_retries = max_retries
        self._backoff = backoff_seconds
        self._sleep = sleep

        self._pending = 0
        self._idle = threading.Condition()
        self._thread: threading.Thread | None = None
        self._start_lock = threading.Lock()

        self.sent = 0
        self.failed = 0
        self.dropped = 0

    @property
    def topic(self) -> str:
        return self._topic

    @property
    def channel(self) -> EventChannel:
        return self._channel

    def start(self) -> None:
        with self._start_lock:
            if self._thread is not None and self._thread.is_alive():
                return
            self._thread = threading.Thread(target=self._run, name="pdp-audit-publisher", daemon=True)
            self._thread.start()

    def publish(self, event: PolicyAuditEvent) -> bool:
        """Enqueue without blocking; False when the event was dropped."""
        self.start()
        with self._idle:
            self._pending += 1
        try:
            self._queue.put_nowait(event)
        except queue.Full:
            self._done()
            with self._idle:
                self.dropped += 1
            logger.warning("Audit event queue full; dropping event correlation=%s", event.correlation_id)
            return False
        return True

    def flush(self, timeout: float = 5.0) -> bool:
        """Wait until every enqueued event was sent or given up on."""
        deadline = time.monotonic() + timeout
        with self._idle:
            while self._pending:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return False
                self._idle.wait(remaining)
        return True

    def close(self, timeout: float = 5.0) -> None:
        self.flush(timeout)
        thread = self._thread
        if thread is None:
            return
        try:
            self._queue.put(_STOP, timeout=timeout)
        except queue.Full:
            logger.warning("Audit publisher did not accept stop signal within %.1fs", timeout)
            return
        thread.join(timeout)
        self._thread = None

    def _done(self) -> None:
        with self._idle:
            self._pending -= 1
            if not self._pending:
                self._idle.notify_all()

    def _run(self) -> None:
        while True:
            item = self._queue.get()
            if item is _STOP:
                return
            try:
                self._deliver(item)  # type: ignore[arg-type]
            finally:
                self._done()

    def _deliver(self, event: PolicyAuditEvent) -> None:
        payload = event.model_dump(mode="json")
        for attempt in range(self._max_retries + 1):
            try:
                self._channel.send(self._topic, event.event_key, payload)
            except Exception as exc:
                if attempt >= self._max_retries:
                    with self._idle:
                        self.failed += 1
                    logger.error(
                        "Audit event publish failed after %d attempts correlation=%s: %s",
                        attempt + 1,
                        event.correlation_id,
                        exc,
                    )
                    return
                delay = self._backoff * (2**attempt)
                logger.debug("Audit event publish attempt %d failed (%s); retrying in %.2fs", attempt + 1, exc, delay)
                self._sleep(delay)
            else:
                with self._idle:
                    self.sent += 1
                logger.debug("Published audit event topic=%s key=%s", self._topic, event.event_key)
                return
