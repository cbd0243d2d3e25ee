"""
Wiring for a ready-to-use policy engine.

``build_policy_runtime`` reads ``Settings`` and the policy YAML, opens the
database, and composes guard, resolvers, cache and audit sink into one
``PolicyEngine``. Stores and channels can be injected (tests, or a host
application that already owns a session factory).
"""

from __future__ import annotations

from dataclasses import dataclass
import logging

from sqlalchemy.orm import Session, sessionmaker

from pdp.audit import AuditRepository, PolicyAuditSink
from pdp.cache import PolicyCache
from pdp.db.init_db import init_db
from pdp.db.repositories import SqlAlchemyAuditRepository, SqlAlchemyGrantStore, SqlAlchemyRelationshipStore
from pdp.db.session import create_engine_from_url, create_session_factory
from pdp.engine import PolicyEngine
from pdp.events import AuditEventPublisher, EventChannel, HttpEventChannel
from pdp.grants import GrantStore, UserGrantResolver
from pdp.guard import CompanyTypeGuard
from pdp.logging_config import configure_logging
from pdp.policy_config import PolicyConfig, load_policy_config
from pdp.relationships import RelationshipStore
from pdp.roles import RoleDefaultResolver
from pdp.scope import ScopeResolver
from pdp.settings import Settings, get_settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PolicyRuntime:
    engine: PolicyEngine
    config: PolicyConfig
    audit_sink: PolicyAuditSink | None
    publisher: AuditEventPublisher | None
    cache: PolicyCache | None
    grant_store: GrantStore
    relationship_store: RelationshipStore

    def close(self, timeout: float = 5.0) -> None:
        """Drain pending audit events; call on shutdown."""
        if self.publisher is not None:
            self.publisher.close(timeout)


def _load_config(settings: Settings) -> PolicyConfig:
    path = settings.resolved_policy_config_path()
    if not path.exists():
        logger.warning("Policy config %s not found; using built-in role defaults", path)
        return PolicyConfig.default()
    config = load_policy_config(path)
    logger.info(
        "Loaded policy config: %s (version=%s, %d registry entries)",
        path,
        config.version,
        len(config.registry.entries),
    )
    return config


def _build_publisher(settings: Settings, channel: EventChannel | None) -> AuditEventPublisher | None:
    if channel is None and settings.audit_event_url:
        channel = HttpEventChannel(settings.audit_event_url, timeout_seconds=settings.audit_publish_timeout_seconds)
    if channel is None:
        logger.info("No audit event channel configured; audit events are written to the database only")
        return None
    return AuditEventPublisher(
        channel,
        topic=settings.audit_topic,
        queue_size=settings.audit_queue_size,
        max_retries=settings.audit_max_retries,
        backoff_seconds=settings.audit_retry_backoff_seconds,
    )


def build_policy_runtime(
    settings: Settings | None = None,
    *,
    session_factory: sessionmaker[Session] | None = None,
    config: PolicyConfig | None = None,
    grant_store: GrantStore | None = None,
    relationship_store: RelationshipStore | None = None,
    audit_repository: AuditRepository | None = None,
    event_channel: EventChannel | None = None,
) -> PolicyRuntime:
    settings = settings or get_settings()
    configure_logging(settings.log_level)
    config = config or _load_config(settings)

    needs_db = grant_store is None or relationship_store is None or (settings.audit_enabled and audit_repository is None)
    if session_factory is None and needs_db:
        engine = create_engine_from_url(settings.resolved_db_url())
        init_db(engine)
        session_factory = create_session_factory(engine)

    grant_store = grant_store or SqlAlchemyGrantStore(session_factory)
    relationship_store = relationship_store or SqlAlchemyRelationshipStore(session_factory)

    registry = config.registry if config.registry.entries else None

    cache = None
    if settings.cache_enabled:
        cache = PolicyCache(ttl_minutes=settings.cache_ttl_minutes, max_entries=settings.cache_max_entries)
        grant_store.add_listener(cache.evict_user)
        relationship_store.add_listener(cache.on_relationship_changed)

    audit_sink = None
    publisher = None
    if settings.audit_enabled:
        publisher = _build_publisher(settings, event_channel)
        audit_sink = PolicyAuditSink(audit_repository or SqlAlchemyAuditRepository(session_factory), publisher)

    engine = PolicyEngine(
        CompanyTypeGuard(),
        ScopeResolver(relationship_store, super_admin_roles=config.super_admin_roles),
        UserGrantResolver(grant_store),
        RoleDefaultResolver(config.role_table, registry=registry),
        registry=registry,
        cache=cache,
        audit_sink=audit_sink,
        policy_version=settings.policy_version or config.version,
    )
    logger.info(
        "Policy engine ready version=%s cache=%s audit=%s",
        engine.policy_version,
        "on" if cache is not None else "off",
        "on" if audit_sink is not None else "off",
    )
    return PolicyRuntime(
        engine=engine,
        config=config,
        audit_sink=audit_sink,
        publisher=publisher,
        cache=cache,
        grant_store=grant_store,
        relationship_store=relationship_store,
    )


def build_policy_engine(settings: Settings | None = None, **kwargs) -> PolicyEngine:
    return build_policy_runtime(settings, **kwargs).engine
