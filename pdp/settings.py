from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

from .constants import AUDIT_TOPIC, CACHE_TTL_MINUTES


class Settings(BaseSettings):
    """
    Decision point settings.

    Notes:
    - Defaults are local and deterministic (SQLite file next to the repo, cache off).
    - Every field can be overridden with a ``PDP_`` prefixed environment variable.
    """

    model_config = SettingsConfigDict(env_prefix="PDP_", extra="ignore")

    db_url: str | None = None
    policy_config_path: str | None = None
    log_level: str = "INFO"
    policy_version: str | None = None
    """Overrides the version from the policy YAML when set."""

    cache_enabled: bool = False
    cache_ttl_minutes: int = CACHE_TTL_MINUTES
    cache_max_entries: int = 10_000

    audit_enabled: bool = True
    audit_topic: str = AUDIT_TOPIC
    audit_event_url: str | None = None
    audit_queue_size: int = 1000
    audit_max_retries: int = 3
    audit_retry_backoff_seconds: float = 0.5
    audit_publish_timeout_seconds: float = 5.0

    def resolved_db_url(self) -> str:
        if self.db_url:
            return self.db_url

        repo_root = Path(__file__).resolve().parents[1]
        db_path = repo_root / "pdp.db"
        return f"sqlite:///{db_path}"

    def resolved_policy_config_path(self) -> Path:
        if self.policy_config_path:
            return Path(self.policy_config_path)

        repo_root = Path(__file__).resolve().parents[1]
        return repo_root / "config" / "policy.yaml"


@lru_cache
def get_settings() -> Settings:
    return Settings()
