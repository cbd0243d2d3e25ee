"""
Company relationship store.

The decision point only ever asks one question of it:
``relationship_active(company_a, company_b)``. Relationships are owned by
the company subsystem; the in-memory store here exists for tests and for
deployments that load relationships at startup.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
import logging
import threading

from .enums import RelationshipStatus, coerce_enum

logger = logging.getLogger(__name__)

RelationshipListener = Callable[[str, str], None]
"""Called with both company ids whenever a relationship between them changes."""


@dataclass(frozen=True)
class CompanyRelationship:
    source_company_id: str
    target_company_id: str
    status: RelationshipStatus = RelationshipStatus.ACTIVE
    kind: str | None = None
    """Free-form business kind, e.g. ``CUSTOMER_OF`` or ``SUPPLIES``."""

    def __post_init__(self) -> None:
        if not self.source_company_id or not self.target_company_id:
            raise ValueError("relationship requires both company ids")
        object.__setattr__(self, "source_company_id", str(self.source_company_id))
        object.__setattr__(self, "target_company_id", str(self.target_company_id))
        object.__setattr__(self, "status", coerce_enum(RelationshipStatus, self.status))

    @property
    def is_active(self) -> bool:
        return self.status is RelationshipStatus.ACTIVE


class RelationshipStore(ABC):
    """Read contract used by the scope resolver, plus change notification."""

    def __init__(self) -> None:
        self._listeners: list[RelationshipListener] = []

    def add_listener(self, listener: RelationshipListener) -> None:
        self._listeners.append(listener)

    def _notify(self, company_a: str, company_b: str) -> None:
        for listener in self._listeners:
            listener(company_a, company_b)

    @abstractmethod
    def relationship_active(self, company_a: str, company_b: str) -> bool:
        """True if an ACTIVE relationship exists between the companies, in either direction."""


class InMemoryRelationshipStore(RelationshipStore):
    def __init__(self, relationships: list[CompanyRelationship] | None = None) -> None:
        super().__init__()
        self._lock = threading.Lock()
        self._relationships: dict[tuple[str, str], CompanyRelationship] = {}
        for rel in relationships or []:
            self._relationships[(rel.source_company_id, rel.target_company_id)] = rel

    def relationship_active(self, company_a: str, company_b: str) -> bool:
        a, b = str(company_a), str(company_b)
        with self._lock:
            for key in ((a, b), (b, a)):
                rel = self._relationships.get(key)
                if rel is not None and rel.is_active:
                    return True
        return False

    def save(self, relationship: CompanyRelationship) -> None:
        key = (relationship.source_company_id, relationship.target_company_id)
        with self._lock:
            self._relationships[key] = relationship
        logger.info(
            "Relationship saved source=%s target=%s status=%s",
            relationship.source_company_id,
            relationship.target_company_id,
            relationship.status.value,
        )
        self._notify(*key)
