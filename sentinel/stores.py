"""
Sentinel Stores

Repository interfaces for the engine's durable state:

- InvitationRegistry: subjects holding an active cross-zone invitation
- ApprovalGrantStore: latest manual-review outcome per (subject, tier)
- IncidentLog: append-only record of refused access attempts

Implementations must be:
- Persistent (survive restarts) in production
- Atomic per entry (no torn writes)
- Serialized per grant key (last completed upsert wins)

The in-memory implementations here are for development and testing.
Durable SQLite implementations live in sentinel.db.
"""

import itertools
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Set, Tuple

from .tiers import Tier


class PersistenceUnavailable(Exception):
    """
    Raised when a store cannot complete a read or write.

    Callers must treat this as distinct from any verdict: a failed write
    is never reported as ALLOW or DENY.
    """

    def __init__(self, store: str, message: str):
        self.store = store
        super().__init__(f"{store}: {message}")


class GrantDecision(str, Enum):
    ALLOWED = "ALLOWED"
    DENIED = "DENIED"


def _iso(ts: datetime) -> str:
    return ts.isoformat().replace("+00:00", "Z")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ApprovalGrant:
    """Persisted outcome of a manual review for one (subject, tier) pair."""
    subject_id: str
    tier: Tier
    decision: GrantDecision
    resolved_at: datetime
    resolved_by: str
    sequence: int = 0

    def is_allowed(self) -> bool:
        return self.decision == GrantDecision.ALLOWED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "subject_id": self.subject_id,
            "tier": self.tier.value,
            "decision": self.decision.value,
            "resolved_at": _iso(self.resolved_at),
            "resolved_by": self.resolved_by,
            "sequence": self.sequence,
        }


@dataclass(frozen=True)
class IncidentRecord:
    """Immutable record of a refused access attempt."""
    incident_id: str
    timestamp: datetime
    subject_ref: str
    tier_context: Tier
    reason: str
    sequence: int = 0

    @property
    def description(self) -> str:
        return f"Scan at [{self.tier_context.value}]. {self.reason}."

    def to_dict(self) -> Dict[str, Any]:
        return {
            "incident_id": self.incident_id,
            "timestamp": _iso(self.timestamp),
            "subject_ref": self.subject_ref,
            "tier_context": self.tier_context.value,
            "reason": self.reason,
            "description": self.description,
        }


def incident_id_for(sequence: int) -> str:
    return f"INC-{sequence:06d}"


class InvitationRegistry(ABC):
    """Set of subject ids holding an active invitation."""

    @abstractmethod
    def register(self, subject_id: str) -> None:
        """Insert a subject id. Idempotent."""
        pass

    @abstractmethod
    def is_invited(self, subject_id: str) -> bool:
        pass

    @abstractmethod
    def count(self) -> int:
        """Number of distinct invited subjects."""
        pass


class ApprovalGrantStore(ABC):
    """Latest manual-review outcome per (subject, tier)."""

    @abstractmethod
    def lookup(self, subject_id: str, tier: Tier) -> Optional[ApprovalGrant]:
        pass

    @abstractmethod
    def upsert(
        self,
        subject_id: str,
        tier: Tier,
        decision: GrantDecision,
        operator: str
    ) -> ApprovalGrant:
        """
        Replace any prior grant for (subject_id, tier).

        Returns:
            The grant as written
        """
        pass

    @abstractmethod
    def grants(self) -> List[ApprovalGrant]:
        """All live grants, oldest resolution first."""
        pass


class IncidentLog(ABC):
    """Append-only log of refused access attempts."""

    @abstractmethod
    def record(self, subject_ref: str, tier_context: Tier, reason: str) -> IncidentRecord:
        pass

    @abstractmethod
    def feed(self, limit: Optional[int] = None) -> List[IncidentRecord]:
        """Incidents newest-first."""
        pass

    @abstractmethod
    def count(self) -> int:
        pass


class InMemoryInvitationRegistry(InvitationRegistry):
    """
    In-memory invitation registry for development/testing.

    WARNING: Not persistent across restarts.
    """

    def __init__(self):
        self._invited: Set[str] = set()
        self._lock = threading.Lock()

    def register(self, subject_id: str) -> None:
        with self._lock:
            self._invited.add(subject_id)

    def is_invited(self, subject_id: str) -> bool:
        with self._lock:
            return subject_id in self._invited

    def count(self) -> int:
        with self._lock:
            return len(self._invited)


class InMemoryApprovalGrantStore(ApprovalGrantStore):
    """
    In-memory grant store for development/testing.

    A single lock serializes all upserts; sequence numbers are
    monotonic so the latest write is always identifiable.
    """

    def __init__(self):
        self._grants: Dict[Tuple[str, Tier], ApprovalGrant] = {}
        self._lock = threading.Lock()
        self._sequence = itertools.count(1)

    def lookup(self, subject_id: str, tier: Tier) -> Optional[ApprovalGrant]:
        with self._lock:
            return self._grants.get((subject_id, tier))

    def upsert(
        self,
        subject_id: str,
        tier: Tier,
        decision: GrantDecision,
        operator: str
    ) -> ApprovalGrant:
        with self._lock:
            grant = ApprovalGrant(
                subject_id=subject_id,
                tier=tier,
                decision=decision,
                resolved_at=utc_now(),
                resolved_by=operator,
                sequence=next(self._sequence)
            )
            self._grants[(subject_id, tier)] = grant
            return grant

    def grants(self) -> List[ApprovalGrant]:
        with self._lock:
            return sorted(self._grants.values(), key=lambda g: g.sequence)


class InMemoryIncidentLog(IncidentLog):
    """
    In-memory incident log for development/testing.

    WARNING: Not persistent and not tamper-evident.
    """

    def __init__(self):
        self._records: List[IncidentRecord] = []
        self._lock = threading.Lock()

    def record(self, subject_ref: str, tier_context: Tier, reason: str) -> IncidentRecord:
        with self._lock:
            sequence = len(self._records) + 1
            incident = IncidentRecord(
                incident_id=incident_id_for(sequence),
                timestamp=utc_now(),
                subject_ref=subject_ref,
                tier_context=tier_context,
                reason=reason,
                sequence=sequence
            )
            self._records.append(incident)
            return incident

    def feed(self, limit: Optional[int] = None) -> List[IncidentRecord]:
        with self._lock:
            records = self._records[::-1]
        if limit is not None:
            records = records[:limit]
        return records

    def count(self) -> int:
        with self._lock:
            return len(self._records)
