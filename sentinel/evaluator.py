"""
Sentinel Policy Evaluator

The core decision function of the engine. Combines the tier's policy class,
the invitation registry and the approval grant store into a verdict:

    evaluate(subject, tier) ∈ { ALLOW, DENY, PENDING }

The evaluator is deterministic. Its only side effect is recording an
incident when an invitation-gated request is denied. It never writes to
the approval grant store; only operator resolution does that.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Union

from .logging_config import audit_log
from .stores import ApprovalGrantStore, IncidentLog, InvitationRegistry
from .subjects import Subject
from .tiers import PolicyClass, Tier, TierCatalog


class VerdictOutcome(str, Enum):
    ALLOW = "ALLOW"
    DENY = "DENY"
    PENDING = "PENDING"


REASON_OPEN_TIER = "open tier"
REASON_INVITED_OR_STAFF = "active invitation or staff"
REASON_NO_INVITATION = "no active invitation"
REASON_PERSISTENT_CLEARANCE = "persistent clearance"
REASON_MANUAL_REQUIRED = "manual clearance required"
REASON_OPERATOR_APPROVED = "clearance granted by operator"
REASON_OPERATOR_REJECTED = "clearance rejected by operator"
REASON_SENSOR_FAILURE = "sensor/record unrecognized"


@dataclass(frozen=True)
class Verdict:
    """Outcome of one access decision."""
    outcome: VerdictOutcome
    reason: str
    subject_id: str
    tier: Tier
    issued_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    incident_id: Optional[str] = None

    def allowed(self) -> bool:
        return self.outcome == VerdictOutcome.ALLOW

    def denied(self) -> bool:
        return self.outcome == VerdictOutcome.DENY

    def pending(self) -> bool:
        return self.outcome == VerdictOutcome.PENDING

    def to_dict(self) -> Dict[str, Any]:
        d = {
            "outcome": self.outcome.value,
            "reason": self.reason,
            "subject_id": self.subject_id,
            "tier": self.tier.value,
            "issued_at": self.issued_at.isoformat().replace("+00:00", "Z"),
        }
        if self.incident_id:
            d["incident_id"] = self.incident_id
        return d


def allow(subject_id: str, tier: Tier, reason: str) -> Verdict:
    return Verdict(VerdictOutcome.ALLOW, reason, subject_id, tier)


def deny(subject_id: str, tier: Tier, reason: str, incident_id: Optional[str] = None) -> Verdict:
    return Verdict(VerdictOutcome.DENY, reason, subject_id, tier, incident_id=incident_id)


def pending(subject_id: str, tier: Tier, reason: str) -> Verdict:
    return Verdict(VerdictOutcome.PENDING, reason, subject_id, tier)


class PolicyEvaluator:
    """
    Decides ALLOW, DENY or PENDING for a subject requesting a tier.

    Usage:
        evaluator = PolicyEvaluator(catalog, invitations, grants, incidents)
        verdict = evaluator.evaluate(subject, Tier.ORANGE)
        if verdict.pending():
            # hand off to manual review
            ...
    """

    def __init__(
        self,
        catalog: TierCatalog,
        invitations: InvitationRegistry,
        grants: ApprovalGrantStore,
        incidents: IncidentLog
    ):
        self.catalog = catalog
        self.invitations = invitations
        self.grants = grants
        self.incidents = incidents

    def evaluate(self, subject: Subject, tier: Union[Tier, str]) -> Verdict:
        """
        Evaluate an entry request.

        Raises:
            UnknownTierError: tier is not in the catalog
            PersistenceUnavailable: a store read or the incident write failed
        """
        tier = self.catalog.resolve(tier)
        policy_class = self.catalog.classify(tier)

        if policy_class == PolicyClass.OPEN:
            return allow(subject.subject_id, tier, REASON_OPEN_TIER)

        if policy_class == PolicyClass.INVITATION_GATED:
            if subject.is_staff() or self.invitations.is_invited(subject.subject_id):
                return allow(subject.subject_id, tier, REASON_INVITED_OR_STAFF)
            incident = self.incidents.record(subject.subject_id, tier, REASON_NO_INVITATION)
            audit_log.incident_recorded(
                incident.incident_id, subject.subject_id, tier.value, REASON_NO_INVITATION
            )
            return deny(subject.subject_id, tier, REASON_NO_INVITATION, incident.incident_id)

        grant = self.grants.lookup(subject.subject_id, tier)
        if grant is not None and grant.is_allowed():
            return allow(subject.subject_id, tier, REASON_PERSISTENT_CLEARANCE)
        return pending(subject.subject_id, tier, REASON_MANUAL_REQUIRED)
