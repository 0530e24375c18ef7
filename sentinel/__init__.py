"""
Sentinel Checkpoint Access Engine

Version: 1.0.0

The authorization decision engine behind Sentinel visitor management.

Sentinel answers one question for every checkpoint scan:
    evaluate(subject, tier) ∈ { ALLOW, DENY, PENDING }

PENDING is never shown at the gate. It suspends the scan session until an
operator approves or rejects, and the resolution is persisted so the same
subject is not queued again for the same tier.

Usage:
    from sentinel import (
        PolicyEvaluator,
        ScanOrchestrator,
        ScanRequest,
        TierCatalog,
        InMemoryInvitationRegistry,
        InMemoryApprovalGrantStore,
        InMemoryIncidentLog,
        InMemorySubjectDirectory,
        SEED_SUBJECTS,
    )

    evaluator = PolicyEvaluator(
        TierCatalog(),
        InMemoryInvitationRegistry(),
        InMemoryApprovalGrantStore(),
        InMemoryIncidentLog()
    )
    orchestrator = ScanOrchestrator(evaluator, InMemorySubjectDirectory(SEED_SUBJECTS))

    session = orchestrator.scan(ScanRequest(
        station_id="GATE-1", subject_id="V-1003", tier="RED_2"
    ))
    if session.awaiting_review():
        orchestrator.approve(session, operator="OPS-7")

    verdict = orchestrator.close(session)

For a durable setup backed by SQLite, see sentinel.engine.create_orchestrator.
"""

__version__ = "1.0.0"

# Tiers
from .tiers import (
    Tier,
    PolicyClass,
    DestinationType,
    Location,
    TierCatalog,
    UnknownTierError,
    resolve_tier,
    display_label,
    access_guidance,
)

# Subjects
from .subjects import (
    Subject,
    SubjectClass,
    VehicleInfo,
    SubjectDirectory,
    InMemorySubjectDirectory,
    HttpSubjectDirectory,
    UnknownSubjectError,
    DirectoryUnavailable,
    SEED_SUBJECTS,
)

# Stores
from .stores import (
    ApprovalGrant,
    GrantDecision,
    IncidentRecord,
    InvitationRegistry,
    ApprovalGrantStore,
    IncidentLog,
    InMemoryInvitationRegistry,
    InMemoryApprovalGrantStore,
    InMemoryIncidentLog,
    PersistenceUnavailable,
)

# Evaluator
from .evaluator import (
    PolicyEvaluator,
    Verdict,
    VerdictOutcome,
)

# Sensors
from .sensors import (
    FailureSource,
    RandomFailureSource,
    FixedFailureSource,
)

# Orchestrator
from .orchestrator import (
    ScanOrchestrator,
    ScanSession,
    ScanRequest,
    InvitationRequest,
    SessionState,
    Modality,
    StationBusyError,
    SessionStateError,
    UnknownSessionError,
)


__all__ = [
    # Version
    "__version__",

    # Tiers
    "Tier",
    "PolicyClass",
    "DestinationType",
    "Location",
    "TierCatalog",
    "UnknownTierError",
    "resolve_tier",
    "display_label",
    "access_guidance",

    # Subjects
    "Subject",
    "SubjectClass",
    "VehicleInfo",
    "SubjectDirectory",
    "InMemorySubjectDirectory",
    "HttpSubjectDirectory",
    "UnknownSubjectError",
    "DirectoryUnavailable",
    "SEED_SUBJECTS",

    # Stores
    "ApprovalGrant",
    "GrantDecision",
    "IncidentRecord",
    "InvitationRegistry",
    "ApprovalGrantStore",
    "IncidentLog",
    "InMemoryInvitationRegistry",
    "InMemoryApprovalGrantStore",
    "InMemoryIncidentLog",
    "PersistenceUnavailable",

    # Evaluator
    "PolicyEvaluator",
    "Verdict",
    "VerdictOutcome",

    # Sensors
    "FailureSource",
    "RandomFailureSource",
    "FixedFailureSource",

    # Orchestrator
    "ScanOrchestrator",
    "ScanSession",
    "ScanRequest",
    "InvitationRequest",
    "SessionState",
    "Modality",
    "StationBusyError",
    "SessionStateError",
    "UnknownSessionError",
]
