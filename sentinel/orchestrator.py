"""
Sentinel Scan Session Orchestrator

Drives one checkpoint interaction end-to-end:

    IDLE → SCANNING → SYSTEM_FAILURE
                    → EVALUATED → ALLOW
                                → DENY
                                → AWAITING_MANUAL_REVIEW → RESOLVED_ALLOW
                                                         → RESOLVED_DENY

Every terminal state returns to IDLE when the caller closes the session.
A session may be CANCELLED (discarded) before it reaches a terminal state.

Suspension happens only at AWAITING_MANUAL_REVIEW. A suspended session
holds its station, not the calling thread: the session carries a Future
that is completed when an operator calls approve() or reject().

Sensor failure is a normal outcome, not an error. It produces a DENY
verdict without consulting the evaluator and without recording an incident.
"""

import threading
import uuid
from concurrent.futures import Future
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field, field_validator

from .evaluator import (
    PolicyEvaluator,
    Verdict,
    VerdictOutcome,
    REASON_OPERATOR_APPROVED,
    REASON_OPERATOR_REJECTED,
    REASON_SENSOR_FAILURE,
    allow,
    deny,
)
from .logging_config import audit_log, session_context
from .sensors import FailureSource, RandomFailureSource
from .stores import GrantDecision, IncidentRecord, PersistenceUnavailable
from .subjects import Subject, SubjectDirectory
from .tiers import Tier


class Modality(str, Enum):
    """How the subject's credential was read at the checkpoint."""
    QR = "QR"
    FACE = "FACE"
    PLATE = "PLATE"


class SessionState(str, Enum):
    IDLE = "IDLE"
    SCANNING = "SCANNING"
    SYSTEM_FAILURE = "SYSTEM_FAILURE"
    EVALUATED = "EVALUATED"
    ALLOW = "ALLOW"
    DENY = "DENY"
    AWAITING_MANUAL_REVIEW = "AWAITING_MANUAL_REVIEW"
    RESOLVED_ALLOW = "RESOLVED_ALLOW"
    RESOLVED_DENY = "RESOLVED_DENY"
    CANCELLED = "CANCELLED"


TERMINAL_STATES = frozenset({
    SessionState.SYSTEM_FAILURE,
    SessionState.ALLOW,
    SessionState.DENY,
    SessionState.RESOLVED_ALLOW,
    SessionState.RESOLVED_DENY,
    SessionState.CANCELLED,
})


class ScanRequest(BaseModel):
    """A scan submitted by a checkpoint station."""
    station_id: str = Field(..., min_length=1)
    subject_id: str = Field(..., min_length=1)
    tier: str = Field(..., min_length=1)
    modality: Modality = Modality.QR

    @field_validator("station_id", "subject_id", "tier")
    @classmethod
    def _strip(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v


class InvitationRequest(BaseModel):
    """A host inviting a subject into invitation-gated zones."""
    subject_id: str = Field(..., min_length=1)
    host: Optional[str] = None

    @field_validator("subject_id")
    @classmethod
    def _strip(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v


class UnknownSessionError(LookupError):
    """Raised when a session id is not active in this orchestrator."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Unknown or discarded session: {session_id}")


class StationBusyError(Exception):
    """Raised when a station already has an unresolved session."""

    def __init__(self, station_id: str, session_id: str):
        self.station_id = station_id
        self.session_id = session_id
        super().__init__(f"Station {station_id} is busy with session {session_id}")


class SessionStateError(Exception):
    """Raised when an operation is not valid in the session's current state."""

    def __init__(self, session_id: str, state: SessionState, operation: str):
        self.session_id = session_id
        self.state = state
        self.operation = operation
        super().__init__(f"Cannot {operation} session {session_id} in state {state.value}")


@dataclass
class ScanSession:
    """
    One checkpoint scan-to-verdict interaction.

    State is owned by the orchestrator; callers read it and wait on the
    terminal verdict.
    """
    session_id: str
    station_id: str
    subject: Subject
    tier: Tier
    modality: Modality
    state: SessionState = SessionState.IDLE
    verdict: Optional[Verdict] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    history: List[SessionState] = field(default_factory=list)
    last_error: Optional[Exception] = None
    resolving: bool = field(default=False, repr=False)
    _future: Future = field(default_factory=Future, repr=False)

    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def awaiting_review(self) -> bool:
        return self.state == SessionState.AWAITING_MANUAL_REVIEW

    def done(self) -> bool:
        return self._future.done()

    def wait(self, timeout: Optional[float] = None) -> Verdict:
        """
        Block until the session reaches a terminal verdict.

        Raises:
            concurrent.futures.TimeoutError: still unresolved after timeout
            concurrent.futures.CancelledError: the session was cancelled
        """
        return self._future.result(timeout)

    def add_done_callback(self, fn) -> None:
        """Call fn(session) once the session completes or is cancelled."""
        self._future.add_done_callback(lambda _: fn(self))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "station_id": self.station_id,
            "subject": self.subject.to_dict(),
            "tier": self.tier.value,
            "modality": self.modality.value,
            "state": self.state.value,
            "verdict": self.verdict.to_dict() if self.verdict else None,
            "created_at": self.created_at.isoformat().replace("+00:00", "Z"),
        }


class ScanOrchestrator:
    """
    Runs checkpoint sessions against the policy evaluator.

    Usage:
        orchestrator = ScanOrchestrator(evaluator, directory)
        session = orchestrator.scan(ScanRequest(
            station_id="GATE-1", subject_id="V-1003", tier="RED_2"
        ))
        if session.awaiting_review():
            # operator UI lists orchestrator.pending_reviews()
            orchestrator.approve(session, operator="OPS-7")
        verdict = session.wait()
        orchestrator.close(session)

    Stations run independently; each holds at most one unresolved session.
    """

    def __init__(
        self,
        evaluator: PolicyEvaluator,
        directory: SubjectDirectory,
        failure_source: Optional[FailureSource] = None
    ):
        self.evaluator = evaluator
        self.directory = directory
        self.failure_source = failure_source or RandomFailureSource()
        self._sessions: Dict[str, ScanSession] = {}
        self._stations: Dict[str, str] = {}  # station_id -> session_id
        self._lock = threading.RLock()

    # ------------------------------------------------------------
    # Checkpoint surface
    # ------------------------------------------------------------

    def scan(self, request: Union[ScanRequest, Dict[str, Any]]) -> ScanSession:
        """
        Start a session for a scan request and drive it as far as possible.

        Returns the session in a terminal state, or suspended in
        AWAITING_MANUAL_REVIEW.

        Raises:
            pydantic.ValidationError: malformed request
            UnknownTierError: tier outside the catalog
            UnknownSubjectError: directory has no record of the subject
            DirectoryUnavailable: directory lookup failed
            StationBusyError: station has an unresolved session
            PersistenceUnavailable: a store failed; the session stays
                SCANNING until retry() or cancel()
        """
        if not isinstance(request, ScanRequest):
            request = ScanRequest.model_validate(request)

        # Input is rejected before any session state exists
        tier = self.evaluator.catalog.resolve(request.tier)
        subject = self.directory.require(request.subject_id)

        session = ScanSession(
            session_id=f"scan-{uuid.uuid4().hex[:12]}",
            station_id=request.station_id,
            subject=subject,
            tier=tier,
            modality=request.modality
        )

        with self._lock:
            current_id = self._stations.get(request.station_id)
            if current_id is not None:
                current = self._sessions[current_id]
                if not current.is_terminal():
                    raise StationBusyError(request.station_id, current_id)
                self._discard(current)
            self._sessions[session.session_id] = session
            self._stations[session.station_id] = session.session_id
            self._transition(session, SessionState.SCANNING)

        with session_context(session.session_id):
            audit_log.scan_started(
                session.session_id,
                session.station_id,
                subject.subject_id,
                tier.value,
                session.modality.value
            )

            if self.failure_source.scan_failed(session.modality.value):
                verdict = deny(
                    subject.subject_id,
                    tier,
                    f"{REASON_SENSOR_FAILURE} ({session.modality.value})"
                )
                audit_log.security_event(
                    "SENSOR_FAILURE",
                    severity="low",
                    station_id=session.station_id,
                    modality=session.modality.value
                )
                self._finish(session, SessionState.SYSTEM_FAILURE, verdict, expected=SessionState.SCANNING)
                return session

            self._evaluate(session)
        return session

    def retry(self, session: Union[ScanSession, str]) -> ScanSession:
        """Re-run evaluation for a session left in SCANNING by a store failure."""
        session = self.get(session)
        with self._lock:
            if session.state != SessionState.SCANNING or session.last_error is None:
                raise SessionStateError(session.session_id, session.state, "retry")
            session.last_error = None
        with session_context(session.session_id):
            self._evaluate(session)
        return session

    def cancel(self, session: Union[ScanSession, str]) -> ScanSession:
        """
        Discard an unresolved session.

        Does not touch the approval grant store or the incident log.
        """
        session = self.get(session)
        with self._lock:
            if session.is_terminal() or session.resolving:
                raise SessionStateError(session.session_id, session.state, "cancel")
            previous = session.state
            self._transition(session, SessionState.CANCELLED)
            self._discard(session)
        session._future.cancel()
        audit_log.session_cancelled(session.session_id, session.station_id, previous.value)
        return session

    def close(self, session: Union[ScanSession, str]) -> Verdict:
        """
        Acknowledge a terminal verdict and free the station.

        Returns:
            The session's terminal verdict
        """
        session = self.get(session)
        with self._lock:
            if not session.is_terminal() or session.state == SessionState.CANCELLED:
                raise SessionStateError(session.session_id, session.state, "close")
            self._transition(session, SessionState.IDLE)
            self._discard(session)
        return session.verdict

    def session_at(self, station_id: str) -> Optional[ScanSession]:
        """The station's current session, including one left SCANNING by a store failure."""
        with self._lock:
            session_id = self._stations.get(station_id)
            return self._sessions[session_id] if session_id is not None else None

    def station_state(self, station_id: str) -> SessionState:
        """State of the station's current session, or IDLE."""
        session = self.session_at(station_id)
        return session.state if session is not None else SessionState.IDLE

    def get(self, session: Union[ScanSession, str]) -> ScanSession:
        session_id = session.session_id if isinstance(session, ScanSession) else session
        with self._lock:
            found = self._sessions.get(session_id)
        if found is None:
            raise UnknownSessionError(session_id)
        return found

    # ------------------------------------------------------------
    # Operator surface
    # ------------------------------------------------------------

    def pending_reviews(self) -> List[ScanSession]:
        """Sessions awaiting manual review, oldest first."""
        with self._lock:
            pending = [s for s in self._sessions.values() if s.awaiting_review() and not s.resolving]
        return sorted(pending, key=lambda s: s.created_at)

    def approve(self, session: Union[ScanSession, str], operator: str = "operator") -> ScanSession:
        """
        Grant clearance: persist an ALLOWED grant and resolve ALLOW.

        If the grant write fails the session stays AWAITING_MANUAL_REVIEW.
        """
        session = self._begin_resolution(session, "approve")
        with session_context(session.session_id):
            try:
                grant = self.evaluator.grants.upsert(
                    session.subject.subject_id, session.tier, GrantDecision.ALLOWED, operator
                )
            except BaseException as e:
                self._abort_resolution(session, e)
                raise
            audit_log.review_resolved(
                session.session_id,
                session.subject.subject_id,
                session.tier.value,
                grant.decision.value,
                operator
            )
            verdict = allow(session.subject.subject_id, session.tier, REASON_OPERATOR_APPROVED)
            self._finish(session, SessionState.RESOLVED_ALLOW, verdict, expected=SessionState.AWAITING_MANUAL_REVIEW)
        return session

    def reject(self, session: Union[ScanSession, str], operator: str = "operator") -> ScanSession:
        """
        Refuse clearance: record an incident and resolve DENY.

        No grant is persisted, so the next scan is queued for review again.
        """
        session = self._begin_resolution(session, "reject")
        with session_context(session.session_id):
            try:
                incident = self.evaluator.incidents.record(
                    session.subject.subject_id, session.tier, REASON_OPERATOR_REJECTED
                )
            except BaseException as e:
                self._abort_resolution(session, e)
                raise
            audit_log.incident_recorded(
                incident.incident_id,
                session.subject.subject_id,
                session.tier.value,
                REASON_OPERATOR_REJECTED
            )
            audit_log.review_resolved(
                session.session_id,
                session.subject.subject_id,
                session.tier.value,
                GrantDecision.DENIED.value,
                operator
            )
            verdict = deny(
                session.subject.subject_id,
                session.tier,
                REASON_OPERATOR_REJECTED,
                incident.incident_id
            )
            self._finish(session, SessionState.RESOLVED_DENY, verdict, expected=SessionState.AWAITING_MANUAL_REVIEW)
        return session

    # ------------------------------------------------------------
    # Host and feed surface
    # ------------------------------------------------------------

    def register_invitation(self, subject_id: str, host: Optional[str] = None) -> None:
        """
        Register an invitation under the directory's canonical subject id.

        Ids with no directory record are registered as given.

        Raises:
            pydantic.ValidationError: blank subject id
            DirectoryUnavailable: directory lookup failed
        """
        request = InvitationRequest(subject_id=subject_id, host=host)
        subject = self.directory.lookup(request.subject_id)
        canonical_id = subject.subject_id if subject is not None else request.subject_id
        self.evaluator.invitations.register(canonical_id)
        audit_log.invitation_registered(canonical_id, request.host)

    def incident_feed(self, limit: Optional[int] = None) -> List[IncidentRecord]:
        """Incidents newest-first."""
        return self.evaluator.incidents.feed(limit)

    # ------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------

    def _evaluate(self, session: ScanSession) -> None:
        try:
            verdict = self.evaluator.evaluate(session.subject, session.tier)
        except PersistenceUnavailable as e:
            with self._lock:
                session.last_error = e
            audit_log.security_event(
                "PERSISTENCE_UNAVAILABLE",
                severity="high",
                store=e.store,
                station_id=session.station_id,
                operation="evaluate"
            )
            raise

        with self._lock:
            if session.state != SessionState.SCANNING:
                # Cancelled while the evaluator was running
                return
            self._transition(session, SessionState.EVALUATED)

        if verdict.outcome == VerdictOutcome.PENDING:
            with self._lock:
                if session.state != SessionState.EVALUATED:
                    return
                session.verdict = verdict
                self._transition(session, SessionState.AWAITING_MANUAL_REVIEW)
            audit_log.review_queued(session.session_id, session.subject.subject_id, session.tier.value)
            return

        state = SessionState.ALLOW if verdict.allowed() else SessionState.DENY
        self._finish(session, state, verdict, expected=SessionState.EVALUATED)

    def _begin_resolution(self, session: Union[ScanSession, str], operation: str) -> ScanSession:
        session = self.get(session)
        with self._lock:
            if not session.awaiting_review() or session.resolving:
                raise SessionStateError(session.session_id, session.state, operation)
            session.resolving = True
        return session

    def _abort_resolution(self, session: ScanSession, error: BaseException) -> None:
        """Return a session whose resolution write raised to the review queue."""
        with self._lock:
            session.resolving = False
            session.last_error = error if isinstance(error, Exception) else None
        if not isinstance(error, PersistenceUnavailable):
            return
        audit_log.security_event(
            "PERSISTENCE_UNAVAILABLE",
            severity="high",
            store=error.store,
            station_id=session.station_id,
            operation="resolve"
        )

    def _finish(
        self,
        session: ScanSession,
        state: SessionState,
        verdict: Verdict,
        expected: SessionState
    ) -> None:
        with self._lock:
            if session.state != expected:
                return
            session.verdict = verdict
            session.resolving = False
            session.last_error = None
            self._transition(session, state)
        # Outside the lock: done-callbacks may call back into the orchestrator
        session._future.set_result(verdict)
        audit_log.verdict_issued(
            session.session_id,
            verdict.subject_id,
            verdict.tier.value,
            verdict.outcome.value,
            verdict.reason
        )

    @staticmethod
    def _transition(session: ScanSession, state: SessionState) -> None:
        session.history.append(state)
        session.state = state

    def _discard(self, session: ScanSession) -> None:
        self._sessions.pop(session.session_id, None)
        if self._stations.get(session.station_id) == session.session_id:
            del self._stations[session.station_id]
