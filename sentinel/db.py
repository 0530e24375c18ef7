"""
Database module for Sentinel.

Provides SQLite-backed storage for invitations, approval grants and
incidents. Uses per-thread connections and proper indexing for performance.
"""

import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Union

from .stores import (
    ApprovalGrant,
    ApprovalGrantStore,
    GrantDecision,
    IncidentLog,
    IncidentRecord,
    InvitationRegistry,
    PersistenceUnavailable,
    incident_id_for,
    utc_now,
)
from .tiers import Tier

TABLES = ("invitations", "approval_grants", "incidents")


def _parse_ts(s: str) -> datetime:
    return datetime.fromisoformat(s.replace("Z", "+00:00"))


def _format_ts(ts: datetime) -> str:
    return ts.isoformat().replace("+00:00", "Z")


class Database:
    """
    A SQLite database file shared by the Sentinel stores.

    Connections are thread-local and reused within the same thread.
    The path must be a file; ":memory:" would give each thread its own
    empty database.
    """

    def __init__(self, path: Union[str, Path], timeout: float = 5.0):
        self.path = Path(path)
        self.timeout = timeout
        self._local = threading.local()
        self._connections: List[sqlite3.Connection] = []
        self._lock = threading.Lock()

    def connection(self) -> sqlite3.Connection:
        conn = getattr(self._local, "conn", None)
        if conn is None:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(str(self.path), timeout=self.timeout, check_same_thread=False)
            conn.execute("PRAGMA journal_mode=WAL;")
            conn.execute("PRAGMA synchronous=NORMAL;")
            conn.execute("PRAGMA temp_store=MEMORY;")
            conn.row_factory = sqlite3.Row
            self._local.conn = conn
            with self._lock:
                self._connections.append(conn)
        return conn

    @contextmanager
    def transaction(self, store: str = "database"):
        """
        Commit on success, roll back on failure.

        sqlite3 errors are re-raised as PersistenceUnavailable.
        """
        try:
            conn = self.connection()
        except (sqlite3.Error, OSError) as e:
            raise PersistenceUnavailable(store, f"cannot open {self.path}: {e}") from e
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise PersistenceUnavailable(store, str(e)) from e
        except Exception:
            conn.rollback()
            raise

    def init(self) -> None:
        """
        Initialize schema. Safe to call multiple times (uses IF NOT EXISTS).
        """
        with self.transaction() as conn:
            conn.execute("""
            CREATE TABLE IF NOT EXISTS invitations (
                subject_id TEXT PRIMARY KEY,
                registered_at TEXT NOT NULL
            );""")

            # One live grant per (subject, tier)
            conn.execute("""
            CREATE TABLE IF NOT EXISTS approval_grants (
                subject_id TEXT NOT NULL,
                tier TEXT NOT NULL,
                decision TEXT NOT NULL,
                resolved_at TEXT NOT NULL,
                resolved_by TEXT NOT NULL,
                sequence INTEGER NOT NULL,
                PRIMARY KEY (subject_id, tier)
            );""")

            conn.execute("""
            CREATE TABLE IF NOT EXISTS incidents (
                seq INTEGER PRIMARY KEY AUTOINCREMENT,
                timestamp TEXT NOT NULL,
                subject_ref TEXT NOT NULL,
                tier_context TEXT NOT NULL,
                reason TEXT NOT NULL
            );""")
            conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_incidents_subject
            ON incidents(subject_ref);""")

    def stats(self) -> Dict[str, int]:
        """Row counts for monitoring."""
        with self.transaction() as conn:
            stats = {}
            for table in TABLES:
                cur = conn.execute(f"SELECT COUNT(*) AS cnt FROM {table}")
                stats[f"{table}_count"] = cur.fetchone()["cnt"]
            return stats

    def reset(self) -> None:
        """Clear all tables but keep the schema. For test isolation."""
        with self.transaction() as conn:
            for table in TABLES:
                conn.execute(f"DELETE FROM {table}")

    def close(self) -> None:
        """Close every connection opened through this database."""
        with self._lock:
            connections, self._connections = self._connections, []
        for conn in connections:
            conn.close()
        self._local = threading.local()


class SqliteInvitationRegistry(InvitationRegistry):

    def __init__(self, db: Database):
        self.db = db

    def register(self, subject_id: str) -> None:
        with self.db.transaction("invitation_registry") as conn:
            conn.execute(
                "INSERT OR IGNORE INTO invitations(subject_id, registered_at) VALUES(?,?)",
                (subject_id, _format_ts(utc_now()))
            )

    def is_invited(self, subject_id: str) -> bool:
        with self.db.transaction("invitation_registry") as conn:
            cur = conn.execute("SELECT 1 FROM invitations WHERE subject_id=?", (subject_id,))
            return cur.fetchone() is not None

    def count(self) -> int:
        with self.db.transaction("invitation_registry") as conn:
            return conn.execute("SELECT COUNT(*) AS cnt FROM invitations").fetchone()["cnt"]


class SqliteApprovalGrantStore(ApprovalGrantStore):
    """
    Durable grant store.

    Upserts run as a single INSERT .. ON CONFLICT statement under a store
    lock; SQLite's write lock serializes writers across processes.
    """

    def __init__(self, db: Database):
        self.db = db
        self._lock = threading.Lock()

    @staticmethod
    def _row_to_grant(row: sqlite3.Row) -> ApprovalGrant:
        return ApprovalGrant(
            subject_id=row["subject_id"],
            tier=Tier(row["tier"]),
            decision=GrantDecision(row["decision"]),
            resolved_at=_parse_ts(row["resolved_at"]),
            resolved_by=row["resolved_by"],
            sequence=row["sequence"]
        )

    def lookup(self, subject_id: str, tier: Tier) -> Optional[ApprovalGrant]:
        with self.db.transaction("approval_grant_store") as conn:
            cur = conn.execute(
                "SELECT subject_id, tier, decision, resolved_at, resolved_by, sequence "
                "FROM approval_grants WHERE subject_id=? AND tier=?",
                (subject_id, tier.value)
            )
            row = cur.fetchone()
            return self._row_to_grant(row) if row else None

    def upsert(
        self,
        subject_id: str,
        tier: Tier,
        decision: GrantDecision,
        operator: str
    ) -> ApprovalGrant:
        resolved_at = _format_ts(utc_now())
        with self._lock, self.db.transaction("approval_grant_store") as conn:
            conn.execute(
                "INSERT INTO approval_grants(subject_id, tier, decision, resolved_at, resolved_by, sequence) "
                "VALUES(?,?,?,?,?,(SELECT COALESCE(MAX(sequence), 0) + 1 FROM approval_grants)) "
                "ON CONFLICT(subject_id, tier) DO UPDATE SET "
                "decision=excluded.decision, resolved_at=excluded.resolved_at, "
                "resolved_by=excluded.resolved_by, sequence=excluded.sequence",
                (subject_id, tier.value, decision.value, resolved_at, operator)
            )
            row = conn.execute(
                "SELECT subject_id, tier, decision, resolved_at, resolved_by, sequence "
                "FROM approval_grants WHERE subject_id=? AND tier=?",
                (subject_id, tier.value)
            ).fetchone()
            return self._row_to_grant(row)

    def grants(self) -> List[ApprovalGrant]:
        with self.db.transaction("approval_grant_store") as conn:
            cur = conn.execute(
                "SELECT subject_id, tier, decision, resolved_at, resolved_by, sequence "
                "FROM approval_grants ORDER BY sequence ASC"
            )
            return [self._row_to_grant(row) for row in cur.fetchall()]


class SqliteIncidentLog(IncidentLog):

    def __init__(self, db: Database):
        self.db = db

    @staticmethod
    def _row_to_incident(row: sqlite3.Row) -> IncidentRecord:
        return IncidentRecord(
            incident_id=incident_id_for(row["seq"]),
            timestamp=_parse_ts(row["timestamp"]),
            subject_ref=row["subject_ref"],
            tier_context=Tier(row["tier_context"]),
            reason=row["reason"],
            sequence=row["seq"]
        )

    def record(self, subject_ref: str, tier_context: Tier, reason: str) -> IncidentRecord:
        timestamp = utc_now()
        with self.db.transaction("incident_log") as conn:
            cur = conn.execute(
                "INSERT INTO incidents(timestamp, subject_ref, tier_context, reason) VALUES(?,?,?,?)",
                (_format_ts(timestamp), subject_ref, tier_context.value, reason)
            )
            seq = cur.lastrowid
        return IncidentRecord(
            incident_id=incident_id_for(seq),
            timestamp=timestamp,
            subject_ref=subject_ref,
            tier_context=tier_context,
            reason=reason,
            sequence=seq
        )

    def feed(self, limit: Optional[int] = None) -> List[IncidentRecord]:
        query = "SELECT seq, timestamp, subject_ref, tier_context, reason FROM incidents ORDER BY seq DESC"
        params = ()
        if limit is not None:
            query += " LIMIT ?"
            params = (int(limit),)
        with self.db.transaction("incident_log") as conn:
            return [self._row_to_incident(row) for row in conn.execute(query, params).fetchall()]

    def count(self) -> int:
        with self.db.transaction("incident_log") as conn:
            return conn.execute("SELECT COUNT(*) AS cnt FROM incidents").fetchone()["cnt"]
