"""
Sentinel Store Test Suite

Covers the in-memory and SQLite implementations of the invitation
registry, approval grant store and incident log.
"""

import shutil
import sqlite3
import tempfile
import threading
import unittest
from pathlib import Path

from sentinel.db import (
    Database,
    SqliteApprovalGrantStore,
    SqliteIncidentLog,
    SqliteInvitationRegistry,
)
from sentinel.stores import (
    GrantDecision,
    InMemoryApprovalGrantStore,
    InMemoryIncidentLog,
    InMemoryInvitationRegistry,
    PersistenceUnavailable,
    incident_id_for,
)
from sentinel.tiers import Tier


class StoreContract:
    """Behaviour shared by every store implementation."""

    def make_stores(self):
        raise NotImplementedError

    def setUp(self):
        self.invitations, self.grants, self.incidents = self.make_stores()

    # Invitation registry

    def test_register_is_idempotent(self):
        self.invitations.register("V-1005")
        self.invitations.register("V-1005")
        self.assertTrue(self.invitations.is_invited("V-1005"))
        self.assertEqual(self.invitations.count(), 1)

    def test_not_invited_by_default(self):
        self.assertFalse(self.invitations.is_invited("V-1003"))
        self.assertEqual(self.invitations.count(), 0)

    # Approval grant store

    def test_lookup_absent(self):
        self.assertIsNone(self.grants.lookup("V-1003", Tier.RED_2))

    def test_upsert_then_lookup(self):
        written = self.grants.upsert("V-1003", Tier.RED_2, GrantDecision.ALLOWED, "OPS-7")
        found = self.grants.lookup("V-1003", Tier.RED_2)
        self.assertEqual(found.decision, GrantDecision.ALLOWED)
        self.assertEqual(found.resolved_by, "OPS-7")
        self.assertEqual(found.sequence, written.sequence)
        self.assertTrue(found.is_allowed())

    def test_grant_is_per_tier(self):
        self.grants.upsert("V-1003", Tier.RED_2, GrantDecision.ALLOWED, "OPS-7")
        self.assertIsNone(self.grants.lookup("V-1003", Tier.RED_1))
        self.assertIsNone(self.grants.lookup("V-1001", Tier.RED_2))

    def test_upsert_replaces(self):
        self.grants.upsert("V-1003", Tier.RED_2, GrantDecision.ALLOWED, "OPS-7")
        self.grants.upsert("V-1003", Tier.RED_2, GrantDecision.DENIED, "OPS-9")
        found = self.grants.lookup("V-1003", Tier.RED_2)
        self.assertEqual(found.decision, GrantDecision.DENIED)
        self.assertEqual(found.resolved_by, "OPS-9")
        self.assertEqual(len(self.grants.grants()), 1)

    def test_grants_ordered_by_sequence(self):
        self.grants.upsert("V-1003", Tier.RED_2, GrantDecision.ALLOWED, "OPS-7")
        self.grants.upsert("V-1001", Tier.RED_1, GrantDecision.ALLOWED, "OPS-7")
        self.grants.upsert("V-1003", Tier.RED_2, GrantDecision.DENIED, "OPS-7")
        order = [(g.subject_id, g.tier) for g in self.grants.grants()]
        self.assertEqual(order, [("V-1001", Tier.RED_1), ("V-1003", Tier.RED_2)])

    def test_concurrent_upserts_last_completed_wins(self):
        barrier = threading.Barrier(8)
        written = []
        lock = threading.Lock()

        def worker(i):
            decision = GrantDecision.ALLOWED if i % 2 else GrantDecision.DENIED
            barrier.wait()
            grant = self.grants.upsert("V-1003", Tier.RED_2, decision, f"OPS-{i}")
            with lock:
                written.append(grant)

        threads = [threading.Thread(target=worker, args=(i,)) for i in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        last = max(written, key=lambda g: g.sequence)
        found = self.grants.lookup("V-1003", Tier.RED_2)
        self.assertEqual(found.resolved_by, last.resolved_by)
        self.assertEqual(found.decision, last.decision)
        self.assertEqual(len({g.sequence for g in written}), 8)

    # Incident log

    def test_record_assigns_ids(self):
        first = self.incidents.record("V-1003", Tier.ORANGE, "no active invitation")
        second = self.incidents.record("V-1001", Tier.RED_2, "clearance rejected by operator")
        self.assertEqual(first.incident_id, "INC-000001")
        self.assertEqual(second.incident_id, "INC-000002")
        self.assertEqual(first.description, "Scan at [ORANGE]. no active invitation.")

    def test_feed_newest_first(self):
        for subject in ("V-1", "V-2", "V-3"):
            self.incidents.record(subject, Tier.ORANGE, "no active invitation")
        feed = self.incidents.feed()
        self.assertEqual([i.subject_ref for i in feed], ["V-3", "V-2", "V-1"])
        self.assertEqual([i.subject_ref for i in self.incidents.feed(2)], ["V-3", "V-2"])
        self.assertEqual(self.incidents.count(), 3)

    def test_incident_to_dict(self):
        incident = self.incidents.record("V-1003", Tier.ORANGE, "no active invitation")
        d = incident.to_dict()
        self.assertEqual(d["tier_context"], "ORANGE")
        self.assertTrue(d["timestamp"].endswith("Z"))
        self.assertEqual(d["description"], incident.description)


class TestInMemoryStores(StoreContract, unittest.TestCase):

    def make_stores(self):
        return InMemoryInvitationRegistry(), InMemoryApprovalGrantStore(), InMemoryIncidentLog()


class TestSqliteStores(StoreContract, unittest.TestCase):

    def make_stores(self):
        self.tmpdir = tempfile.mkdtemp()
        self.db = Database(Path(self.tmpdir) / "sentinel.db")
        self.db.init()
        return (
            SqliteInvitationRegistry(self.db),
            SqliteApprovalGrantStore(self.db),
            SqliteIncidentLog(self.db),
        )

    def tearDown(self):
        self.db.close()
        shutil.rmtree(self.tmpdir, ignore_errors=True)

    def test_state_survives_reopen(self):
        self.invitations.register("V-1005")
        self.grants.upsert("V-1003", Tier.RED_2, GrantDecision.ALLOWED, "OPS-7")
        self.incidents.record("V-1003", Tier.ORANGE, "no active invitation")
        self.db.close()

        reopened = Database(self.db.path)
        reopened.init()
        try:
            self.assertTrue(SqliteInvitationRegistry(reopened).is_invited("V-1005"))
            grant = SqliteApprovalGrantStore(reopened).lookup("V-1003", Tier.RED_2)
            self.assertEqual(grant.decision, GrantDecision.ALLOWED)
            log = SqliteIncidentLog(reopened)
            self.assertEqual(log.count(), 1)
            second = log.record("V-1001", Tier.ORANGE, "no active invitation")
            self.assertEqual(second.incident_id, incident_id_for(2))
        finally:
            reopened.close()

    def test_stats_and_reset(self):
        self.invitations.register("V-1005")
        self.incidents.record("V-1003", Tier.ORANGE, "no active invitation")
        stats = self.db.stats()
        self.assertEqual(stats["invitations_count"], 1)
        self.assertEqual(stats["incidents_count"], 1)
        self.assertEqual(stats["approval_grants_count"], 0)
        self.db.reset()
        self.assertEqual(self.invitations.count(), 0)
        self.assertEqual(self.incidents.count(), 0)

    def test_missing_schema_raises_persistence_unavailable(self):
        self.db.close()
        bare = Database(Path(self.tmpdir) / "bare.db")
        try:
            with self.assertRaises(PersistenceUnavailable) as ctx:
                SqliteIncidentLog(bare).record("V-1003", Tier.ORANGE, "no active invitation")
            self.assertEqual(ctx.exception.store, "incident_log")
            self.assertIsInstance(ctx.exception.__cause__, sqlite3.Error)
        finally:
            bare.close()

    def test_failed_write_rolls_back(self):
        with self.assertRaises(PersistenceUnavailable):
            with self.db.transaction("invitation_registry") as conn:
                conn.execute(
                    "INSERT INTO invitations(subject_id, registered_at) VALUES(?,?)",
                    ("V-1005", "2026-01-01T00:00:00Z")
                )
                conn.execute("INSERT INTO no_such_table VALUES(1)")
        self.assertFalse(self.invitations.is_invited("V-1005"))


if __name__ == "__main__":
    unittest.main()
