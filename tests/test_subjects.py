"""
Sentinel Subject Directory Test Suite
"""

import unittest
from unittest import mock

import requests

from sentinel.subjects import (
    SEED_SUBJECTS,
    DirectoryUnavailable,
    HttpSubjectDirectory,
    InMemorySubjectDirectory,
    Subject,
    SubjectClass,
    UnknownSubjectError,
)


def _response(status_code, payload=None):
    r = mock.Mock()
    r.status_code = status_code
    r.json.return_value = payload
    if status_code >= 400:
        r.raise_for_status.side_effect = requests.HTTPError(f"{status_code} error")
    else:
        r.raise_for_status.return_value = None
    return r


class TestSubject(unittest.TestCase):

    def test_blank_id_rejected(self):
        with self.assertRaises(ValueError):
            Subject("  ", "Nobody")

    def test_from_dict(self):
        subject = Subject.from_dict({
            "subject_id": "V-1001",
            "subject_class": "guest",
            "vehicle": {"plate_number": "WAA 1234", "model": "Toyota Camry"},
        })
        self.assertEqual(subject.display_name, "Verified User")
        self.assertEqual(subject.subject_class, SubjectClass.GUEST)
        self.assertEqual(subject.vehicle.plate_number, "WAA 1234")
        self.assertFalse(subject.is_staff())

    def test_to_dict_roundtrip(self):
        for subject in SEED_SUBJECTS:
            self.assertEqual(Subject.from_dict(subject.to_dict()), subject)


class TestInMemorySubjectDirectory(unittest.TestCase):

    def setUp(self):
        self.directory = InMemorySubjectDirectory(SEED_SUBJECTS)

    def test_lookup_case_insensitive(self):
        self.assertEqual(self.directory.lookup(" v-1003 ").display_name, "John Doe")

    def test_unknown_returns_none(self):
        self.assertIsNone(self.directory.lookup("V-9999"))

    def test_require_unknown_raises(self):
        with self.assertRaises(UnknownSubjectError) as ctx:
            self.directory.require("V-9999")
        self.assertEqual(ctx.exception.subject_id, "V-9999")

    def test_staff_seed(self):
        self.assertTrue(self.directory.require("S-2001").is_staff())
        self.assertEqual(len(self.directory.all()), len(SEED_SUBJECTS))


class TestHttpSubjectDirectory(unittest.TestCase):

    def setUp(self):
        self.session = mock.Mock()
        self.directory = HttpSubjectDirectory(
            "https://directory.example/", timeout=1.5, session=self.session
        )

    def test_lookup_found(self):
        self.session.get.return_value = _response(200, {
            "subject_id": "S-2001",
            "display_name": "Officer PB-2001",
            "subject_class": "STAFF",
        })
        subject = self.directory.lookup("S-2001")
        self.assertTrue(subject.is_staff())
        self.session.get.assert_called_once_with(
            "https://directory.example/subjects/S-2001", timeout=1.5
        )

    def test_404_is_unknown(self):
        self.session.get.return_value = _response(404)
        self.assertIsNone(self.directory.lookup("V-9999"))
        with self.assertRaises(UnknownSubjectError):
            self.directory.require("V-9999")

    def test_server_error_is_unavailable(self):
        self.session.get.return_value = _response(503)
        with self.assertRaises(DirectoryUnavailable):
            self.directory.lookup("V-1003")

    def test_transport_error_is_unavailable(self):
        self.session.get.side_effect = requests.ConnectionError("refused")
        with self.assertRaises(DirectoryUnavailable):
            self.directory.lookup("V-1003")

    def test_malformed_record_is_unavailable(self):
        self.session.get.return_value = _response(200, {"display_name": "No id"})
        with self.assertRaises(DirectoryUnavailable):
            self.directory.lookup("V-1003")

    def test_non_object_body_is_unavailable(self):
        for payload in (None, ["V-1003"], "V-1003", 42):
            self.session.get.return_value = _response(200, payload)
            with self.assertRaises(DirectoryUnavailable):
                self.directory.lookup("V-1003")

    def test_malformed_vehicle_is_unavailable(self):
        self.session.get.return_value = _response(200, {"subject_id": "V-1001", "vehicle": "WAA 1234"})
        with self.assertRaises(DirectoryUnavailable):
            self.directory.lookup("V-1001")


if __name__ == "__main__":
    unittest.main()
