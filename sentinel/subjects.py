"""
Sentinel Subject Directory

Subjects are owned by an external directory service. The engine only reads
them: identity resolution (does this IC/passport or staff code belong to a
known record) happens outside the engine and is exposed through the
SubjectDirectory interface.
"""

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional


class SubjectClass(str, Enum):
    GUEST = "GUEST"
    STAFF = "STAFF"


@dataclass(frozen=True)
class VehicleInfo:
    plate_number: str
    model: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"plate_number": self.plate_number, "model": self.model}


@dataclass(frozen=True)
class Subject:
    """A visitor or staff member presenting at a checkpoint."""
    subject_id: str
    display_name: str
    subject_class: SubjectClass = SubjectClass.GUEST
    vehicle: Optional[VehicleInfo] = None

    def __post_init__(self):
        if not self.subject_id or not self.subject_id.strip():
            raise ValueError("subject_id must be a non-empty string")

    def is_staff(self) -> bool:
        return self.subject_class == SubjectClass.STAFF

    def to_dict(self) -> Dict[str, Any]:
        d = {
            "subject_id": self.subject_id,
            "display_name": self.display_name,
            "subject_class": self.subject_class.value,
        }
        if self.vehicle:
            d["vehicle"] = self.vehicle.to_dict()
        return d

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Subject":
        vehicle = data.get("vehicle")
        return cls(
            subject_id=data["subject_id"],
            display_name=data.get("display_name") or "Verified User",
            subject_class=SubjectClass(str(data.get("subject_class", "GUEST")).upper()),
            vehicle=VehicleInfo(
                plate_number=vehicle["plate_number"],
                model=vehicle.get("model")
            ) if vehicle else None
        )


class UnknownSubjectError(LookupError):
    """Raised when the directory holds no record for a subject id."""

    def __init__(self, subject_id: str):
        self.subject_id = subject_id
        super().__init__(f"Identity record not found: {subject_id}")


class DirectoryUnavailable(Exception):
    """Raised when the external directory cannot be reached."""


class SubjectDirectory(ABC):
    """Read-only lookup of subjects by identifier."""

    @abstractmethod
    def lookup(self, subject_id: str) -> Optional[Subject]:
        """Return the subject, or None if the directory has no record."""
        pass

    def require(self, subject_id: str) -> Subject:
        subject = self.lookup(subject_id)
        if subject is None:
            raise UnknownSubjectError(subject_id)
        return subject


class InMemorySubjectDirectory(SubjectDirectory):
    """
    In-memory directory for development/testing.

    Identifiers are matched case-insensitively, as badge and IC numbers
    are typed in by hand at the desk.
    """

    def __init__(self, subjects: Optional[Iterable[Subject]] = None):
        self._subjects: Dict[str, Subject] = {}
        self._lock = threading.Lock()
        for subject in subjects or []:
            self.add(subject)

    def add(self, subject: Subject) -> None:
        with self._lock:
            self._subjects[subject.subject_id.upper()] = subject

    def lookup(self, subject_id: str) -> Optional[Subject]:
        with self._lock:
            return self._subjects.get(subject_id.strip().upper())

    def all(self) -> List[Subject]:
        with self._lock:
            return list(self._subjects.values())


class HttpSubjectDirectory(SubjectDirectory):
    """
    Directory backed by an external HTTP service.

    Expects GET {base_url}/subjects/{subject_id} to return the subject as
    JSON, or 404 when the record is unknown. Transport failures raise
    DirectoryUnavailable rather than being treated as an unknown subject.
    """

    def __init__(self, base_url: str, timeout: float = 3.0, session=None):
        import requests

        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def lookup(self, subject_id: str) -> Optional[Subject]:
        import requests

        url = f"{self.base_url}/subjects/{subject_id.strip()}"
        try:
            r = self.session.get(url, timeout=self.timeout)
            if r.status_code == 404:
                return None
            r.raise_for_status()
            data = r.json()
            if not isinstance(data, dict):
                raise TypeError(f"expected a JSON object, got {type(data).__name__}")
            return Subject.from_dict(data)
        except requests.RequestException as e:
            raise DirectoryUnavailable(f"Directory lookup failed for {subject_id}: {e}") from e
        except (KeyError, ValueError, TypeError, AttributeError) as e:
            raise DirectoryUnavailable(f"Malformed directory record for {subject_id}: {e}") from e


# Reference records used by the CLI when no directory is configured
SEED_SUBJECTS: List[Subject] = [
    Subject("V-1001", "Sarah Connor", SubjectClass.GUEST, VehicleInfo("WAA 1234", "Toyota Camry")),
    Subject("V-1003", "John Doe", SubjectClass.GUEST),
    Subject("V-1005", "James Bond", SubjectClass.GUEST),
    Subject("S-2001", "Officer PB-2001", SubjectClass.STAFF),
]
