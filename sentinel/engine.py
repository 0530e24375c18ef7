"""
Engine assembly.

Builds a ScanOrchestrator from configuration: SQLite stores, the subject
directory selected by DIRECTORY_URL, the tier catalog (with an optional
location override file) and the sensor failure source.
"""

from pathlib import Path
from typing import Optional, Union

from . import config
from .db import Database, SqliteApprovalGrantStore, SqliteIncidentLog, SqliteInvitationRegistry
from .evaluator import PolicyEvaluator
from .orchestrator import ScanOrchestrator
from .sensors import FailureSource, RandomFailureSource
from .subjects import HttpSubjectDirectory, InMemorySubjectDirectory, SEED_SUBJECTS, SubjectDirectory
from .tiers import Location, TierCatalog


def get_subject_directory(url: Optional[str] = None) -> SubjectDirectory:
    url = url if url is not None else config.DIRECTORY_URL
    if url:
        return HttpSubjectDirectory(url, timeout=config.DIRECTORY_TIMEOUT)
    if config.is_production():
        raise RuntimeError("DIRECTORY_URL must be set in production")
    return InMemorySubjectDirectory(SEED_SUBJECTS)


def get_catalog(locations_path: Optional[str] = None) -> TierCatalog:
    data = config.load_locations(locations_path)
    if data is None:
        return TierCatalog()
    return TierCatalog(locations=[Location.from_dict(d) for d in data])


def get_failure_source() -> FailureSource:
    return RandomFailureSource(config.SENSOR_FAILURE_RATE, seed=config.sensor_seed())


def open_database(path: Union[str, Path, None] = None) -> Database:
    db = Database(path or config.DB_PATH, timeout=config.DB_TIMEOUT)
    db.init()
    return db


def create_orchestrator(
    db: Optional[Database] = None,
    directory: Optional[SubjectDirectory] = None,
    catalog: Optional[TierCatalog] = None,
    failure_source: Optional[FailureSource] = None
) -> ScanOrchestrator:
    """Wire a durable orchestrator; any component may be supplied by the caller."""
    db = db or open_database()
    evaluator = PolicyEvaluator(
        catalog=catalog or get_catalog(),
        invitations=SqliteInvitationRegistry(db),
        grants=SqliteApprovalGrantStore(db),
        incidents=SqliteIncidentLog(db)
    )
    return ScanOrchestrator(
        evaluator,
        directory or get_subject_directory(),
        failure_source or get_failure_source()
    )
