"""
Lazy construction of the CampusFlow service graph.

Why:
    Routes need one shared repository, storage adapter and token verifier, but
    the app must import cleanly without a database or Supabase (tests, local
    offline work). Everything is built on first use and can be swapped by
    tests via `set_repo`, `set_storage` and `set_token_verifier`.

Behavior:
    - Repository: Postgres (`DBCampusRepo`) when a DSN is configured,
      otherwise the in-memory repository.
    - Storage: Supabase storage when SUPABASE_URL and the service key are set,
      otherwise `NullStorage` (uploads fail with 500).
    - Token verifier: Supabase access tokens (HS256 secret or JWKS).
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any, Callable, Optional

from backend.campus.gate import MutationGate
from backend.campus.repo_memory import InMemoryCampusRepo
from backend.identity_access.admin import AdminService
from backend.identity_access.domain import Identity
from backend.identity_access.oracle import RoleOwnershipOracle
from backend.identity_access.profile import ProfilePhotoService, ProfileService
from backend.identity_access.tokens import JWKSCache, TokenConfig, make_verifier
from backend.learning.usecases.assignments import ListStudentAssignmentsUseCase, SubmitAssignmentUseCase
from backend.learning.usecases.mcq import GetTestQuestionsUseCase, ListStudentTestsUseCase, SubmitTestUseCase
from backend.learning.usecases.progress import StudentMarksUseCase, StudentProgressUseCase
from backend.notifications.fanout import NotificationFanout
from backend.notifications.service import NotificationInbox
from backend.storage.ports import BlobStorage, NullStorage
from backend.storage.uploads import FileUploadService
from backend.teaching.services.announcements import AnnouncementsService
from backend.teaching.services.assignments import AssignmentsService
from backend.teaching.services.attendance import AttendanceService
from backend.teaching.services.classes import ClassesService
from backend.teaching.services.curriculum import CurriculumService
from backend.teaching.services.enrollments import EnrollmentsService
from backend.teaching.services.marks import MarksService
from backend.teaching.services.mcq_tests import McqTestsService
from backend.teaching.services.reports import ReportsService
from backend.teaching.services.roster import RosterService
from backend.web.config import CampusSettings, load_settings

logger = logging.getLogger("campusflow.web")

TokenVerifier = Callable[[str], Identity]

_REPO: Any = None
_STORAGE: Optional[BlobStorage] = None
_VERIFIER: Optional[TokenVerifier] = None
_SERVICES: Optional["Services"] = None
_SETTINGS: Optional[CampusSettings] = None


@dataclass
class Services:
    oracle: RoleOwnershipOracle
    gate: MutationGate
    inbox: NotificationInbox
    marks: MarksService
    attendance: AttendanceService
    announcements: AnnouncementsService
    curriculum: CurriculumService
    reports: ReportsService
    assignments: AssignmentsService
    tests: McqTestsService
    classes: ClassesService
    roster: RosterService
    enrollments: EnrollmentsService
    admin: AdminService
    profiles: ProfileService
    profile: ProfilePhotoService
    uploads: FileUploadService
    student_assignments: ListStudentAssignmentsUseCase
    submit_assignment: SubmitAssignmentUseCase
    student_tests: ListStudentTestsUseCase
    test_questions: GetTestQuestionsUseCase
    submit_test: SubmitTestUseCase
    student_marks: StudentMarksUseCase
    student_progress: StudentProgressUseCase


def build_services(repo: Any, storage: BlobStorage, settings: CampusSettings) -> Services:
    oracle = RoleOwnershipOracle(repo)
    gate = MutationGate(oracle, NotificationFanout(repo))
    inbox = NotificationInbox(repo)
    return Services(
        oracle=oracle,
        gate=gate,
        inbox=inbox,
        marks=MarksService(repo, gate, oracle),
        attendance=AttendanceService(repo, gate, oracle),
        announcements=AnnouncementsService(repo, gate, oracle),
        curriculum=CurriculumService(repo, gate, oracle),
        reports=ReportsService(repo, gate, oracle),
        assignments=AssignmentsService(repo, gate, oracle),
        tests=McqTestsService(repo, gate, oracle),
        classes=ClassesService(repo, gate, oracle),
        roster=RosterService(repo, gate, oracle),
        enrollments=EnrollmentsService(repo, gate, oracle),
        admin=AdminService(repo, gate, oracle, inbox),
        profiles=ProfileService(repo, gate),
        profile=ProfilePhotoService(
            repo, gate, storage, bucket=settings.profile_bucket, max_bytes=settings.max_upload_bytes
        ),
        uploads=FileUploadService(storage, gate, max_bytes=settings.max_upload_bytes),
        student_assignments=ListStudentAssignmentsUseCase(repo, oracle),
        submit_assignment=SubmitAssignmentUseCase(
            repo, gate, storage, bucket=settings.assets_bucket, max_bytes=settings.max_upload_bytes
        ),
        student_tests=ListStudentTestsUseCase(repo, oracle),
        test_questions=GetTestQuestionsUseCase(repo, oracle),
        submit_test=SubmitTestUseCase(repo, gate),
        student_marks=StudentMarksUseCase(repo, oracle),
        student_progress=StudentProgressUseCase(repo, oracle),
    )


def get_settings() -> CampusSettings:
    global _SETTINGS
    if _SETTINGS is None:
        _SETTINGS = load_settings()
    return _SETTINGS


def get_repo() -> Any:
    global _REPO
    if _REPO is None:
        dsn = os.getenv("CAMPUSFLOW_DATABASE_URL") or get_settings().database_url
        if dsn:
            from backend.campus.repo_db import DBCampusRepo

            _REPO = DBCampusRepo(dsn)
            logger.info("Using Postgres repository")
        else:
            _REPO = InMemoryCampusRepo()
            logger.warning("No DATABASE_URL configured; using the in-memory repository")
    return _REPO


def get_storage() -> BlobStorage:
    global _STORAGE
    if _STORAGE is None:
        _STORAGE = _wire_supabase_storage(get_settings())
    return _STORAGE


def _wire_supabase_storage(settings: CampusSettings) -> BlobStorage:
    """Return a Supabase-backed adapter when configured, else NullStorage."""
    if not settings.storage_configured:
        return NullStorage()
    try:
        from supabase import create_client

        from backend.storage.supabase_adapter import SupabaseBlobStorage

        client = create_client(settings.supabase_url, settings.supabase_service_role_key)
        logger.info("Supabase storage adapter wired")
        return SupabaseBlobStorage(client)
    except Exception as exc:
        logger.warning("Supabase storage unavailable: %s", exc.__class__.__name__)
        return NullStorage()


def get_token_verifier() -> TokenVerifier:
    global _VERIFIER
    if _VERIFIER is None:
        settings = get_settings()
        cfg = TokenConfig(
            supabase_url=settings.supabase_url, jwt_secret=settings.jwt_secret, audience=settings.jwt_audience
        )
        _VERIFIER = make_verifier(cfg, JWKSCache())
    return _VERIFIER


def get_services() -> Services:
    global _SERVICES
    if _SERVICES is None:
        _SERVICES = build_services(get_repo(), get_storage(), get_settings())
    return _SERVICES


def set_repo(repo: Any) -> None:
    """Allow tests to swap the repository implementation."""
    global _REPO, _SERVICES
    _REPO = repo
    _SERVICES = None


def set_storage(storage: BlobStorage) -> None:
    """Allow tests to provide a storage adapter (e.g., fake or stub)."""
    global _STORAGE, _SERVICES
    _STORAGE = storage
    _SERVICES = None


def set_token_verifier(verifier: TokenVerifier) -> None:
    global _VERIFIER
    _VERIFIER = verifier


def set_settings(settings: Optional[CampusSettings]) -> None:
    global _SETTINGS, _SERVICES
    _SETTINGS = settings
    _SERVICES = None


def reset() -> None:
    """Drop every wired component; the next access rebuilds from the environment."""
    global _REPO, _STORAGE, _VERIFIER, _SERVICES, _SETTINGS
    _REPO = _STORAGE = _VERIFIER = _SERVICES = _SETTINGS = None


__all__ = [
    "Services",
    "build_services",
    "get_repo",
    "get_services",
    "get_settings",
    "get_storage",
    "get_token_verifier",
    "reset",
    "set_repo",
    "set_settings",
    "set_storage",
    "set_token_verifier",
]
