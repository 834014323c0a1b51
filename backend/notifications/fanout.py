"""
Best-effort notification fanout.

Builds one notification row per recipient of an audience and inserts them in a
single batch. Fanout runs only after the triggering mutation has been
persisted, and it never raises: every failure is logged and reported through
`FanoutResult.error`, which the caller is free to discard.

Audiences are resolved when `fanout` is called, not when the mutation request
arrived. `EnrolledStudents` re-reads the class enrollment at that moment.

Roster students are linked to auth accounts by email. Roster rows without a
matching account cannot receive notifications and are skipped.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple, Union

logger = logging.getLogger("campusflow.notifications")


class NotificationType(str, Enum):
    INFO = "info"
    WARNING = "warning"
    SUCCESS = "success"
    ERROR = "error"
    ASSIGNMENT = "assignment"
    TEST = "test"
    ANNOUNCEMENT = "announcement"


@dataclass(frozen=True)
class Notice:
    title: str
    message: str
    type: NotificationType = NotificationType.INFO
    link: Optional[str] = None


@dataclass(frozen=True)
class SingleUser:
    user_id: str
    kind: str = "single_user"


@dataclass(frozen=True)
class RosterStudents:
    student_ids: Tuple[str, ...]
    kind: str = "roster_students"


@dataclass(frozen=True)
class EnrolledStudents:
    class_id: str
    kind: str = "enrolled_students"


Audience = Union[SingleUser, RosterStudents, EnrolledStudents]


@dataclass(frozen=True)
class FanoutResult:
    recipients: int
    delivered: int
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class FanoutRepo(Protocol):
    def list_enrolled_student_ids(self, class_id: str) -> List[str]: ...

    def user_ids_for_students(self, student_ids: Sequence[str]) -> Dict[str, str]: ...

    def insert_notifications(self, rows: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]: ...


class NotificationFanout:
    def __init__(self, repo: FanoutRepo) -> None:
        self._repo = repo

    def resolve(self, audience: Audience) -> List[str]:
        """Return distinct recipient user ids for `audience`, in stable order."""
        if isinstance(audience, SingleUser):
            return [audience.user_id] if audience.user_id else []
        if isinstance(audience, EnrolledStudents):
            student_ids: Sequence[str] = self._repo.list_enrolled_student_ids(audience.class_id)
        else:
            student_ids = audience.student_ids
        if not student_ids:
            return []
        accounts = self._repo.user_ids_for_students(list(dict.fromkeys(student_ids)))
        missing = [sid for sid in student_ids if sid not in accounts]
        if missing:
            logger.info("Fanout skipped %d roster student(s) without an account", len(set(missing)))
        return list(dict.fromkeys(accounts[sid] for sid in student_ids if sid in accounts))

    def fanout(self, audience: Audience, notice: Notice) -> FanoutResult:
        try:
            recipients = self.resolve(audience)
            if not recipients:
                return FanoutResult(recipients=0, delivered=0)
            rows = [
                {
                    "user_id": uid,
                    "title": notice.title,
                    "message": notice.message,
                    "type": notice.type.value,
                    "link": notice.link,
                }
                for uid in recipients
            ]
            inserted = self._repo.insert_notifications(rows)
            return FanoutResult(recipients=len(recipients), delivered=len(inserted))
        except Exception as exc:
            logger.warning(
                "Notification fanout failed: audience=%s type=%s error=%s",
                audience.kind,
                notice.type.value,
                exc.__class__.__name__,
            )
            return FanoutResult(recipients=0, delivered=0, error=exc.__class__.__name__)


__all__ = [
    "Audience",
    "EnrolledStudents",
    "FanoutResult",
    "Notice",
    "NotificationFanout",
    "NotificationType",
    "RosterStudents",
    "SingleUser",
]
