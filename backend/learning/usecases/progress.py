from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol

from backend.campus.scoping import require_role
from backend.identity_access.domain import Principal, Role
from backend.identity_access.oracle import RoleOwnershipOracle
from backend.teaching.services.attendance import summarize
from backend.teaching.services.reports import average, mark_percentages


class StudentProgressRepoProtocol(Protocol):
    def list_marks(self, *, student_id: Optional[str] = None, class_id: Optional[str] = None, exam_id=None) -> List[dict]: ...

    def list_attendance(self, *, class_id: Optional[str] = None, student_id: Optional[str] = None, date=None) -> List[dict]: ...


def marks_comment(avg: float) -> str:
    if avg >= 90:
        return "Excellent"
    if avg >= 75:
        return "Good"
    if avg >= 60:
        return "Average"
    return "Needs Improvement"


def attendance_comment(pct: float) -> str:
    if pct >= 90:
        return "Excellent Attendance"
    if pct >= 75:
        return "Good, Keep Improving"
    if pct >= 60:
        return "Warning Zone"
    return "Critical, Improve Immediately"


def standing(score: float) -> str:
    if score >= 85:
        return "Excellent"
    if score >= 70:
        return "Good"
    if score >= 50:
        return "Average"
    return "Needs Improvement"


@dataclass
class StudentProgressInput:
    principal: Principal


class StudentMarksUseCase:
    """The caller's marks (newest first) with an average percentage and a comment."""

    def __init__(self, repo: StudentProgressRepoProtocol, oracle: RoleOwnershipOracle) -> None:
        self._repo = repo
        self._oracle = oracle

    def execute(self, req: StudentProgressInput) -> Dict[str, Any]:
        require_role(req.principal, (Role.STUDENT,), "Access denied. Student role required.")
        student_id = self._oracle.resolve_student_identity(req.principal)
        marks = self._repo.list_marks(student_id=student_id)
        avg = average(mark_percentages(marks))
        return {
            "marks": marks,
            "summary": {"total": len(marks), "average": avg, "comment": marks_comment(avg)},
        }


class StudentProgressUseCase:
    """Combined standing across all classes.

    Why:
        Students see one headline number on their dashboard. It weights the
        average mark percentage at 60% and attendance at 40%.

    Permissions:
        Students only; the roster row is found through the caller's email.
    """

    def __init__(self, repo: StudentProgressRepoProtocol, oracle: RoleOwnershipOracle) -> None:
        self._repo = repo
        self._oracle = oracle

    def execute(self, req: StudentProgressInput) -> Dict[str, Any]:
        require_role(req.principal, (Role.STUDENT,), "Access denied. Student role required.")
        student_id = self._oracle.resolve_student_identity(req.principal)
        marks = self._repo.list_marks(student_id=student_id)
        attendance = summarize(self._repo.list_attendance(student_id=student_id))
        avg = average(mark_percentages(marks))
        pct = attendance["percentage"]
        score = round(avg * 0.6 + pct * 0.4, 2)
        return {
            "avgMarks": avg,
            "attendancePct": pct,
            "attendanceComment": attendance_comment(pct),
            "combinedScore": score,
            "standing": standing(score),
            "totalExams": len(marks),
            "totalClassDays": attendance["total"],
        }


__all__ = [
    "StudentMarksUseCase",
    "StudentProgressInput",
    "StudentProgressUseCase",
    "attendance_comment",
    "marks_comment",
    "standing",
]
