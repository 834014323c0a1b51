"""
In-memory CampusFlow repository for tests and offline development.

Mirrors the method surface of `DBCampusRepo` and the datastore constraints the
services rely on: unique keys raise `Conflict`, dangling references raise
`ValidationError`, and batch writes are all-or-nothing. Rows are plain dicts
with the same keys the Postgres tables expose.
"""

from __future__ import annotations

from copy import deepcopy
from datetime import datetime, timezone
from functools import wraps
from threading import RLock
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple
from uuid import uuid4

from backend.campus.errors import Conflict, ValidationError


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _new_id() -> str:
    return str(uuid4())


_PROFILE_DEFAULTS: Dict[str, Any] = {
    "first_name": None,
    "last_name": None,
    "full_name": None,
    "dob": None,
    "address": None,
    "profile_photo_url": None,
    "is_profile_complete": False,
}


def _locked(method):
    @wraps(method)
    def guarded(self, *args, **kwargs):
        with self._lock:
            return method(self, *args, **kwargs)

    return guarded


class InMemoryCampusRepo:
    def __init__(self) -> None:
        # Services reach the repo from worker threads; every public method holds
        # the lock across its checks and writes.
        self._lock = RLock()
        # auth users: user_id -> email
        self.users: Dict[str, str] = {}
        self.roles: Dict[str, str] = {}
        self.teacher_classes: set[tuple[str, str]] = set()
        self.classes: Dict[str, Dict[str, Any]] = {}
        self.students: Dict[str, Dict[str, Any]] = {}
        self.enrollments: Dict[str, Dict[str, Any]] = {}
        self.subjects: Dict[str, Dict[str, Any]] = {}
        self.exams: Dict[str, Dict[str, Any]] = {}
        self.marks: Dict[str, Dict[str, Any]] = {}
        self.attendance: Dict[str, Dict[str, Any]] = {}
        self.announcements: Dict[str, Dict[str, Any]] = {}
        self.performance_reports: Dict[str, Dict[str, Any]] = {}
        self.assignments: Dict[str, Dict[str, Any]] = {}
        self.assignment_submissions: Dict[str, Dict[str, Any]] = {}
        self.tests: Dict[str, Dict[str, Any]] = {}
        self.questions: Dict[str, Dict[str, Any]] = {}
        self.test_submissions: Dict[str, Dict[str, Any]] = {}
        self.notifications: Dict[str, Dict[str, Any]] = {}
        self.profiles: Dict[str, Dict[str, Any]] = {}
        self.role_profiles: Dict[str, Dict[str, Dict[str, Any]]] = {"student": {}, "teacher": {}}

    # --- Users & roles ---------------------------------------------------------

    @_locked
    def add_user(self, user_id: str, email: str, role: Optional[str] = None) -> None:
        self.users[user_id] = email
        if role:
            self.roles[user_id] = role

    @_locked
    def get_role(self, user_id: str) -> Optional[str]:
        return self.roles.get(user_id)

    @_locked
    def set_role(self, *, user_id: str, role: str) -> Dict[str, Any]:
        if user_id not in self.users:
            raise ValidationError("Invalid reference or value")
        self.roles[user_id] = role
        return {"user_id": user_id, "role": role}

    @_locked
    def list_users(self, *, role: Optional[str] = None) -> List[Dict[str, Any]]:
        out = []
        for uid, email in self.users.items():
            r = self.roles.get(uid)
            if role and r != role:
                continue
            out.append({"id": uid, "email": email, "role": r})
        return sorted(out, key=lambda u: u["email"])

    @_locked
    def teacher_in_class(self, teacher_id: str, class_id: str) -> bool:
        return (teacher_id, class_id) in self.teacher_classes

    @_locked
    def list_teacher_class_ids(self, teacher_id: str) -> List[str]:
        return sorted(cid for tid, cid in self.teacher_classes if tid == teacher_id)

    @_locked
    def assign_teacher(self, *, teacher_id: str, class_id: str) -> Dict[str, Any]:
        self._require(self.classes, class_id)
        if teacher_id not in self.users:
            raise ValidationError("Invalid reference or value")
        key = (teacher_id, class_id)
        if key in self.teacher_classes:
            raise Conflict("Teacher already assigned to this class")
        self.teacher_classes.add(key)
        return {"teacher_id": teacher_id, "class_id": class_id}

    @_locked
    def unassign_teacher(self, *, teacher_id: str, class_id: str) -> bool:
        key = (teacher_id, class_id)
        if key not in self.teacher_classes:
            return False
        self.teacher_classes.discard(key)
        return True

    @_locked
    def find_student_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        needle = (email or "").strip().lower()
        for row in self.students.values():
            if str(row.get("email") or "").lower() == needle:
                return dict(row)
        return None

    @_locked
    def user_ids_for_students(self, student_ids: Sequence[str]) -> Dict[str, str]:
        by_email = {email.lower(): uid for uid, email in self.users.items()}
        out: Dict[str, str] = {}
        for sid in student_ids:
            row = self.students.get(sid)
            if not row:
                continue
            uid = by_email.get(str(row.get("email") or "").lower())
            if uid:
                out[sid] = uid
        return out

    # --- Classes ---------------------------------------------------------------

    @_locked
    def create_class(self, *, name: str, created_by: Optional[str]) -> Dict[str, Any]:
        row = {"id": _new_id(), "name": name, "created_by": created_by, "created_at": _now_iso()}
        self.classes[row["id"]] = row
        return dict(row)

    @_locked
    def get_class(self, class_id: str) -> Optional[Dict[str, Any]]:
        row = self.classes.get(class_id)
        return dict(row) if row else None

    @_locked
    def list_classes(self, *, class_ids: Optional[Iterable[str]] = None) -> List[Dict[str, Any]]:
        wanted = set(class_ids) if class_ids is not None else None
        rows = [dict(c) for c in self.classes.values() if wanted is None or c["id"] in wanted]
        return sorted(rows, key=lambda c: c["name"])

    @_locked
    def delete_class(self, class_id: str) -> bool:
        if class_id not in self.classes:
            return False
        del self.classes[class_id]
        self.teacher_classes = {k for k in self.teacher_classes if k[1] != class_id}
        self.enrollments = {k: v for k, v in self.enrollments.items() if v["class_id"] != class_id}
        return True

    # --- Roster ----------------------------------------------------------------

    @_locked
    def create_student(self, *, name: str, email: str, created_by: Optional[str]) -> Dict[str, Any]:
        if self.find_student_by_email(email):
            raise Conflict("A student with this email already exists")
        row = {"id": _new_id(), "name": name, "email": email, "created_by": created_by, "created_at": _now_iso()}
        self.students[row["id"]] = row
        return dict(row)

    @_locked
    def get_student(self, student_id: str) -> Optional[Dict[str, Any]]:
        row = self.students.get(student_id)
        return dict(row) if row else None

    @_locked
    def list_students(
        self, *, offset: int, limit: int, student_ids: Optional[Iterable[str]] = None
    ) -> Tuple[List[Dict[str, Any]], int]:
        wanted = set(student_ids) if student_ids is not None else None
        rows = sorted(
            (dict(s) for s in self.students.values() if wanted is None or s["id"] in wanted),
            key=lambda s: s["name"],
        )
        return rows[offset: offset + limit], len(rows)

    @_locked
    def update_student(self, student_id: str, *, fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        row = self.students.get(student_id)
        if not row:
            return None
        email = fields.get("email")
        if email:
            other = self.find_student_by_email(email)
            if other and other["id"] != student_id:
                raise Conflict("A student with this email already exists")
        row.update({k: v for k, v in fields.items() if v is not None})
        return dict(row)

    @_locked
    def delete_student(self, student_id: str) -> bool:
        if student_id not in self.students:
            return False
        del self.students[student_id]
        self.enrollments = {k: v for k, v in self.enrollments.items() if v["student_id"] != student_id}
        return True

    # --- Enrollments -----------------------------------------------------------

    @_locked
    def create_enrollment(self, *, student_id: str, class_id: str) -> Dict[str, Any]:
        self._require(self.students, student_id)
        self._require(self.classes, class_id)
        if self.is_enrolled(student_id, class_id):
            raise Conflict("Student already enrolled in this class")
        row = {"id": _new_id(), "student_id": student_id, "class_id": class_id, "enrolled_at": _now_iso()}
        self.enrollments[row["id"]] = row
        return dict(row)

    @_locked
    def delete_enrollment(self, *, student_id: str, class_id: str) -> bool:
        for key, row in list(self.enrollments.items()):
            if row["student_id"] == student_id and row["class_id"] == class_id:
                del self.enrollments[key]
                return True
        return False

    @_locked
    def is_enrolled(self, student_id: str, class_id: str) -> bool:
        return any(
            e["student_id"] == student_id and e["class_id"] == class_id for e in self.enrollments.values()
        )

    @_locked
    def list_enrollments_for_class(self, class_id: str, *, offset: int, limit: int) -> Tuple[List[Dict[str, Any]], int]:
        rows = []
        for e in self.enrollments.values():
            if e["class_id"] != class_id:
                continue
            student = self.students.get(e["student_id"]) or {}
            rows.append({**e, "student_name": student.get("name"), "student_email": student.get("email")})
        rows.sort(key=lambda r: r["enrolled_at"])
        return rows[offset: offset + limit], len(rows)

    @_locked
    def list_enrollments_for_student(self, student_id: str) -> List[Dict[str, Any]]:
        rows = []
        for e in self.enrollments.values():
            if e["student_id"] != student_id:
                continue
            klass = self.classes.get(e["class_id"]) or {}
            rows.append({**e, "class_name": klass.get("name")})
        return sorted(rows, key=lambda r: r["enrolled_at"])

    @_locked
    def list_enrolled_student_ids(self, class_id: str) -> List[str]:
        return sorted({e["student_id"] for e in self.enrollments.values() if e["class_id"] == class_id})

    @_locked
    def list_class_ids_for_student(self, student_id: str) -> List[str]:
        return sorted({e["class_id"] for e in self.enrollments.values() if e["student_id"] == student_id})

    @_locked
    def count_distinct_students(self, class_ids: Sequence[str]) -> int:
        wanted = set(class_ids)
        return len({e["student_id"] for e in self.enrollments.values() if e["class_id"] in wanted})

    # --- Subjects & exams ------------------------------------------------------

    @_locked
    def create_subject(self, *, class_id: str, name: str) -> Dict[str, Any]:
        self._require(self.classes, class_id)
        row = {"id": _new_id(), "class_id": class_id, "name": name, "created_at": _now_iso()}
        self.subjects[row["id"]] = row
        return dict(row)

    @_locked
    def get_subject(self, subject_id: str) -> Optional[Dict[str, Any]]:
        row = self.subjects.get(subject_id)
        return dict(row) if row else None

    @_locked
    def list_subjects(self, class_id: str) -> List[Dict[str, Any]]:
        return sorted((dict(s) for s in self.subjects.values() if s["class_id"] == class_id), key=lambda s: s["name"])

    @_locked
    def create_exam(self, *, class_id: str, name: str, max_marks: int) -> Dict[str, Any]:
        self._require(self.classes, class_id)
        row = {"id": _new_id(), "class_id": class_id, "name": name, "max_marks": max_marks, "created_at": _now_iso()}
        self.exams[row["id"]] = row
        return dict(row)

    @_locked
    def get_exam(self, exam_id: str) -> Optional[Dict[str, Any]]:
        row = self.exams.get(exam_id)
        return dict(row) if row else None

    @_locked
    def list_exams(self, class_id: str) -> List[Dict[str, Any]]:
        return sorted((dict(e) for e in self.exams.values() if e["class_id"] == class_id), key=lambda e: e["created_at"])

    # --- Marks -----------------------------------------------------------------

    @_locked
    def insert_marks(self, rows: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
        taken = {(m["student_id"], m["exam_id"], m["subject_id"]) for m in self.marks.values()}
        staged: List[Dict[str, Any]] = []
        for r in rows:
            self._require(self.students, r["student_id"])
            self._require(self.exams, r["exam_id"])
            self._require(self.subjects, r["subject_id"])
            key = (r["student_id"], r["exam_id"], r["subject_id"])
            if key in taken:
                raise Conflict("Mark already exists for this student-subject-exam combination")
            taken.add(key)
            staged.append({"id": _new_id(), **r, "created_at": _now_iso()})
        for row in staged:
            self.marks[row["id"]] = row
        return [dict(r) for r in staged]

    @_locked
    def get_mark(self, mark_id: str) -> Optional[Dict[str, Any]]:
        row = self.marks.get(mark_id)
        return dict(row) if row else None

    @_locked
    def update_mark(self, mark_id: str, *, marks_obtained: int) -> Optional[Dict[str, Any]]:
        row = self.marks.get(mark_id)
        if not row:
            return None
        row["marks_obtained"] = marks_obtained
        row["updated_at"] = _now_iso()
        return dict(row)

    @_locked
    def list_marks(
        self,
        *,
        student_id: Optional[str] = None,
        class_id: Optional[str] = None,
        exam_id: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        out = []
        for m in self.marks.values():
            subject = self.subjects.get(m["subject_id"]) or {}
            exam = self.exams.get(m["exam_id"]) or {}
            if student_id and m["student_id"] != student_id:
                continue
            if class_id and subject.get("class_id") != class_id:
                continue
            if exam_id and m["exam_id"] != exam_id:
                continue
            student = self.students.get(m["student_id"]) or {}
            out.append(
                {
                    **m,
                    "subject_name": subject.get("name"),
                    "exam_name": exam.get("name"),
                    "max_marks": exam.get("max_marks"),
                    "class_id": subject.get("class_id"),
                    "student_name": student.get("name"),
                }
            )
        return sorted(out, key=lambda r: r["created_at"], reverse=True)

    # --- Attendance ------------------------------------------------------------

    @_locked
    def upsert_attendance(self, rows: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
        for r in rows:
            self._require(self.students, r["student_id"])
            self._require(self.classes, r["class_id"])
        out = []
        for r in rows:
            existing = next(
                (
                    a
                    for a in self.attendance.values()
                    if (a["class_id"], a["student_id"], a["date"]) == (r["class_id"], r["student_id"], r["date"])
                ),
                None,
            )
            if existing:
                existing.update({"status": r["status"], "marked_by": r["marked_by"]})
                out.append(dict(existing))
            else:
                row = {"id": _new_id(), **r, "created_at": _now_iso()}
                self.attendance[row["id"]] = row
                out.append(dict(row))
        return out

    @_locked
    def list_attendance(
        self,
        *,
        class_id: Optional[str] = None,
        student_id: Optional[str] = None,
        date: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        rows = [
            dict(a)
            for a in self.attendance.values()
            if (class_id is None or a["class_id"] == class_id)
            and (student_id is None or a["student_id"] == student_id)
            and (date is None or a["date"] == date)
        ]
        return sorted(rows, key=lambda a: a["date"], reverse=True)

    # --- Announcements & reports ----------------------------------------------

    @_locked
    def create_announcement(self, *, class_id: str, title: str, body: str, created_by: str) -> Dict[str, Any]:
        self._require(self.classes, class_id)
        row = {
            "id": _new_id(),
            "class_id": class_id,
            "title": title,
            "body": body,
            "created_by": created_by,
            "created_at": _now_iso(),
        }
        self.announcements[row["id"]] = row
        return dict(row)

    @_locked
    def list_announcements(self, class_ids: Iterable[str]) -> List[Dict[str, Any]]:
        wanted = set(class_ids)
        rows = [dict(a) for a in self.announcements.values() if a["class_id"] in wanted]
        return sorted(rows, key=lambda a: a["created_at"], reverse=True)

    @_locked
    def create_performance_report(self, row: Dict[str, Any]) -> Dict[str, Any]:
        self._require(self.students, row["student_id"])
        self._require(self.classes, row["class_id"])
        stored = {"id": _new_id(), **row, "created_at": _now_iso()}
        self.performance_reports[stored["id"]] = stored
        return dict(stored)

    @_locked
    def list_performance_reports(self, student_id: str) -> List[Dict[str, Any]]:
        rows = [dict(r) for r in self.performance_reports.values() if r["student_id"] == student_id]
        return sorted(rows, key=lambda r: r["created_at"], reverse=True)

    # --- Assignments -----------------------------------------------------------

    @_locked
    def create_assignment(self, row: Dict[str, Any]) -> Dict[str, Any]:
        self._require(self.classes, row["class_id"])
        stored = {"id": _new_id(), **row, "created_at": _now_iso()}
        self.assignments[stored["id"]] = stored
        return dict(stored)

    @_locked
    def get_assignment(self, assignment_id: str) -> Optional[Dict[str, Any]]:
        row = self.assignments.get(assignment_id)
        return dict(row) if row else None

    @_locked
    def list_assignments(
        self, *, created_by: Optional[str] = None, class_ids: Optional[Iterable[str]] = None
    ) -> List[Dict[str, Any]]:
        wanted = set(class_ids) if class_ids is not None else None
        rows = [
            dict(a)
            for a in self.assignments.values()
            if (created_by is None or a["created_by"] == created_by) and (wanted is None or a["class_id"] in wanted)
        ]
        return sorted(rows, key=lambda a: str(a["deadline"]))

    @_locked
    def upsert_assignment_submission(self, row: Dict[str, Any]) -> Dict[str, Any]:
        self._require(self.assignments, row["assignment_id"])
        self._require(self.students, row["student_id"])
        for existing in self.assignment_submissions.values():
            if (existing["assignment_id"], existing["student_id"]) == (row["assignment_id"], row["student_id"]):
                existing.update(row)
                return dict(existing)
        stored = {"id": _new_id(), "marks": None, "feedback": None, **row}
        self.assignment_submissions[stored["id"]] = stored
        return dict(stored)

    @_locked
    def list_assignment_submissions(
        self, *, assignment_id: Optional[str] = None, student_id: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        out = []
        for s in self.assignment_submissions.values():
            if assignment_id and s["assignment_id"] != assignment_id:
                continue
            if student_id and s["student_id"] != student_id:
                continue
            student = self.students.get(s["student_id"]) or {}
            out.append({**s, "student_name": student.get("name"), "student_email": student.get("email")})
        return sorted(out, key=lambda s: s["submitted_at"], reverse=True)

    # --- MCQ tests -------------------------------------------------------------

    @_locked
    def create_test(self, row: Dict[str, Any]) -> Dict[str, Any]:
        self._require(self.classes, row["class_id"])
        stored = {"id": _new_id(), **row, "created_at": _now_iso()}
        self.tests[stored["id"]] = stored
        return dict(stored)

    @_locked
    def get_test(self, test_id: str) -> Optional[Dict[str, Any]]:
        row = self.tests.get(test_id)
        return dict(row) if row else None

    @_locked
    def list_tests(
        self, *, created_by: Optional[str] = None, class_ids: Optional[Iterable[str]] = None
    ) -> List[Dict[str, Any]]:
        wanted = set(class_ids) if class_ids is not None else None
        rows = [
            dict(t)
            for t in self.tests.values()
            if (created_by is None or t["created_by"] == created_by) and (wanted is None or t["class_id"] in wanted)
        ]
        return sorted(rows, key=lambda t: str(t["start_date"]))

    @_locked
    def insert_questions(self, rows: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
        for r in rows:
            self._require(self.tests, r["test_id"])
        staged = [{"id": _new_id(), **deepcopy(r), "created_at": _now_iso()} for r in rows]
        for row in staged:
            self.questions[row["id"]] = row
        return deepcopy(staged)

    @_locked
    def list_questions(self, test_id: str) -> List[Dict[str, Any]]:
        rows = [deepcopy(q) for q in self.questions.values() if q["test_id"] == test_id]
        return sorted(rows, key=lambda q: q["created_at"])

    @_locked
    def get_test_submission(self, test_id: str, student_id: str) -> Optional[Dict[str, Any]]:
        for s in self.test_submissions.values():
            if s["test_id"] == test_id and s["student_id"] == student_id:
                return deepcopy(s)
        return None

    @_locked
    def insert_test_submission(self, row: Dict[str, Any]) -> Dict[str, Any]:
        self._require(self.tests, row["test_id"])
        self._require(self.students, row["student_id"])
        if self.get_test_submission(row["test_id"], row["student_id"]):
            raise Conflict("You have already submitted this test")
        stored = {"id": _new_id(), **deepcopy(row)}
        self.test_submissions[stored["id"]] = stored
        return deepcopy(stored)

    @_locked
    def list_test_submissions(
        self, *, test_id: Optional[str] = None, student_id: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        out = []
        for s in self.test_submissions.values():
            if test_id and s["test_id"] != test_id:
                continue
            if student_id and s["student_id"] != student_id:
                continue
            student = self.students.get(s["student_id"]) or {}
            out.append({**deepcopy(s), "student_name": student.get("name"), "student_email": student.get("email")})
        return sorted(out, key=lambda s: s.get("score") or 0, reverse=True)

    # --- Notifications ---------------------------------------------------------

    @_locked
    def insert_notifications(self, rows: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
        staged = [
            {"id": _new_id(), "is_read": False, "link": None, **r, "created_at": _now_iso()} for r in rows
        ]
        for row in staged:
            self.notifications[row["id"]] = row
        return [dict(r) for r in staged]

    @_locked
    def list_notifications(self, user_id: str, *, limit: int) -> List[Dict[str, Any]]:
        rows = [dict(n) for n in self.notifications.values() if n["user_id"] == user_id]
        rows.sort(key=lambda n: n["created_at"], reverse=True)
        return rows[:limit]

    @_locked
    def count_unread_notifications(self, user_id: str) -> int:
        return sum(1 for n in self.notifications.values() if n["user_id"] == user_id and not n["is_read"])

    @_locked
    def mark_notification_read(self, notification_id: str, *, user_id: str) -> Optional[Dict[str, Any]]:
        row = self.notifications.get(notification_id)
        if not row or row["user_id"] != user_id:
            return None
        row["is_read"] = True
        return dict(row)

    @_locked
    def mark_all_notifications_read(self, user_id: str) -> int:
        count = 0
        for n in self.notifications.values():
            if n["user_id"] == user_id and not n["is_read"]:
                n["is_read"] = True
                count += 1
        return count

    # --- Profiles --------------------------------------------------------------

    @_locked
    def set_profile_photo(self, *, user_id: str, photo_url: Optional[str]) -> Dict[str, Any]:
        row = self.profiles.setdefault(user_id, {"user_id": user_id})
        row["profile_photo_url"] = photo_url
        row["updated_at"] = _now_iso()
        return dict(row)

    @_locked
    def get_profile(self, user_id: str) -> Optional[Dict[str, Any]]:
        row = self.profiles.get(user_id)
        return {**_PROFILE_DEFAULTS, **row} if row else None

    @_locked
    def get_role_profile(self, user_id: str, *, role: str) -> Optional[Dict[str, Any]]:
        row = self.role_profiles[role].get(user_id)
        return deepcopy(row) if row else None

    @_locked
    def save_profile(
        self, *, user_id: str, role: str, base: Dict[str, Any], details: Dict[str, Any], complete: bool = False
    ) -> Dict[str, Any]:
        """Upsert the common row and the role row together; unmentioned columns keep their value."""
        if details.get("class_id"):
            self._require(self.classes, details["class_id"])
        now = _now_iso()
        row = self.profiles.setdefault(user_id, {"user_id": user_id})
        row.update(deepcopy(base), updated_at=now)
        if complete:
            row["is_profile_complete"] = True
        detail = self.role_profiles[role].setdefault(user_id, {"user_id": user_id})
        detail.update(deepcopy(details), updated_at=now)
        return {**_PROFILE_DEFAULTS, **row, "details": deepcopy(detail)}

    # --- Helpers ---------------------------------------------------------------

    @staticmethod
    def _require(table: Dict[str, Any], key: str) -> None:
        if key not in table:
            raise ValidationError("Invalid reference or value")


__all__ = ["InMemoryCampusRepo"]
