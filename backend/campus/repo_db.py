"""
Postgres-backed repository for CampusFlow (Supabase database).

Security:
- Authorization is decided by the services before any write reaches this
  module; the DSN is expected to be the backend's service connection.
- All statements are parameterized. Identifiers are never interpolated from
  user input.

Design:
- Each call opens a short-lived psycopg3 connection; the connection context
  commits on success and rolls back on error, so every method is one
  transaction.
- Batch writes use a single `insert ... select from unnest(...)` statement:
  the whole batch commits or none of it does.
- Rows come back as plain dicts (ids as text, timestamps as UTC ISO strings)
  with the same keys `InMemoryCampusRepo` produces.
- Driver errors are translated into the CampusError taxonomy by SQLSTATE.
"""
from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple
import os

import psycopg
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from backend.campus.errors import Unexpected, translate_db_error


def _dsn() -> str:
    candidates = [
        os.getenv("CAMPUSFLOW_DATABASE_URL"),
        os.getenv("DATABASE_URL"),
        os.getenv("SUPABASE_DB_URL"),
    ]
    for dsn in candidates:
        if dsn:
            return dsn
    raise RuntimeError("Database DSN unavailable for DBCampusRepo")


def _returned(row: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """A write with `returning` must yield its row."""
    if row is None:
        raise Unexpected()
    return row


def _ts(column: str, alias: Optional[str] = None) -> str:
    name = alias or column.split(".")[-1]
    return (
        f"case when {column} is null then null else "
        f"to_char({column} at time zone 'utc', 'YYYY-MM-DD\"T\"HH24:MI:SS\"+00:00\"') end as {name}"
    )


_CLASS_COLUMNS = f"id::text as id, name, created_by::text as created_by, {_ts('created_at')}"
_STUDENT_COLUMNS = f"id::text as id, name, email, created_by::text as created_by, {_ts('created_at')}"
_SUBJECT_COLUMNS = f"id::text as id, class_id::text as class_id, name, {_ts('created_at')}"
_EXAM_COLUMNS = f"id::text as id, class_id::text as class_id, name, max_marks, {_ts('created_at')}"
_MARK_COLUMNS = (
    "m.id::text as id, m.student_id::text as student_id, m.exam_id::text as exam_id, "
    "m.subject_id::text as subject_id, m.marks_obtained, m.uploaded_by::text as uploaded_by, "
    f"{_ts('m.created_at')}"
)
_ATTENDANCE_COLUMNS = (
    "id::text as id, class_id::text as class_id, student_id::text as student_id, "
    "date::text as date, status, marked_by::text as marked_by"
)
_ANNOUNCEMENT_COLUMNS = (
    "id::text as id, class_id::text as class_id, title, body, created_by::text as created_by, "
    f"{_ts('created_at')}"
)
_REPORT_COLUMNS = (
    "id::text as id, student_id::text as student_id, class_id::text as class_id, period, "
    "avg_marks::float as avg_marks, attendance_pct::float as attendance_pct, total_exams, "
    "total_present, total_absent, remarks, created_by::text as created_by, "
    f"{_ts('created_at')}"
)
_ASSIGNMENT_COLUMNS = (
    "id::text as id, title, description, class_id::text as class_id, "
    f"{_ts('deadline')}, created_by::text as created_by, {_ts('created_at')}"
)
_SUBMISSION_COLUMNS = (
    "s.id::text as id, s.assignment_id::text as assignment_id, s.student_id::text as student_id, "
    f"s.file_url, {_ts('s.submitted_at')}, s.status, s.marks, s.feedback"
)
_TEST_COLUMNS = (
    "id::text as id, title, class_id::text as class_id, duration, "
    f"{_ts('start_date')}, {_ts('end_date')}, created_by::text as created_by, {_ts('created_at')}"
)
_QUESTION_COLUMNS = (
    "id::text as id, test_id::text as test_id, question, options, correct_answer, "
    f"{_ts('created_at')}"
)
_TEST_SUBMISSION_COLUMNS = (
    "s.id::text as id, s.test_id::text as test_id, s.student_id::text as student_id, "
    f"s.answers, s.score, {_ts('s.submitted_at')}"
)
_NOTIFICATION_COLUMNS = (
    "id::text as id, user_id::text as user_id, title, message, type, is_read, link, "
    f"{_ts('created_at')}"
)

_PROFILE_FIELDS = ("first_name", "last_name", "full_name", "dob", "address", "is_profile_complete")
_PROFILE_COLUMNS = (
    "user_id::text as user_id, first_name, last_name, full_name, dob::text as dob, address, "
    f"profile_photo_url, coalesce(is_profile_complete, false) as is_profile_complete, {_ts('updated_at')}"
)
# role -> (table, returned columns, writable columns)
_ROLE_PROFILE_TABLES = {
    "student": (
        "student_profiles",
        "user_id::text as user_id, branch, degree, registration_number, roll_no, "
        f"class_id::text as class_id, admission_year, {_ts('updated_at')}",
        ("branch", "degree", "registration_number", "roll_no", "class_id", "admission_year"),
    ),
    "teacher": (
        "teacher_profiles",
        f"user_id::text as user_id, department, qualification, experience_years, subjects_taught, {_ts('updated_at')}",
        ("department", "qualification", "experience_years", "subjects_taught"),
    ),
}


def _upsert_sql(table: str, user_id: str, fields: Dict[str, Any], returning: str) -> Tuple[str, Tuple[Any, ...]]:
    """Insert-or-update keyed by user_id; only the given columns are written.

    Column names come from the fixed whitelists above, never from the client.
    """
    names = list(fields)
    placeholders = "".join(", %s::uuid" if name == "class_id" else ", %s" for name in names)
    updates = "".join(f"{name} = excluded.{name}, " for name in names)
    sql = (
        f"insert into public.{table} (user_id{''.join(', ' + n for n in names)}) values (%s::uuid{placeholders}) "
        f"on conflict (user_id) do update set {updates}updated_at = now() "
        f"returning {returning}"
    )
    return sql, (user_id, *fields.values())


class DBCampusRepo:
    def __init__(self, dsn: Optional[str] = None) -> None:
        self._dsn = dsn or _dsn()

    # --- Plumbing ----------------------------------------------------------------

    @contextmanager
    def _cursor(self, *, conflict_message: Optional[str] = None) -> Iterator[Any]:
        try:
            with psycopg.connect(self._dsn) as conn:
                with conn.cursor(row_factory=dict_row) as cur:
                    yield cur
        except psycopg.Error as exc:
            raise translate_db_error(exc, conflict_message=conflict_message) from exc

    def _one(self, sql: str, params: Sequence[Any] = (), **kw: Any) -> Optional[Dict[str, Any]]:
        with self._cursor(**kw) as cur:
            cur.execute(sql, params)
            row = cur.fetchone()
        return dict(row) if row else None

    def _all(self, sql: str, params: Sequence[Any] = (), **kw: Any) -> List[Dict[str, Any]]:
        with self._cursor(**kw) as cur:
            cur.execute(sql, params)
            rows = cur.fetchall()
        return [dict(r) for r in rows or []]

    def _rowcount(self, sql: str, params: Sequence[Any] = ()) -> int:
        with self._cursor() as cur:
            cur.execute(sql, params)
            return int(cur.rowcount or 0)

    def _paged(self, sql: str, count_sql: str, params: Sequence[Any], offset: int, limit: int) -> Tuple[List[Dict[str, Any]], int]:
        with self._cursor() as cur:
            cur.execute(count_sql, params)
            total_row = cur.fetchone() or {"total": 0}
            cur.execute(sql + " offset %s limit %s", (*params, int(offset), int(limit)))
            rows = cur.fetchall()
        return [dict(r) for r in rows or []], int(total_row["total"])

    # --- Users & roles ---------------------------------------------------------

    def get_role(self, user_id: str) -> Optional[str]:
        row = self._one("select role from public.roles where user_id = %s::uuid", (user_id,))
        return row["role"] if row else None

    def set_role(self, *, user_id: str, role: str) -> Dict[str, Any]:
        row = self._one(
            """
            insert into public.roles (user_id, role) values (%s::uuid, %s)
            on conflict (user_id) do update set role = excluded.role
            returning user_id::text as user_id, role
            """,
            (user_id, role),
        )
        return _returned(row)

    def list_users(self, *, role: Optional[str] = None) -> List[Dict[str, Any]]:
        sql = (
            "select u.id::text as id, u.email, r.role from auth.users u "
            "left join public.roles r on r.user_id = u.id"
        )
        params: Tuple[Any, ...] = ()
        if role:
            sql += " where r.role = %s"
            params = (role,)
        return self._all(sql + " order by u.email", params)

    def teacher_in_class(self, teacher_id: str, class_id: str) -> bool:
        row = self._one(
            "select 1 as ok from public.teacher_classes where teacher_id = %s::uuid and class_id = %s::uuid",
            (teacher_id, class_id),
        )
        return row is not None

    def list_teacher_class_ids(self, teacher_id: str) -> List[str]:
        rows = self._all(
            "select class_id::text as class_id from public.teacher_classes where teacher_id = %s::uuid order by class_id",
            (teacher_id,),
        )
        return [r["class_id"] for r in rows]

    def assign_teacher(self, *, teacher_id: str, class_id: str) -> Dict[str, Any]:
        row = self._one(
            """
            insert into public.teacher_classes (teacher_id, class_id) values (%s::uuid, %s::uuid)
            returning teacher_id::text as teacher_id, class_id::text as class_id
            """,
            (teacher_id, class_id),
            conflict_message="Teacher already assigned to this class",
        )
        return _returned(row)

    def unassign_teacher(self, *, teacher_id: str, class_id: str) -> bool:
        return self._rowcount(
            "delete from public.teacher_classes where teacher_id = %s::uuid and class_id = %s::uuid",
            (teacher_id, class_id),
        ) > 0

    def find_student_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        return self._one(
            f"select {_STUDENT_COLUMNS} from public.students where lower(email) = lower(%s) limit 1",
            ((email or "").strip(),),
        )

    def user_ids_for_students(self, student_ids: Sequence[str]) -> Dict[str, str]:
        if not student_ids:
            return {}
        rows = self._all(
            """
            select s.id::text as student_id, u.id::text as user_id
              from public.students s
              join auth.users u on lower(u.email) = lower(s.email)
             where s.id = any(%s::uuid[])
            """,
            (list(student_ids),),
        )
        return {r["student_id"]: r["user_id"] for r in rows}

    # --- Classes ---------------------------------------------------------------

    def create_class(self, *, name: str, created_by: Optional[str]) -> Dict[str, Any]:
        row = self._one(
            f"insert into public.classes (name, created_by) values (%s, %s::uuid) returning {_CLASS_COLUMNS}",
            (name, created_by),
            conflict_message="A class with this name already exists",
        )
        return _returned(row)

    def get_class(self, class_id: str) -> Optional[Dict[str, Any]]:
        return self._one(f"select {_CLASS_COLUMNS} from public.classes where id = %s::uuid", (class_id,))

    def list_classes(self, *, class_ids: Optional[Iterable[str]] = None) -> List[Dict[str, Any]]:
        if class_ids is None:
            return self._all(f"select {_CLASS_COLUMNS} from public.classes order by name")
        return self._all(
            f"select {_CLASS_COLUMNS} from public.classes where id = any(%s::uuid[]) order by name",
            (list(class_ids),),
        )

    def delete_class(self, class_id: str) -> bool:
        return self._rowcount("delete from public.classes where id = %s::uuid", (class_id,)) > 0

    # --- Roster ----------------------------------------------------------------

    def create_student(self, *, name: str, email: str, created_by: Optional[str]) -> Dict[str, Any]:
        row = self._one(
            f"insert into public.students (name, email, created_by) values (%s, %s, %s::uuid) returning {_STUDENT_COLUMNS}",
            (name, email, created_by),
            conflict_message="A student with this email already exists",
        )
        return _returned(row)

    def get_student(self, student_id: str) -> Optional[Dict[str, Any]]:
        return self._one(f"select {_STUDENT_COLUMNS} from public.students where id = %s::uuid", (student_id,))

    def list_students(
        self, *, offset: int, limit: int, student_ids: Optional[Iterable[str]] = None
    ) -> Tuple[List[Dict[str, Any]], int]:
        where = ""
        params: Tuple[Any, ...] = ()
        if student_ids is not None:
            where = " where id = any(%s::uuid[])"
            params = (list(student_ids),)
        return self._paged(
            f"select {_STUDENT_COLUMNS} from public.students{where} order by name",
            f"select count(*) as total from public.students{where}",
            params,
            offset,
            limit,
        )

    def update_student(self, student_id: str, *, fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return self._one(
            f"""
            update public.students
               set name = coalesce(%s, name), email = coalesce(%s, email)
             where id = %s::uuid
            returning {_STUDENT_COLUMNS}
            """,
            (fields.get("name"), fields.get("email"), student_id),
            conflict_message="A student with this email already exists",
        )

    def delete_student(self, student_id: str) -> bool:
        return self._rowcount("delete from public.students where id = %s::uuid", (student_id,)) > 0

    # --- Enrollments -----------------------------------------------------------

    def create_enrollment(self, *, student_id: str, class_id: str) -> Dict[str, Any]:
        row = self._one(
            f"""
            insert into public.enrollments (student_id, class_id) values (%s::uuid, %s::uuid)
            returning id::text as id, student_id::text as student_id, class_id::text as class_id,
                      {_ts('enrolled_at')}
            """,
            (student_id, class_id),
            conflict_message="Student already enrolled in this class",
        )
        return _returned(row)

    def delete_enrollment(self, *, student_id: str, class_id: str) -> bool:
        return self._rowcount(
            "delete from public.enrollments where student_id = %s::uuid and class_id = %s::uuid",
            (student_id, class_id),
        ) > 0

    def is_enrolled(self, student_id: str, class_id: str) -> bool:
        row = self._one(
            "select 1 as ok from public.enrollments where student_id = %s::uuid and class_id = %s::uuid",
            (student_id, class_id),
        )
        return row is not None

    def list_enrollments_for_class(self, class_id: str, *, offset: int, limit: int) -> Tuple[List[Dict[str, Any]], int]:
        return self._paged(
            f"""
            select e.id::text as id, e.student_id::text as student_id, e.class_id::text as class_id,
                   {_ts('e.enrolled_at')}, s.name as student_name, s.email as student_email
              from public.enrollments e
              join public.students s on s.id = e.student_id
             where e.class_id = %s::uuid
             order by e.enrolled_at
            """,
            "select count(*) as total from public.enrollments where class_id = %s::uuid",
            (class_id,),
            offset,
            limit,
        )

    def list_enrollments_for_student(self, student_id: str) -> List[Dict[str, Any]]:
        return self._all(
            f"""
            select e.id::text as id, e.student_id::text as student_id, e.class_id::text as class_id,
                   {_ts('e.enrolled_at')}, c.name as class_name
              from public.enrollments e
              join public.classes c on c.id = e.class_id
             where e.student_id = %s::uuid
             order by e.enrolled_at
            """,
            (student_id,),
        )

    def list_enrolled_student_ids(self, class_id: str) -> List[str]:
        rows = self._all(
            "select distinct student_id::text as student_id from public.enrollments where class_id = %s::uuid order by 1",
            (class_id,),
        )
        return [r["student_id"] for r in rows]

    def list_class_ids_for_student(self, student_id: str) -> List[str]:
        rows = self._all(
            "select distinct class_id::text as class_id from public.enrollments where student_id = %s::uuid order by 1",
            (student_id,),
        )
        return [r["class_id"] for r in rows]

    def count_distinct_students(self, class_ids: Sequence[str]) -> int:
        if not class_ids:
            return 0
        row = self._one(
            "select count(distinct student_id) as total from public.enrollments where class_id = any(%s::uuid[])",
            (list(class_ids),),
        )
        return int(row["total"]) if row else 0

    # --- Subjects & exams ------------------------------------------------------

    def create_subject(self, *, class_id: str, name: str) -> Dict[str, Any]:
        row = self._one(
            f"insert into public.subjects (class_id, name) values (%s::uuid, %s) returning {_SUBJECT_COLUMNS}",
            (class_id, name),
            conflict_message="Subject already exists for this class",
        )
        return _returned(row)

    def get_subject(self, subject_id: str) -> Optional[Dict[str, Any]]:
        return self._one(f"select {_SUBJECT_COLUMNS} from public.subjects where id = %s::uuid", (subject_id,))

    def list_subjects(self, class_id: str) -> List[Dict[str, Any]]:
        return self._all(
            f"select {_SUBJECT_COLUMNS} from public.subjects where class_id = %s::uuid order by name", (class_id,)
        )

    def create_exam(self, *, class_id: str, name: str, max_marks: int) -> Dict[str, Any]:
        row = self._one(
            f"insert into public.exams (class_id, name, max_marks) values (%s::uuid, %s, %s) returning {_EXAM_COLUMNS}",
            (class_id, name, int(max_marks)),
            conflict_message="Exam already exists for this class",
        )
        return _returned(row)

    def get_exam(self, exam_id: str) -> Optional[Dict[str, Any]]:
        return self._one(f"select {_EXAM_COLUMNS} from public.exams where id = %s::uuid", (exam_id,))

    def list_exams(self, class_id: str) -> List[Dict[str, Any]]:
        return self._all(
            f"select {_EXAM_COLUMNS} from public.exams where class_id = %s::uuid order by created_at", (class_id,)
        )

    # --- Marks -----------------------------------------------------------------

    def insert_marks(self, rows: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
        if not rows:
            return []
        return self._all(
            f"""
            with m as (
              insert into public.marks (student_id, exam_id, subject_id, marks_obtained, uploaded_by)
              select * from unnest(%s::uuid[], %s::uuid[], %s::uuid[], %s::int[], %s::uuid[])
              returning *
            )
            select {_MARK_COLUMNS} from m
            """,
            (
                [r["student_id"] for r in rows],
                [r["exam_id"] for r in rows],
                [r["subject_id"] for r in rows],
                [int(r["marks_obtained"]) for r in rows],
                [r["uploaded_by"] for r in rows],
            ),
            conflict_message="Mark already exists for this student-subject-exam combination",
        )

    def get_mark(self, mark_id: str) -> Optional[Dict[str, Any]]:
        return self._one(f"select {_MARK_COLUMNS} from public.marks m where m.id = %s::uuid", (mark_id,))

    def update_mark(self, mark_id: str, *, marks_obtained: int) -> Optional[Dict[str, Any]]:
        return self._one(
            f"""
            with m as (
              update public.marks set marks_obtained = %s, updated_at = now()
               where id = %s::uuid
              returning *
            )
            select {_MARK_COLUMNS} from m
            """,
            (int(marks_obtained), mark_id),
        )

    def list_marks(
        self,
        *,
        student_id: Optional[str] = None,
        class_id: Optional[str] = None,
        exam_id: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        clauses: List[str] = []
        params: List[Any] = []
        if student_id:
            clauses.append("m.student_id = %s::uuid")
            params.append(student_id)
        if class_id:
            clauses.append("sub.class_id = %s::uuid")
            params.append(class_id)
        if exam_id:
            clauses.append("m.exam_id = %s::uuid")
            params.append(exam_id)
        where = (" where " + " and ".join(clauses)) if clauses else ""
        return self._all(
            f"""
            select {_MARK_COLUMNS}, sub.name as subject_name, ex.name as exam_name, ex.max_marks,
                   sub.class_id::text as class_id, st.name as student_name
              from public.marks m
              join public.subjects sub on sub.id = m.subject_id
              join public.exams ex on ex.id = m.exam_id
              join public.students st on st.id = m.student_id
              {where}
             order by m.created_at desc
            """,
            tuple(params),
        )

    # --- Attendance ------------------------------------------------------------

    def upsert_attendance(self, rows: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
        if not rows:
            return []
        return self._all(
            f"""
            insert into public.attendance (class_id, student_id, date, status, marked_by)
            select * from unnest(%s::uuid[], %s::uuid[], %s::date[], %s::text[], %s::uuid[])
            on conflict (class_id, student_id, date)
              do update set status = excluded.status, marked_by = excluded.marked_by
            returning {_ATTENDANCE_COLUMNS}
            """,
            (
                [r["class_id"] for r in rows],
                [r["student_id"] for r in rows],
                [r["date"] for r in rows],
                [r["status"] for r in rows],
                [r["marked_by"] for r in rows],
            ),
        )

    def list_attendance(
        self,
        *,
        class_id: Optional[str] = None,
        student_id: Optional[str] = None,
        date: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        clauses: List[str] = []
        params: List[Any] = []
        if class_id:
            clauses.append("class_id = %s::uuid")
            params.append(class_id)
        if student_id:
            clauses.append("student_id = %s::uuid")
            params.append(student_id)
        if date:
            clauses.append("date = %s::date")
            params.append(date)
        where = (" where " + " and ".join(clauses)) if clauses else ""
        return self._all(
            f"select {_ATTENDANCE_COLUMNS} from public.attendance{where} order by date desc", tuple(params)
        )

    # --- Announcements & reports ----------------------------------------------

    def create_announcement(self, *, class_id: str, title: str, body: str, created_by: str) -> Dict[str, Any]:
        row = self._one(
            f"""
            insert into public.announcements (class_id, title, body, created_by)
            values (%s::uuid, %s, %s, %s::uuid)
            returning {_ANNOUNCEMENT_COLUMNS}
            """,
            (class_id, title, body, created_by),
        )
        return _returned(row)

    def list_announcements(self, class_ids: Iterable[str]) -> List[Dict[str, Any]]:
        return self._all(
            f"""
            select {_ANNOUNCEMENT_COLUMNS} from public.announcements
             where class_id = any(%s::uuid[])
             order by created_at desc
            """,
            (list(class_ids),),
        )

    def create_performance_report(self, row: Dict[str, Any]) -> Dict[str, Any]:
        out = self._one(
            f"""
            insert into public.performance_reports
              (student_id, class_id, period, avg_marks, attendance_pct, total_exams,
               total_present, total_absent, remarks, created_by)
            values (%s::uuid, %s::uuid, %s, %s, %s, %s, %s, %s, %s, %s::uuid)
            returning {_REPORT_COLUMNS}
            """,
            (
                row["student_id"],
                row["class_id"],
                row["period"],
                row["avg_marks"],
                row["attendance_pct"],
                row["total_exams"],
                row["total_present"],
                row["total_absent"],
                row.get("remarks"),
                row["created_by"],
            ),
            conflict_message="A report for this period already exists",
        )
        return _returned(out)

    def list_performance_reports(self, student_id: str) -> List[Dict[str, Any]]:
        return self._all(
            f"""
            select {_REPORT_COLUMNS} from public.performance_reports
             where student_id = %s::uuid order by created_at desc
            """,
            (student_id,),
        )

    # --- Assignments -----------------------------------------------------------

    def create_assignment(self, row: Dict[str, Any]) -> Dict[str, Any]:
        out = self._one(
            f"""
            insert into public.assignments (title, description, class_id, deadline, created_by)
            values (%s, %s, %s::uuid, %s::timestamptz, %s::uuid)
            returning {_ASSIGNMENT_COLUMNS}
            """,
            (row["title"], row.get("description"), row["class_id"], row["deadline"], row["created_by"]),
        )
        return _returned(out)

    def get_assignment(self, assignment_id: str) -> Optional[Dict[str, Any]]:
        return self._one(
            f"select {_ASSIGNMENT_COLUMNS} from public.assignments where id = %s::uuid", (assignment_id,)
        )

    def list_assignments(
        self, *, created_by: Optional[str] = None, class_ids: Optional[Iterable[str]] = None
    ) -> List[Dict[str, Any]]:
        clauses: List[str] = []
        params: List[Any] = []
        if created_by is not None:
            clauses.append("created_by = %s::uuid")
            params.append(created_by)
        if class_ids is not None:
            clauses.append("class_id = any(%s::uuid[])")
            params.append(list(class_ids))
        where = (" where " + " and ".join(clauses)) if clauses else ""
        return self._all(
            f"select {_ASSIGNMENT_COLUMNS} from public.assignments{where} order by deadline", tuple(params)
        )

    def upsert_assignment_submission(self, row: Dict[str, Any]) -> Dict[str, Any]:
        out = self._one(
            f"""
            with s as (
              insert into public.assignment_submissions (assignment_id, student_id, file_url, submitted_at, status)
              values (%s::uuid, %s::uuid, %s, %s::timestamptz, %s)
              on conflict (assignment_id, student_id) do update
                set file_url = excluded.file_url,
                    submitted_at = excluded.submitted_at,
                    status = excluded.status
              returning *
            )
            select {_SUBMISSION_COLUMNS} from s
            """,
            (row["assignment_id"], row["student_id"], row["file_url"], row["submitted_at"], row["status"]),
        )
        return _returned(out)

    def list_assignment_submissions(
        self, *, assignment_id: Optional[str] = None, student_id: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        clauses: List[str] = []
        params: List[Any] = []
        if assignment_id:
            clauses.append("s.assignment_id = %s::uuid")
            params.append(assignment_id)
        if student_id:
            clauses.append("s.student_id = %s::uuid")
            params.append(student_id)
        where = (" where " + " and ".join(clauses)) if clauses else ""
        return self._all(
            f"""
            select {_SUBMISSION_COLUMNS}, st.name as student_name, st.email as student_email
              from public.assignment_submissions s
              join public.students st on st.id = s.student_id
              {where}
             order by s.submitted_at desc
            """,
            tuple(params),
        )

    # --- MCQ tests -------------------------------------------------------------

    def create_test(self, row: Dict[str, Any]) -> Dict[str, Any]:
        out = self._one(
            f"""
            insert into public.mcq_tests (title, class_id, duration, start_date, end_date, created_by)
            values (%s, %s::uuid, %s, %s::timestamptz, %s::timestamptz, %s::uuid)
            returning {_TEST_COLUMNS}
            """,
            (
                row["title"],
                row["class_id"],
                int(row["duration"]),
                row["start_date"],
                row["end_date"],
                row["created_by"],
            ),
        )
        return _returned(out)

    def get_test(self, test_id: str) -> Optional[Dict[str, Any]]:
        return self._one(f"select {_TEST_COLUMNS} from public.mcq_tests where id = %s::uuid", (test_id,))

    def list_tests(
        self, *, created_by: Optional[str] = None, class_ids: Optional[Iterable[str]] = None
    ) -> List[Dict[str, Any]]:
        clauses: List[str] = []
        params: List[Any] = []
        if created_by is not None:
            clauses.append("created_by = %s::uuid")
            params.append(created_by)
        if class_ids is not None:
            clauses.append("class_id = any(%s::uuid[])")
            params.append(list(class_ids))
        where = (" where " + " and ".join(clauses)) if clauses else ""
        return self._all(f"select {_TEST_COLUMNS} from public.mcq_tests{where} order by start_date", tuple(params))

    def insert_questions(self, rows: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
        if not rows:
            return []
        return self._all(
            f"""
            insert into public.mcq_questions (test_id, question, options, correct_answer)
            select * from unnest(%s::uuid[], %s::text[], %s::jsonb[], %s::text[])
            returning {_QUESTION_COLUMNS}
            """,
            (
                [r["test_id"] for r in rows],
                [r["question"] for r in rows],
                [Jsonb(list(r["options"])) for r in rows],
                [r["correct_answer"] for r in rows],
            ),
        )

    def list_questions(self, test_id: str) -> List[Dict[str, Any]]:
        return self._all(
            f"select {_QUESTION_COLUMNS} from public.mcq_questions where test_id = %s::uuid order by created_at, id",
            (test_id,),
        )

    def get_test_submission(self, test_id: str, student_id: str) -> Optional[Dict[str, Any]]:
        return self._one(
            f"""
            select {_TEST_SUBMISSION_COLUMNS} from public.mcq_submissions s
             where s.test_id = %s::uuid and s.student_id = %s::uuid
            """,
            (test_id, student_id),
        )

    def insert_test_submission(self, row: Dict[str, Any]) -> Dict[str, Any]:
        out = self._one(
            f"""
            with s as (
              insert into public.mcq_submissions (test_id, student_id, answers, score, submitted_at)
              values (%s::uuid, %s::uuid, %s, %s, %s::timestamptz)
              returning *
            )
            select {_TEST_SUBMISSION_COLUMNS} from s
            """,
            (row["test_id"], row["student_id"], Jsonb(dict(row["answers"])), int(row["score"]), row["submitted_at"]),
            conflict_message="You have already submitted this test",
        )
        return _returned(out)

    def list_test_submissions(
        self, *, test_id: Optional[str] = None, student_id: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        clauses: List[str] = []
        params: List[Any] = []
        if test_id:
            clauses.append("s.test_id = %s::uuid")
            params.append(test_id)
        if student_id:
            clauses.append("s.student_id = %s::uuid")
            params.append(student_id)
        where = (" where " + " and ".join(clauses)) if clauses else ""
        return self._all(
            f"""
            select {_TEST_SUBMISSION_COLUMNS}, st.name as student_name, st.email as student_email
              from public.mcq_submissions s
              join public.students st on st.id = s.student_id
              {where}
             order by s.score desc
            """,
            tuple(params),
        )

    # --- Notifications ---------------------------------------------------------

    def insert_notifications(self, rows: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
        if not rows:
            return []
        return self._all(
            f"""
            insert into public.notifications (user_id, title, message, type, link)
            select * from unnest(%s::uuid[], %s::text[], %s::text[], %s::text[], %s::text[])
            returning {_NOTIFICATION_COLUMNS}
            """,
            (
                [r["user_id"] for r in rows],
                [r["title"] for r in rows],
                [r["message"] for r in rows],
                [r["type"] for r in rows],
                [r.get("link") for r in rows],
            ),
        )

    def list_notifications(self, user_id: str, *, limit: int) -> List[Dict[str, Any]]:
        return self._all(
            f"""
            select {_NOTIFICATION_COLUMNS} from public.notifications
             where user_id = %s::uuid
             order by created_at desc
             limit %s
            """,
            (user_id, int(limit)),
        )

    def count_unread_notifications(self, user_id: str) -> int:
        row = self._one(
            "select count(*) as total from public.notifications where user_id = %s::uuid and not is_read",
            (user_id,),
        )
        return int(row["total"]) if row else 0

    def mark_notification_read(self, notification_id: str, *, user_id: str) -> Optional[Dict[str, Any]]:
        return self._one(
            f"""
            update public.notifications set is_read = true
             where id = %s::uuid and user_id = %s::uuid
            returning {_NOTIFICATION_COLUMNS}
            """,
            (notification_id, user_id),
        )

    def mark_all_notifications_read(self, user_id: str) -> int:
        return self._rowcount(
            "update public.notifications set is_read = true where user_id = %s::uuid and not is_read",
            (user_id,),
        )

    # --- Profiles --------------------------------------------------------------

    def set_profile_photo(self, *, user_id: str, photo_url: Optional[str]) -> Dict[str, Any]:
        row = self._one(
            f"""
            insert into public.profiles (user_id, profile_photo_url) values (%s::uuid, %s)
            on conflict (user_id) do update
              set profile_photo_url = excluded.profile_photo_url, updated_at = now()
            returning user_id::text as user_id, profile_photo_url, {_ts('updated_at')}
            """,
            (user_id, photo_url),
        )
        return _returned(row)

    def get_profile(self, user_id: str) -> Optional[Dict[str, Any]]:
        return self._one(f"select {_PROFILE_COLUMNS} from public.profiles where user_id = %s::uuid", (user_id,))

    def get_role_profile(self, user_id: str, *, role: str) -> Optional[Dict[str, Any]]:
        table, columns, _ = _ROLE_PROFILE_TABLES[role]
        return self._one(f"select {columns} from public.{table} where user_id = %s::uuid", (user_id,))

    def save_profile(
        self, *, user_id: str, role: str, base: Dict[str, Any], details: Dict[str, Any], complete: bool = False
    ) -> Dict[str, Any]:
        """Upsert `profiles` and the role table on one connection (one transaction)."""
        table, columns, allowed = _ROLE_PROFILE_TABLES[role]
        base = {k: v for k, v in base.items() if k in _PROFILE_FIELDS}
        if complete:
            base["is_profile_complete"] = True
        details = {k: v for k, v in details.items() if k in allowed}
        with self._cursor() as cur:
            cur.execute(*_upsert_sql("profiles", user_id, base, _PROFILE_COLUMNS))
            row = _returned(cur.fetchone())
            cur.execute(*_upsert_sql(table, user_id, details, columns))
            detail = _returned(cur.fetchone())
        return {**dict(row), "details": dict(detail)}


__all__ = ["DBCampusRepo"]
