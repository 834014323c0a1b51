"""
Mutation gate: stage order, role table, scopes, and best-effort notification.
"""
from __future__ import annotations

import pytest

from backend.campus.errors import Forbidden, NotFound, StudentRecordNotFound, Unexpected, ValidationError
from backend.campus.gate import (
    ALLOWED_ROLES,
    ClassScope,
    EnrolledStudentScope,
    MutationGate,
    MutationRequest,
    NotSelfScope,
    OperationKind,
)
from backend.campus.repo_memory import InMemoryCampusRepo
from backend.identity_access.domain import Principal, Role
from backend.identity_access.oracle import RoleOwnershipOracle
from backend.notifications.fanout import Notice, NotificationFanout, SingleUser
from backend.tests.utils.campus import FailingNotificationsRepo

TEACHER = Principal(user_id="teacher-000001", email="t@campus.test", role=Role.TEACHER)
ADMIN = Principal(user_id="admin-0000001", email="a@campus.test", role=Role.ADMIN)
STUDENT = Principal(user_id="student-00001", email="s@campus.test", role=Role.STUDENT)


def _gate(repo=None):
    repo = repo or InMemoryCampusRepo()
    oracle = RoleOwnershipOracle(repo)
    return repo, MutationGate(oracle, NotificationFanout(repo))


class Recorder:
    def __init__(self):
        self.calls = []

    def stage(self, name, result=None, exc=None):
        def _fn(*args):
            self.calls.append(name)
            if exc is not None:
                raise exc
            return args[0] if result is None and name == "validate" else result

        return _fn


def test_every_operation_has_an_allowed_role_entry():
    assert set(ALLOWED_ROLES) == set(OperationKind)
    assert ALLOWED_ROLES[OperationKind.CHANGE_ROLE] == frozenset({Role.ADMIN})
    assert Role.ADMIN not in ALLOWED_ROLES[OperationKind.SUBMIT_TEST]
    assert ALLOWED_ROLES[OperationKind.UPDATE_STUDENT_PROFILE] == frozenset({Role.STUDENT})
    assert ALLOWED_ROLES[OperationKind.UPDATE_TEACHER_PROFILE] == frozenset({Role.TEACHER})
    assert ALLOWED_ROLES[OperationKind.UPLOAD_FILE] == frozenset(Role)


def test_stages_run_in_order():
    repo, gate = _gate()
    klass = repo.create_class(name="10A", created_by=None)
    repo.add_user(TEACHER.user_id, TEACHER.email, "teacher")
    repo.assign_teacher(teacher_id=TEACHER.user_id, class_id=klass["id"])
    rec = Recorder()

    result = gate.execute(
        MutationRequest(OperationKind.CREATE_SUBJECT, TEACHER, ClassScope(klass["id"]), {"x": 1}),
        validate=rec.stage("validate"),
        check=rec.stage("check"),
        persist=rec.stage("persist", result={"id": "row"}),
        notify=rec.stage("notify", result=[]),
    )

    assert result == {"id": "row"}
    assert rec.calls == ["validate", "check", "persist", "notify"]


def test_validation_failure_short_circuits_before_authorization():
    _, gate = _gate()
    rec = Recorder()
    with pytest.raises(ValidationError):
        gate.execute(
            MutationRequest(OperationKind.CREATE_CLASS, STUDENT, payload={}),
            validate=rec.stage("validate", exc=ValidationError("name is required")),
            persist=rec.stage("persist"),
        )
    assert rec.calls == ["validate"]


def test_role_outside_allowed_set_is_forbidden_with_operation_message():
    _, gate = _gate()
    rec = Recorder()
    with pytest.raises(Forbidden) as info:
        gate.execute(MutationRequest(OperationKind.UPLOAD_MARKS, STUDENT), persist=rec.stage("persist"))
    assert info.value.message == "Only teachers and admins can upload marks"
    assert rec.calls == []


def test_teacher_without_class_ownership_is_denied_before_check():
    repo, gate = _gate()
    klass = repo.create_class(name="10A", created_by=None)
    rec = Recorder()
    with pytest.raises(Forbidden):
        gate.execute(
            MutationRequest(OperationKind.RECORD_ATTENDANCE, TEACHER, ClassScope(klass["id"])),
            check=rec.stage("check"),
            persist=rec.stage("persist"),
        )
    assert rec.calls == []


def test_admin_bypasses_ownership_scope():
    repo, gate = _gate()
    klass = repo.create_class(name="10A", created_by=None)
    out = gate.execute(
        MutationRequest(OperationKind.RECORD_ATTENDANCE, ADMIN, ClassScope(klass["id"])),
        persist=lambda ctx: "stored",
    )
    assert out == "stored"


def test_scope_can_be_derived_from_validated_payload():
    repo, gate = _gate()
    klass = repo.create_class(name="10A", created_by=None)
    seen = []

    def scope(payload):
        seen.append(payload)
        return ClassScope(payload["class_id"])

    with pytest.raises(Forbidden):
        gate.execute(
            MutationRequest(OperationKind.CREATE_EXAM, TEACHER, scope, {"classId": klass["id"]}),
            validate=lambda raw: {"class_id": raw["classId"]},
            persist=lambda ctx: None,
        )
    assert seen == [{"class_id": klass["id"]}]


def test_not_self_scope_applies_to_admins():
    _, gate = _gate()
    with pytest.raises(Forbidden) as info:
        gate.execute(
            MutationRequest(OperationKind.CHANGE_ROLE, ADMIN, NotSelfScope(ADMIN.user_id)),
            persist=lambda ctx: None,
        )
    assert info.value.message == "You cannot change your own role"


def test_enrolled_student_scope_resolves_roster_row_and_enrollment():
    repo, gate = _gate()
    klass = repo.create_class(name="10A", created_by=None)
    student = repo.create_student(name="Asha", email=STUDENT.email, created_by=None)
    test = repo.create_test(
        {
            "title": "Quiz",
            "class_id": klass["id"],
            "duration": 10,
            "start_date": "2026-01-01T00:00:00+00:00",
            "end_date": "2026-12-31T00:00:00+00:00",
            "created_by": TEACHER.user_id,
        }
    )
    request = MutationRequest(OperationKind.SUBMIT_TEST, STUDENT, EnrolledStudentScope("test", test["id"]))

    with pytest.raises(Forbidden):
        gate.execute(request, persist=lambda ctx: None)

    repo.create_enrollment(student_id=student["id"], class_id=klass["id"])
    out = gate.execute(request, persist=lambda ctx: (ctx.student_id, ctx.facts["test"]["id"]))
    assert out == (student["id"], test["id"])


def test_enrolled_student_scope_without_roster_row():
    repo, gate = _gate()
    klass = repo.create_class(name="10A", created_by=None)
    assignment = repo.create_assignment(
        {"title": "Essay", "class_id": klass["id"], "deadline": "2026-12-31T00:00:00+00:00", "created_by": "t"}
    )
    with pytest.raises(StudentRecordNotFound):
        gate.execute(
            MutationRequest(OperationKind.SUBMIT_ASSIGNMENT, STUDENT, EnrolledStudentScope("assignment", assignment["id"])),
            persist=lambda ctx: None,
        )


def test_enrolled_student_scope_missing_resource_is_not_found():
    repo, gate = _gate()
    repo.create_student(name="Asha", email=STUDENT.email, created_by=None)
    with pytest.raises(NotFound) as info:
        gate.execute(
            MutationRequest(OperationKind.SUBMIT_TEST, STUDENT, EnrolledStudentScope("test", "missing")),
            persist=lambda ctx: None,
        )
    assert info.value.message == "Test not found"


def test_unexpected_persist_error_becomes_internal_error():
    _, gate = _gate()

    def persist(ctx):
        raise RuntimeError("connection reset")

    with pytest.raises(Unexpected) as info:
        gate.execute(MutationRequest(OperationKind.CREATE_CLASS, ADMIN), persist=persist)
    assert info.value.status_code == 500
    assert "connection reset" not in info.value.message


def test_fanout_failure_does_not_change_the_result(caplog):
    _, gate = _gate(FailingNotificationsRepo())

    def notify(ctx, result):
        yield SingleUser("someone"), Notice(title="Hello", message="World")

    with caplog.at_level("WARNING", logger="campusflow"):
        out = gate.execute(MutationRequest(OperationKind.CREATE_CLASS, ADMIN), persist=lambda ctx: "ok", notify=notify)

    assert out == "ok"
    assert any("fanout" in r.getMessage().lower() for r in caplog.records)


def test_broken_notification_builder_does_not_change_the_result():
    repo, gate = _gate()

    def notify(ctx, result):
        raise KeyError("exam")

    out = gate.execute(MutationRequest(OperationKind.CREATE_CLASS, ADMIN), persist=lambda ctx: "ok", notify=notify)
    assert out == "ok"
    assert repo.notifications == {}
