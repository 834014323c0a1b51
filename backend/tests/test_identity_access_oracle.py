"""
Role & ownership oracle: every answer comes from persisted state, per call.
"""
from __future__ import annotations

import pytest

from backend.campus.errors import NotFound, RoleNotFound, StudentRecordNotFound
from backend.campus.repo_memory import InMemoryCampusRepo
from backend.identity_access.domain import Identity, Principal, Role
from backend.identity_access.oracle import RoleOwnershipOracle


@pytest.fixture
def repo():
    return InMemoryCampusRepo()


def test_role_parse_is_case_insensitive():
    assert Role.parse(" Teacher ") is Role.TEACHER
    with pytest.raises(ValueError):
        Role.parse("principal")


def test_role_enum_is_the_single_set_of_valid_roles():
    assert {r.value for r in Role} == {"admin", "teacher", "student"}
    for role in Role:
        assert Role.parse(role.value.upper()) is role
    for bad in (None, "", "superuser"):
        with pytest.raises(ValueError):
            Role.parse(bad)


def test_missing_role_row_is_role_not_found(repo):
    repo.add_user("u1", "u1@campus.test")
    with pytest.raises(RoleNotFound) as info:
        RoleOwnershipOracle(repo).resolve_role("u1")
    assert info.value.status_code == 403


def test_unknown_role_value_is_role_not_found(repo):
    repo.add_user("u1", "u1@campus.test", "superuser")
    with pytest.raises(RoleNotFound):
        RoleOwnershipOracle(repo).resolve_role("u1")


def test_role_change_takes_effect_on_next_lookup(repo):
    repo.add_user("u1", "u1@campus.test", "teacher")
    oracle = RoleOwnershipOracle(repo)
    identity = Identity(user_id="u1", email="u1@campus.test")
    assert oracle.principal_for(identity).role is Role.TEACHER
    repo.set_role(user_id="u1", role="student")
    assert oracle.principal_for(identity).role is Role.STUDENT


def test_class_ownership_follows_teacher_assignments(repo):
    repo.add_user("t1", "t1@campus.test", "teacher")
    klass = repo.create_class(name="10A", created_by=None)
    oracle = RoleOwnershipOracle(repo)
    assert not oracle.is_owner_of_class("t1", klass["id"])
    repo.assign_teacher(teacher_id="t1", class_id=klass["id"])
    assert oracle.is_owner_of_class("t1", klass["id"])
    assert oracle.owned_class_ids("t1") == [klass["id"]]
    repo.unassign_teacher(teacher_id="t1", class_id=klass["id"])
    assert not oracle.is_owner_of_class("t1", klass["id"])


def test_assignment_ownership_is_creator_or_admin(repo):
    klass = repo.create_class(name="10A", created_by=None)
    row = repo.create_assignment(
        {"title": "Essay", "class_id": klass["id"], "deadline": "2026-12-01T00:00:00+00:00", "created_by": "t1"}
    )
    oracle = RoleOwnershipOracle(repo)
    creator = Principal(user_id="t1", email="t1@campus.test", role=Role.TEACHER)
    other = Principal(user_id="t2", email="t2@campus.test", role=Role.TEACHER)
    admin = Principal(user_id="a1", email="a1@campus.test", role=Role.ADMIN)
    assert oracle.is_owner_of_assignment(creator, row["id"])
    assert not oracle.is_owner_of_assignment(other, row["id"])
    assert oracle.is_owner_of_assignment(admin, row["id"])
    with pytest.raises(NotFound):
        oracle.is_owner_of_assignment(admin, "missing")


def test_student_identity_matches_email_case_insensitively(repo):
    row = repo.create_student(name="Asha", email="asha@campus.test", created_by=None)
    oracle = RoleOwnershipOracle(repo)
    principal = Principal(user_id="u1", email="ASHA@Campus.Test", role=Role.STUDENT)
    assert oracle.resolve_student_identity(principal) == row["id"]


def test_student_without_roster_row(repo):
    principal = Principal(user_id="u1", email="nobody@campus.test", role=Role.STUDENT)
    with pytest.raises(StudentRecordNotFound) as info:
        RoleOwnershipOracle(repo).resolve_student_identity(principal)
    assert info.value.status_code == 404
