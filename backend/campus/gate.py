"""
Mutation gate: the single pipeline every CampusFlow write passes through.

Stages, in order, each short-circuiting on failure:

1. validate  - normalize the raw payload (ValidationError, 400)
2. authorize - role in the operation's allowed set, then the scope check
               (ownership, enrollment, self-targeting) (Forbidden, 403)
3. check     - referenced entities exist and agree with each other
               (NotFound 404 / ValidationError 400)
4. persist   - one write or one batch write; driver errors arrive already
               translated by the repository
5. notify    - best-effort fanout of (audience, notice) pairs; the outcome
               is logged and discarded, the persisted result is returned as-is

Admins bypass ownership scopes but never the role table.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Protocol, Tuple, TypeVar, Union

from backend.campus.errors import CampusError, Forbidden, Unexpected
from backend.identity_access.domain import Principal, Role
from backend.identity_access.oracle import RoleOwnershipOracle
from backend.notifications.fanout import Audience, Notice, NotificationFanout

logger = logging.getLogger("campusflow.gate")

T = TypeVar("T")


class OperationKind(str, Enum):
    UPLOAD_MARKS = "upload_marks"
    UPLOAD_MARKS_BULK = "upload_marks_bulk"
    UPDATE_MARK = "update_mark"
    RECORD_ATTENDANCE = "record_attendance"
    CREATE_ANNOUNCEMENT = "create_announcement"
    CREATE_SUBJECT = "create_subject"
    CREATE_EXAM = "create_exam"
    CREATE_PERFORMANCE_REPORT = "create_performance_report"
    CREATE_ASSIGNMENT = "create_assignment"
    CREATE_TEST = "create_test"
    ADD_TEST_QUESTIONS = "add_test_questions"
    SUBMIT_ASSIGNMENT = "submit_assignment"
    SUBMIT_TEST = "submit_test"
    CREATE_ENROLLMENT = "create_enrollment"
    DELETE_ENROLLMENT = "delete_enrollment"
    CREATE_CLASS = "create_class"
    DELETE_CLASS = "delete_class"
    MANAGE_ROSTER = "manage_roster"
    ASSIGN_TEACHER = "assign_teacher"
    CHANGE_ROLE = "change_role"
    SEND_NOTIFICATION = "send_notification"
    MANAGE_PROFILE_PHOTO = "manage_profile_photo"
    UPDATE_STUDENT_PROFILE = "update_student_profile"
    UPDATE_TEACHER_PROFILE = "update_teacher_profile"
    UPLOAD_FILE = "upload_file"


_STAFF = frozenset({Role.TEACHER, Role.ADMIN})
_ADMIN = frozenset({Role.ADMIN})

ALLOWED_ROLES: Mapping[OperationKind, frozenset] = MappingProxyType(
    {
        OperationKind.UPLOAD_MARKS: _STAFF,
        OperationKind.UPLOAD_MARKS_BULK: _STAFF,
        OperationKind.UPDATE_MARK: _STAFF,
        OperationKind.RECORD_ATTENDANCE: _STAFF,
        OperationKind.CREATE_ANNOUNCEMENT: _STAFF,
        OperationKind.CREATE_SUBJECT: _STAFF,
        OperationKind.CREATE_EXAM: _STAFF,
        OperationKind.CREATE_PERFORMANCE_REPORT: _STAFF,
        OperationKind.CREATE_ASSIGNMENT: _STAFF,
        OperationKind.CREATE_TEST: _STAFF,
        OperationKind.ADD_TEST_QUESTIONS: _STAFF,
        OperationKind.SUBMIT_ASSIGNMENT: frozenset({Role.STUDENT}),
        OperationKind.SUBMIT_TEST: frozenset({Role.STUDENT}),
        OperationKind.CREATE_ENROLLMENT: _STAFF,
        OperationKind.DELETE_ENROLLMENT: _STAFF,
        OperationKind.CREATE_CLASS: _ADMIN,
        OperationKind.DELETE_CLASS: _ADMIN,
        OperationKind.MANAGE_ROSTER: _ADMIN,
        OperationKind.ASSIGN_TEACHER: _ADMIN,
        OperationKind.CHANGE_ROLE: _ADMIN,
        OperationKind.SEND_NOTIFICATION: _ADMIN,
        OperationKind.MANAGE_PROFILE_PHOTO: frozenset({Role.TEACHER, Role.STUDENT}),
        OperationKind.UPDATE_STUDENT_PROFILE: frozenset({Role.STUDENT}),
        OperationKind.UPDATE_TEACHER_PROFILE: frozenset({Role.TEACHER}),
        OperationKind.UPLOAD_FILE: frozenset(Role),
    }
)

# Every operation must have an entry; a missing one would silently deny.
_UNMAPPED = set(OperationKind) - set(ALLOWED_ROLES)
if _UNMAPPED:
    raise RuntimeError(f"operations without a role entry: {sorted(k.value for k in _UNMAPPED)}")

_ROLE_DENIED_MESSAGES: Dict[OperationKind, str] = {
    OperationKind.UPLOAD_MARKS: "Only teachers and admins can upload marks",
    OperationKind.UPLOAD_MARKS_BULK: "Only teachers and admins can upload marks",
    OperationKind.SUBMIT_ASSIGNMENT: "Only students can submit assignments",
    OperationKind.SUBMIT_TEST: "Only students can submit tests",
    OperationKind.MANAGE_PROFILE_PHOTO: "Admins do not have profiles",
    OperationKind.UPDATE_STUDENT_PROFILE: "Only students can update student profiles",
    OperationKind.UPDATE_TEACHER_PROFILE: "Only teachers can update teacher profiles",
}


@dataclass
class GateContext:
    """Per-request state shared by the stages after validation."""

    principal: Principal
    kind: OperationKind
    payload: Any = None
    student_id: Optional[str] = None
    facts: Dict[str, Any] = field(default_factory=dict)


# --- Scopes -----------------------------------------------------------------------


class Scope(Protocol):
    def authorize(self, oracle: RoleOwnershipOracle, ctx: GateContext) -> None: ...


@dataclass(frozen=True)
class Unscoped:
    def authorize(self, oracle: RoleOwnershipOracle, ctx: GateContext) -> None:
        return None


@dataclass(frozen=True)
class ClassScope:
    class_id: str

    def authorize(self, oracle: RoleOwnershipOracle, ctx: GateContext) -> None:
        if ctx.principal.is_admin:
            return
        if not oracle.is_owner_of_class(ctx.principal.user_id, self.class_id):
            raise Forbidden("You are not assigned to this class")


@dataclass(frozen=True)
class SubjectClassScope:
    """Class ownership derived from the subject a write targets."""

    subject_id: str

    def authorize(self, oracle: RoleOwnershipOracle, ctx: GateContext) -> None:
        subject = oracle.load_subject(self.subject_id)
        ctx.facts["subject"] = subject
        ClassScope(str(subject["class_id"])).authorize(oracle, ctx)


@dataclass(frozen=True)
class AssignmentScope:
    assignment_id: str

    def authorize(self, oracle: RoleOwnershipOracle, ctx: GateContext) -> None:
        if not oracle.is_owner_of_assignment(ctx.principal, self.assignment_id):
            raise Forbidden("Only the assignment creator can do this")


@dataclass(frozen=True)
class McqTestScope:
    test_id: str

    def authorize(self, oracle: RoleOwnershipOracle, ctx: GateContext) -> None:
        if not oracle.is_owner_of_test(ctx.principal, self.test_id):
            raise Forbidden("Only the test creator can do this")


@dataclass(frozen=True)
class MarkScope:
    mark_id: str

    def authorize(self, oracle: RoleOwnershipOracle, ctx: GateContext) -> None:
        if not oracle.is_owner_of_mark(ctx.principal, self.mark_id):
            raise Forbidden("Only the uploader or an admin can update this mark")


@dataclass(frozen=True)
class EnrolledStudentScope:
    """Caller must be a roster student enrolled in the resource's class.

    `resource` is "assignment" or "test"; the loaded row is kept in
    `ctx.facts[resource]` and the roster id in `ctx.student_id`.
    """

    resource: str
    resource_id: str

    def authorize(self, oracle: RoleOwnershipOracle, ctx: GateContext) -> None:
        ctx.student_id = oracle.resolve_student_identity(ctx.principal)
        row = oracle.load_resource(self.resource, self.resource_id)
        ctx.facts[self.resource] = row
        if not oracle.is_enrolled(ctx.student_id, str(row["class_id"])):
            raise Forbidden("You are not enrolled in this class")


@dataclass(frozen=True)
class NotSelfScope:
    """Reject an actor targeting their own account, admins included."""

    target_user_id: str
    message: str = "You cannot change your own role"

    def authorize(self, oracle: RoleOwnershipOracle, ctx: GateContext) -> None:
        if self.target_user_id == ctx.principal.user_id:
            raise Forbidden(self.message)


ScopeSpec = Union[Scope, Callable[[Any], Scope]]


@dataclass(frozen=True)
class MutationRequest:
    """One write attempt. `scope` may be a function of the validated payload."""

    kind: OperationKind
    actor: Principal
    scope: ScopeSpec = Unscoped()
    payload: Any = None


Notifications = Iterable[Tuple[Audience, Notice]]


class MutationGate:
    def __init__(self, oracle: RoleOwnershipOracle, fanout: NotificationFanout) -> None:
        self._oracle = oracle
        self._fanout = fanout

    def execute(
        self,
        request: MutationRequest,
        *,
        persist: Callable[[GateContext], T],
        validate: Optional[Callable[[Any], Any]] = None,
        check: Optional[Callable[[GateContext], None]] = None,
        notify: Optional[Callable[[GateContext, T], Notifications]] = None,
    ) -> T:
        principal = request.actor
        payload = validate(request.payload) if validate else request.payload
        ctx = GateContext(principal=principal, kind=request.kind, payload=payload)

        self._authorize(request, ctx)
        if check:
            check(ctx)

        try:
            result = persist(ctx)
        except CampusError:
            raise
        except Exception as exc:
            logger.error(
                "Persist failed kind=%s user=%s error=%s",
                request.kind.value,
                principal.user_id[-6:],
                exc.__class__.__name__,
            )
            raise Unexpected() from exc

        if notify:
            self._notify(ctx, result, notify)
        return result

    def _authorize(self, request: MutationRequest, ctx: GateContext) -> None:
        allowed = ALLOWED_ROLES[request.kind]
        if ctx.principal.role not in allowed:
            logger.info(
                "Denied kind=%s role=%s user=%s",
                request.kind.value,
                ctx.principal.role.value,
                ctx.principal.user_id[-6:],
            )
            raise Forbidden(_ROLE_DENIED_MESSAGES.get(request.kind, "Access denied"))
        scope = request.scope
        if not hasattr(scope, "authorize"):
            scope = scope(ctx.payload)  # type: ignore[operator]
        try:
            scope.authorize(self._oracle, ctx)
        except Forbidden:
            logger.info(
                "Denied by scope kind=%s scope=%s user=%s",
                request.kind.value,
                scope.__class__.__name__,
                ctx.principal.user_id[-6:],
            )
            raise

    def _notify(self, ctx: GateContext, result: T, notify: Callable[[GateContext, T], Notifications]) -> None:
        # The fanout result is deliberately dropped: the mutation already succeeded.
        try:
            pairs = list(notify(ctx, result) or ())
        except Exception as exc:
            logger.warning("Building notifications failed kind=%s error=%s", ctx.kind.value, exc.__class__.__name__)
            return
        for audience, notice in pairs:
            outcome = self._fanout.fanout(audience, notice)
            if not outcome.ok:
                logger.warning("Fanout discarded kind=%s error=%s", ctx.kind.value, outcome.error)


__all__ = [
    "ALLOWED_ROLES",
    "AssignmentScope",
    "ClassScope",
    "EnrolledStudentScope",
    "GateContext",
    "MarkScope",
    "MutationGate",
    "MutationRequest",
    "NotSelfScope",
    "OperationKind",
    "Scope",
    "McqTestScope",
    "SubjectClassScope",
    "Unscoped",
]
