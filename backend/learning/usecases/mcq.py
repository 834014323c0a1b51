from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol

from backend.campus.errors import Conflict, Forbidden, NotFound, ValidationError
from backend.campus.gate import EnrolledStudentScope, GateContext, MutationGate, MutationRequest, OperationKind
from backend.campus.scoping import require_role
from backend.campus.validation import as_datetime
from backend.identity_access.domain import Principal, Role
from backend.identity_access.oracle import RoleOwnershipOracle

ALREADY_SUBMITTED = "You have already submitted this test"


class StudentTestsRepoProtocol(Protocol):
    def get_test(self, test_id: str) -> Optional[dict]: ...

    def is_enrolled(self, student_id: str, class_id: str) -> bool: ...

    def list_class_ids_for_student(self, student_id: str) -> List[str]: ...

    def list_tests(self, *, created_by: Optional[str] = None, class_ids: Optional[Iterable[str]] = None) -> List[dict]: ...

    def list_questions(self, test_id: str) -> List[dict]: ...

    def get_test_submission(self, test_id: str, student_id: str) -> Optional[dict]: ...

    def list_test_submissions(self, *, test_id: Optional[str] = None, student_id: Optional[str] = None) -> List[dict]: ...

    def insert_test_submission(self, row: Dict[str, Any]) -> dict: ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _check_window(test: dict, now: datetime) -> None:
    start = as_datetime(test.get("start_date"))
    end = as_datetime(test.get("end_date"))
    if start is not None and now < start:
        raise ValidationError("Test has not started yet")
    if end is not None and now > end:
        raise ValidationError("Test has ended")


def score_answers(questions: List[dict], answers: Dict[str, Any]) -> int:
    """Count answers matching the stored correct option; unknown ids are ignored."""
    correct = {str(q["id"]): str(q.get("correct_answer")) for q in questions}
    return sum(1 for qid, given in answers.items() if qid in correct and str(given).strip() == correct[qid])


@dataclass
class StudentTestsInput:
    principal: Principal


class ListStudentTestsUseCase:
    def __init__(self, repo: StudentTestsRepoProtocol, oracle: RoleOwnershipOracle) -> None:
        self._repo = repo
        self._oracle = oracle

    def execute(self, req: StudentTestsInput) -> List[dict]:
        """Tests of the student's enrolled classes, each with the own `submission` (or None)."""
        require_role(req.principal, (Role.STUDENT,), "Access denied. Student role required.")
        student_id = self._oracle.resolve_student_identity(req.principal)
        class_ids = self._repo.list_class_ids_for_student(student_id)
        if not class_ids:
            return []
        mine = {s["test_id"]: s for s in self._repo.list_test_submissions(student_id=student_id)}
        return [{**t, "submission": mine.get(t["id"])} for t in self._repo.list_tests(class_ids=class_ids)]


@dataclass
class McqQuestionsInput:
    principal: Principal
    test_id: str


class GetTestQuestionsUseCase:
    """Return a test and its questions with the correct answers stripped.

    Only available to enrolled students, inside the test window, and before
    they have submitted.
    """

    def __init__(
        self, repo: StudentTestsRepoProtocol, oracle: RoleOwnershipOracle, *, clock: Callable[[], datetime] = _utcnow
    ) -> None:
        self._repo = repo
        self._oracle = oracle
        self._clock = clock

    def execute(self, req: McqQuestionsInput) -> Dict[str, Any]:
        require_role(req.principal, (Role.STUDENT,), "Access denied. Student role required.")
        student_id = self._oracle.resolve_student_identity(req.principal)
        test = self._repo.get_test(req.test_id)
        if test is None:
            raise NotFound("Test not found")
        if not self._repo.is_enrolled(student_id, str(test["class_id"])):
            raise Forbidden("You are not enrolled in this class")
        _check_window(test, self._clock())
        if self._repo.get_test_submission(req.test_id, student_id):
            raise ValidationError(ALREADY_SUBMITTED)
        questions = [
            {"id": q["id"], "question": q["question"], "options": list(q.get("options") or [])}
            for q in self._repo.list_questions(req.test_id)
        ]
        return {"test": test, "questions": questions}


@dataclass
class SubmitTestInput:
    principal: Principal
    test_id: str
    answers: Any


class SubmitTestUseCase:
    """Score and store a student's answers; a second submission is a Conflict."""

    def __init__(self, repo: StudentTestsRepoProtocol, gate: MutationGate, *, clock: Callable[[], datetime] = _utcnow) -> None:
        self._repo = repo
        self._gate = gate
        self._clock = clock

    def execute(self, req: SubmitTestInput) -> dict:
        def validate(answers: Any) -> Dict[str, str]:
            if not isinstance(answers, dict) or not answers:
                raise ValidationError("answers are required")
            return {str(k): str(v) for k, v in answers.items() if v is not None}

        def check(ctx: GateContext) -> None:
            if self._repo.get_test_submission(req.test_id, str(ctx.student_id)):
                raise Conflict(ALREADY_SUBMITTED)
            _check_window(ctx.facts["test"], self._clock())

        def persist(ctx: GateContext) -> dict:
            questions = self._repo.list_questions(req.test_id)
            row = self._repo.insert_test_submission(
                {
                    "test_id": req.test_id,
                    "student_id": ctx.student_id,
                    "answers": ctx.payload,
                    "score": score_answers(questions, ctx.payload),
                    "submitted_at": self._clock().isoformat(),
                }
            )
            return {**row, "totalQuestions": len(questions)}

        request = MutationRequest(
            kind=OperationKind.SUBMIT_TEST,
            actor=req.principal,
            scope=EnrolledStudentScope("test", req.test_id),
            payload=req.answers,
        )
        return self._gate.execute(request, validate=validate, check=check, persist=persist)


__all__ = [
    "ALREADY_SUBMITTED",
    "GetTestQuestionsUseCase",
    "ListStudentTestsUseCase",
    "StudentTestsInput",
    "SubmitTestInput",
    "SubmitTestUseCase",
    "McqQuestionsInput",
    "score_answers",
]
