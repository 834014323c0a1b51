"""
MCQ test API routes for teachers (schedule, publish questions, results) and
students (list, take, submit).
"""
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request
from pydantic import BaseModel

from backend.learning.usecases.mcq import StudentTestsInput, SubmitTestInput, McqQuestionsInput
from backend.web.routes.common import created, current_principal, ok, run, services

tests_router = APIRouter(tags=["Tests"])


class McqTestCreate(BaseModel):
    title: Any = None
    classId: Any = None
    duration: Any = None
    startDate: Any = None
    endDate: Any = None


class QuestionsAdd(BaseModel):
    questions: Any = None


class McqAnswers(BaseModel):
    answers: Any = None


@tests_router.post("/api/tests/teacher")
async def create_test(request: Request, payload: McqTestCreate):
    principal = await current_principal(request)
    return created(await run(services().tests.create, principal, payload.model_dump()))


@tests_router.get("/api/tests/teacher")
async def list_teacher_tests(request: Request):
    principal = await current_principal(request)
    return ok(await run(services().tests.list_for_teacher, principal))


@tests_router.post("/api/tests/teacher/{test_id}/questions")
async def add_questions(request: Request, test_id: str, payload: QuestionsAdd):
    principal = await current_principal(request)
    return created(await run(services().tests.add_questions, principal, test_id, payload.model_dump()))


@tests_router.get("/api/tests/teacher/{test_id}/results")
async def test_results(request: Request, test_id: str):
    principal = await current_principal(request)
    return ok(await run(services().tests.results, principal, test_id))


@tests_router.get("/api/tests/student")
async def list_student_tests(request: Request):
    principal = await current_principal(request)
    return ok(await run(services().student_tests.execute, StudentTestsInput(principal=principal)))


@tests_router.get("/api/tests/student/{test_id}")
async def get_test_questions(request: Request, test_id: str):
    """Questions without correct answers; 400 outside the window or after submitting."""
    principal = await current_principal(request)
    req = McqQuestionsInput(principal=principal, test_id=test_id)
    return ok(await run(services().test_questions.execute, req))


async def _submit(request: Request, test_id: str, payload: McqAnswers):
    principal = await current_principal(request)
    req = SubmitTestInput(principal=principal, test_id=test_id, answers=payload.answers)
    return created(await run(services().submit_test.execute, req))


@tests_router.post("/api/tests/student/{test_id}/submit")
async def submit_test(request: Request, test_id: str, payload: McqAnswers):
    """Score and store answers.

    Behavior:
        - 201 with {score, totalQuestions, ...}
        - 400 outside the test window
        - 403 when the student is not enrolled in the test's class
        - 409 "You have already submitted this test" on a second attempt
    """
    return await _submit(request, test_id, payload)


@tests_router.post("/api/student/tests/{test_id}/submit")
async def submit_test_alias(request: Request, test_id: str, payload: McqAnswers):
    return await _submit(request, test_id, payload)
