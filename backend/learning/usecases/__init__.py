"""Use case layer for the student-facing Learning context.

Re-export common use cases for convenient imports in tests.
"""

from .assignments import (
    ListStudentAssignmentsInput,
    ListStudentAssignmentsUseCase,
    SubmitAssignmentInput,
    SubmitAssignmentUseCase,
)
from .mcq import McqQuestionsInput, SubmitTestInput, SubmitTestUseCase
from .progress import StudentProgressInput, StudentProgressUseCase

__all__ = [
    "ListStudentAssignmentsInput",
    "ListStudentAssignmentsUseCase",
    "McqQuestionsInput",
    "StudentProgressInput",
    "StudentProgressUseCase",
    "SubmitAssignmentInput",
    "SubmitAssignmentUseCase",
    "SubmitTestInput",
    "SubmitTestUseCase",
]
