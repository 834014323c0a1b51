"""
Error taxonomy shared by every CampusFlow layer.

Each error carries the HTTP status it maps to, so the web adapter can render a
uniform envelope without knowing which service raised it. The classes also
inherit from the builtin exception a service would naturally raise
(`ValueError`, `PermissionError`, `LookupError`), which keeps plain
`except ValueError` call sites working.

Datastore failures are translated at the repository boundary with
`translate_db_error`, keyed by Postgres SQLSTATE.
"""
from __future__ import annotations

from typing import Optional


class CampusError(Exception):
    """Base class for errors rendered to clients."""

    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_envelope(self) -> dict:
        return {"success": False, "error": {"message": self.message, "statusCode": self.status_code}}


class ValidationError(CampusError, ValueError):
    status_code = 400
    default_message = "Invalid request"


class Unauthenticated(CampusError):
    status_code = 401
    default_message = "Authentication required"


class Forbidden(CampusError, PermissionError):
    status_code = 403
    default_message = "Access denied"


class RoleNotFound(Forbidden):
    """No role row exists for the caller; treated as access denied."""

    default_message = "No role assigned to this account"


class NotFound(CampusError, LookupError):
    status_code = 404
    default_message = "Not found"


class StudentRecordNotFound(NotFound):
    default_message = "Student record not found. Please contact your administrator."


class Conflict(CampusError):
    status_code = 409
    default_message = "Resource already exists"


class Unexpected(CampusError):
    status_code = 500


# SQLSTATE -> error class. Unlisted codes fall through to Unexpected.
_SQLSTATE_MAP = {
    "23505": Conflict,  # unique_violation
    "42501": Forbidden,  # insufficient_privilege (row level security)
    "23503": ValidationError,  # foreign_key_violation
    "23514": ValidationError,  # check_violation
    "23502": ValidationError,  # not_null_violation
    "22P02": ValidationError,  # invalid_text_representation (bad uuid)
}


def translate_db_error(exc: BaseException, *, conflict_message: Optional[str] = None) -> CampusError:
    """Map a driver exception to a CampusError without leaking its text.

    Accepts anything exposing `sqlstate` (psycopg 3) or `pgcode` (older
    drivers). The original exception is chained by the caller via
    `raise ... from exc`.
    """
    if isinstance(exc, CampusError):
        return exc
    code = getattr(exc, "sqlstate", None) or getattr(exc, "pgcode", None)
    cls = _SQLSTATE_MAP.get(str(code or ""), Unexpected)
    if cls is Conflict:
        return Conflict(conflict_message)
    if cls is Forbidden:
        return Forbidden("Operation not permitted by datastore policy")
    if cls is ValidationError:
        return ValidationError("Invalid reference or value")
    return Unexpected()


__all__ = [
    "CampusError",
    "ValidationError",
    "Unauthenticated",
    "Forbidden",
    "RoleNotFound",
    "NotFound",
    "StudentRecordNotFound",
    "Conflict",
    "Unexpected",
    "translate_db_error",
]
