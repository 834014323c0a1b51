"CampusFlow API"
from __future__ import annotations

import asyncio
import logging
import os
import sys

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from backend.campus.errors import CampusError, Unauthenticated, ValidationError
from backend.identity_access.tokens import TokenVerificationError
from backend.web import config as _cfg
from backend.web.routes.admin import admin_router
from backend.web.routes.assignments import assignments_router
from backend.web.routes.classes import classes_router
from backend.web.routes.common import PRIVATE_HEADERS, error_response
from backend.web.routes.marks import marks_router
from backend.web.routes.mcq_tests import tests_router
from backend.web.routes.notifications import notifications_router
from backend.web.routes.profile import profile_router
from backend.web.routes.student import student_router
from backend.web.routes.teacher import teacher_router
from backend.web.routes.uploads import uploads_router
from backend.web.wiring import get_token_verifier


def _under_pytest() -> bool:
    return "pytest" in sys.modules or bool(os.getenv("PYTEST_CURRENT_TEST"))


def _should_load_dotenv() -> bool:
    """Decide if we should load a local .env file.

    - Never load under pytest to avoid contaminating test env.
    - Allow explicit opt-out via CAMPUSFLOW_ENABLE_DOTENV (default true
      outside pytest).
    """
    if _under_pytest():
        return False
    flag = (os.getenv("CAMPUSFLOW_ENABLE_DOTENV", "true") or "").strip().lower()
    return flag in ("1", "true", "yes")


if _should_load_dotenv():
    from dotenv import load_dotenv

    load_dotenv()

logging.basicConfig(level=(os.getenv("CAMPUSFLOW_LOG_LEVEL", "INFO").strip().upper() or "INFO"))
logger = logging.getLogger("campusflow.web")

# Minimal production safety checks (fail-fast on insecure config)
_cfg.ensure_secure_config_on_startup()

app = FastAPI(title="CampusFlow", description="Campus management API", version="0.4.0")

app.include_router(marks_router)
app.include_router(teacher_router)
app.include_router(student_router)
app.include_router(assignments_router)
app.include_router(tests_router)
app.include_router(notifications_router)
app.include_router(admin_router)
app.include_router(classes_router)
app.include_router(profile_router)
app.include_router(uploads_router)


@app.get("/api/health")
async def health_check():
    # Unauthenticated liveness check.
    return JSONResponse({"success": True, "data": {"status": "healthy"}}, headers=dict(PRIVATE_HEADERS))


# --- Error envelope -------------------------------------------------------------


@app.exception_handler(CampusError)
async def campus_error_handler(request: Request, exc: CampusError):
    if exc.status_code >= 500:
        logger.error("Request failed path=%s error=%s", request.url.path, exc.__class__.__name__)
    return error_response(exc)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return error_response(ValidationError("Invalid request payload"))


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    body = {"success": False, "error": {"message": message, "statusCode": exc.status_code}}
    return JSONResponse(body, status_code=exc.status_code, headers=dict(PRIVATE_HEADERS))


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error("Unhandled error path=%s error=%s", request.url.path, exc.__class__.__name__)
    body = {"success": False, "error": {"message": "Internal server error", "statusCode": 500}}
    return JSONResponse(body, status_code=500, headers=dict(PRIVATE_HEADERS))


# --- Auth middleware ------------------------------------------------------------


def _is_public_path(path: str) -> bool:
    return not path.startswith("/api/") or path == "/api/health"


def _bearer_token(request: Request) -> str | None:
    header = request.headers.get("Authorization") or ""
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


@app.middleware("http")
async def auth_enforcement(request: Request, call_next):
    """Verify the bearer token for every API call and expose the identity.

    Only the identity (user id, email) is attached here. The role is resolved
    per request by the routes, so a revoked role takes effect immediately.
    """
    if request.method == "OPTIONS" or _is_public_path(request.url.path):
        return await call_next(request)

    token = _bearer_token(request)
    if token is None:
        return error_response(Unauthenticated("Authentication required"))
    try:
        identity = await asyncio.to_thread(get_token_verifier(), token)
    except TokenVerificationError as exc:
        logger.info("Token rejected path=%s code=%s", request.url.path, exc.code)
        return error_response(Unauthenticated("Invalid or expired token"))
    request.state.identity = identity
    return await call_next(request)


_origins = list(_cfg.load_settings().cors_origins) or ["http://localhost:5173", "http://localhost:8080"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type"],
)
