"""
Pytest configuration for backend tests.

Why: Force AnyIO to use the asyncio backend, keep the app in a permissive dev
environment, and give every test a fresh, fully in-memory service graph
(repository, storage and token verifier) so no test needs Postgres or
Supabase.
"""
import os

import pytest

# The app runs its startup guard at import time; keep it permissive.
os.environ["CAMPUSFLOW_ENV"] = "dev"
_DEPLOYMENT_VARS = (
    "DATABASE_URL",
    "SUPABASE_DB_URL",
    "CAMPUSFLOW_DATABASE_URL",
    "SUPABASE_URL",
    "SUPABASE_SERVICE_ROLE_KEY",
    "SUPABASE_JWT_SECRET",
    "CORS_ORIGINS",
)
for _var in _DEPLOYMENT_VARS:
    os.environ.pop(_var, None)

from backend.tests.utils.campus import CampusFixture  # noqa: E402
from backend.web import wiring  # noqa: E402


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
def _reset_wiring(monkeypatch: pytest.MonkeyPatch):
    """Drop wired components between tests and clear deployment env vars."""
    for var in _DEPLOYMENT_VARS:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("CAMPUSFLOW_ENV", "dev")
    wiring.reset()
    yield
    wiring.reset()


@pytest.fixture
def campus() -> CampusFixture:
    return CampusFixture()
