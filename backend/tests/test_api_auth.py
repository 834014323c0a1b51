"""
Bearer authentication, the public health check, and the response envelope.
"""
from __future__ import annotations

import pytest

pytestmark = pytest.mark.anyio("asyncio")


async def test_health_is_public(campus):
    async with campus.client() as client:
        resp = await client.get("/api/health")
    assert resp.status_code == 200
    assert resp.json() == {"success": True, "data": {"status": "healthy"}}
    assert resp.headers["Cache-Control"] == "private, no-store"


@pytest.mark.parametrize(
    "headers",
    [{}, {"Authorization": "Basic abc"}],
)
async def test_missing_bearer_token_is_401(campus, headers):
    async with campus.client() as client:
        resp = await client.get("/api/classes", headers=headers)
    assert resp.status_code == 401
    assert resp.json() == {"success": False, "error": {"message": "Authentication required", "statusCode": 401}}


async def test_unknown_token_is_401(campus):
    async with campus.client() as client:
        resp = await client.get("/api/classes", headers={"Authorization": "Bearer forged"})
    assert resp.status_code == 401
    assert resp.json()["error"]["message"] == "Invalid or expired token"
    assert resp.headers["Cache-Control"] == "private, no-store"


async def test_user_without_role_is_forbidden(campus):
    newcomer = campus.user(None)
    async with campus.client() as client:
        resp = await client.get("/api/classes", headers=newcomer.headers)
    assert resp.status_code == 403
    assert resp.json()["error"]["message"] == "No role assigned to this account"


async def test_malformed_json_is_a_400_envelope(campus):
    teacher = campus.user("teacher")
    async with campus.client() as client:
        resp = await client.post(
            "/api/marks",
            content=b"{not json",
            headers={**teacher.headers, "Content-Type": "application/json"},
        )
    assert resp.status_code == 400
    assert resp.json()["error"] == {"message": "Invalid request payload", "statusCode": 400}


async def test_unknown_api_route_uses_the_envelope(campus):
    teacher = campus.user("teacher")
    async with campus.client() as client:
        resp = await client.get("/api/nowhere", headers=teacher.headers)
    assert resp.status_code == 404
    assert resp.json()["success"] is False
