"""
Notification inbox routes: own notifications only, read state, admin sends.
"""
from __future__ import annotations

import pytest

pytestmark = pytest.mark.anyio("asyncio")


def _seed_inbox(campus, actor, count):
    return campus.repo.insert_notifications(
        [{"user_id": actor.user_id, "title": f"Notice {i}", "message": "m", "type": "info"} for i in range(count)]
    )


async def test_inbox_lists_counts_and_marks_read(campus):
    student, _ = campus.student()
    rows = _seed_inbox(campus, student, 3)
    async with campus.client() as client:
        listed = await client.get("/api/notifications?limit=2", headers=student.headers)
        unread = await client.get("/api/notifications/unread-count", headers=student.headers)
        one = await client.patch(f"/api/notifications/{rows[0]['id']}/read", headers=student.headers)
        after_one = await client.get("/api/notifications/unread-count", headers=student.headers)
        rest = await client.patch("/api/notifications/read-all", headers=student.headers)
        after_all = await client.get("/api/notifications/unread-count", headers=student.headers)

    assert len(listed.json()["data"]) == 2
    assert unread.json()["data"] == {"count": 3}
    assert one.json()["data"]["is_read"] is True
    assert after_one.json()["data"] == {"count": 2}
    assert rest.json()["data"] == {"updated": 2}
    assert after_all.json()["data"] == {"count": 0}


async def test_another_users_notification_is_not_found(campus):
    owner, _ = campus.student()
    intruder, _ = campus.student(name="Ravi Kumar")
    [row] = _seed_inbox(campus, owner, 1)
    async with campus.client() as client:
        resp = await client.patch(f"/api/notifications/{row['id']}/read", headers=intruder.headers)
        theirs = await client.get("/api/notifications", headers=intruder.headers)

    assert resp.status_code == 404
    assert resp.json()["error"]["message"] == "Notification not found"
    assert campus.repo.notifications[row["id"]]["is_read"] is False
    assert theirs.json()["data"] == []


async def test_admin_sends_a_direct_notification(campus):
    admin = campus.user("admin")
    teacher = campus.user("teacher")
    async with campus.client() as client:
        sent = await client.post(
            "/api/notifications",
            json={"userId": teacher.user_id, "title": "Staff meeting", "message": "Room 4 at 3pm", "type": "warning"},
            headers=admin.headers,
        )
        bad_type = await client.post(
            "/api/notifications",
            json={"userId": teacher.user_id, "title": "Hi", "message": "x", "type": "urgent"},
            headers=admin.headers,
        )
        denied = await client.post(
            "/api/notifications",
            json={"userId": admin.user_id, "title": "Hi", "message": "x"},
            headers=teacher.headers,
        )

    assert sent.status_code == 201
    [notice] = campus.notifications_for(teacher)
    assert (notice["title"], notice["type"]) == ("Staff meeting", "warning")
    assert bad_type.status_code == 400
    assert denied.status_code == 403
    assert campus.notifications_for(admin) == []
