"""Notification inbox: list, count, mark read, and privileged direct sends."""
from __future__ import annotations

from typing import Any, Dict, List, Optional, Protocol, Sequence

from backend.campus.errors import NotFound, ValidationError
from backend.identity_access.domain import Principal
from backend.notifications.fanout import NotificationType

DEFAULT_LIMIT = 50
MAX_LIMIT = 100


class InboxRepo(Protocol):
    def list_notifications(self, user_id: str, *, limit: int) -> List[Dict[str, Any]]: ...

    def count_unread_notifications(self, user_id: str) -> int: ...

    def mark_notification_read(self, notification_id: str, *, user_id: str) -> Optional[Dict[str, Any]]: ...

    def mark_all_notifications_read(self, user_id: str) -> int: ...

    def insert_notifications(self, rows: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]: ...


class NotificationInbox:
    def __init__(self, repo: InboxRepo) -> None:
        self._repo = repo

    def list_mine(self, principal: Principal, *, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        lim = DEFAULT_LIMIT if limit is None else max(1, min(MAX_LIMIT, int(limit)))
        return self._repo.list_notifications(principal.user_id, limit=lim)

    def unread_count(self, principal: Principal) -> int:
        return self._repo.count_unread_notifications(principal.user_id)

    def mark_read(self, principal: Principal, notification_id: str) -> Dict[str, Any]:
        # Someone else's notification is reported exactly like a missing one.
        row = self._repo.mark_notification_read(notification_id, user_id=principal.user_id)
        if row is None:
            raise NotFound("Notification not found")
        return row

    def mark_all_read(self, principal: Principal) -> int:
        return self._repo.mark_all_notifications_read(principal.user_id)

    def send(
        self,
        *,
        user_id: str,
        title: str,
        message: str,
        type: str = NotificationType.INFO.value,
        link: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Insert one notification directly. Errors propagate, unlike fanout."""
        title = (title or "").strip()
        message = (message or "").strip()
        if not user_id:
            raise ValidationError("userId is required")
        if not title or len(title) > 200:
            raise ValidationError("title is required and must be under 200 characters")
        if not message:
            raise ValidationError("message is required")
        try:
            kind = NotificationType(str(type or "info").lower())
        except ValueError:
            allowed = ", ".join(t.value for t in NotificationType)
            raise ValidationError(f"type must be one of: {allowed}") from None
        rows = self._repo.insert_notifications(
            [{"user_id": user_id, "title": title, "message": message, "type": kind.value, "link": link}]
        )
        return rows[0]


__all__ = ["NotificationInbox", "DEFAULT_LIMIT", "MAX_LIMIT"]
