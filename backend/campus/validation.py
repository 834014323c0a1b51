"""Payload normalization helpers shared by the CampusFlow services.

All helpers raise `ValidationError` with a client-readable message naming the
offending field (camelCase, as clients send it).
"""
from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

from backend.campus.errors import ValidationError


def require_id(payload: Dict[str, Any], field: str) -> str:
    value = payload.get(field)
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError(f"{field} is required")
    text = str(value).strip()
    try:
        UUID(text)
    except ValueError:
        raise ValidationError(f"{field} must be a valid id") from None
    return text


def require_text(payload: Dict[str, Any], field: str, *, max_len: Optional[int] = None) -> str:
    value = payload.get(field)
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} is required")
    trimmed = value.strip()
    if max_len is not None and len(trimmed) > max_len:
        raise ValidationError(f"{field} must be under {max_len} characters")
    return trimmed


def optional_text(payload: Dict[str, Any], field: str, *, max_len: Optional[int] = None) -> Optional[str]:
    value = payload.get(field)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string")
    trimmed = value.strip()
    if max_len is not None and len(trimmed) > max_len:
        raise ValidationError(f"{field} must be under {max_len} characters")
    return trimmed or None


def non_negative_int(value: Any, field: str) -> int:
    """Accept ints and integral floats (JSON numbers); reject bools and strings."""
    if value is None:
        raise ValidationError(f"{field} is required")
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"{field} must be a non-negative integer")
    if isinstance(value, float) and not value.is_integer():
        raise ValidationError(f"{field} must be a non-negative integer")
    number = int(value)
    if number < 0:
        raise ValidationError(f"{field} must be a non-negative integer")
    return number


def positive_int(value: Any, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"{field} must be a positive number")
    if (isinstance(value, float) and not value.is_integer()) or value <= 0:
        raise ValidationError(f"{field} must be a positive number")
    return int(value)


def non_empty_list(payload: Dict[str, Any], field: str) -> List[Any]:
    value = payload.get(field)
    if not isinstance(value, list) or not value:
        raise ValidationError(f"{field} must be a non-empty array")
    return value


def parse_day(value: Any, field: str = "date") -> str:
    """Return an ISO calendar date; None means today (UTC)."""
    if value is None or value == "":
        return datetime.now(timezone.utc).date().isoformat()
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a date (YYYY-MM-DD)")
    try:
        return date.fromisoformat(value.strip()).isoformat()
    except ValueError:
        raise ValidationError(f"{field} must be a date (YYYY-MM-DD)") from None


def parse_instant(payload: Dict[str, Any], field: str) -> datetime:
    """Parse an ISO timestamp; naive values are taken as UTC."""
    value = payload.get(field)
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} is required")
    parsed = as_datetime(value)
    if parsed is None:
        raise ValidationError(f"{field} must be an ISO 8601 timestamp")
    return parsed


def as_datetime(value: Any) -> Optional[datetime]:
    """Coerce repository values (ISO strings or datetimes) into aware UTC datetimes."""
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def pagination(page: Any = None, limit: Any = None, *, default_limit: int = 10, max_limit: int = 100) -> Tuple[int, int, int]:
    """Return (page, limit, offset) with page >= 1 and 1 <= limit <= max_limit."""
    try:
        p = int(page) if page not in (None, "") else 1
        lim = int(limit) if limit not in (None, "") else default_limit
    except (TypeError, ValueError):
        raise ValidationError("page and limit must be integers") from None
    p = max(1, p)
    lim = max(1, min(max_limit, lim))
    return p, lim, (p - 1) * lim


def page_meta(total: int, page: int, limit: int) -> Dict[str, int]:
    return {"total": total, "page": page, "limit": limit, "totalPages": (total + limit - 1) // limit}


__all__ = [
    "as_datetime",
    "non_empty_list",
    "non_negative_int",
    "optional_text",
    "page_meta",
    "pagination",
    "parse_day",
    "parse_instant",
    "positive_int",
    "require_id",
    "require_text",
]
