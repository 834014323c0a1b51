"""
Identity domain types: roles and the per-request principal.

The principal is resolved once per request (verified identity + fresh role
lookup) and passed explicitly to every service call.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Role(str, Enum):
    ADMIN = "admin"
    TEACHER = "teacher"
    STUDENT = "student"

    @classmethod
    def parse(cls, value: object) -> "Role":
        """Return the Role for `value` (case-insensitive) or raise ValueError."""
        text = str(value or "").strip().lower()
        try:
            return cls(text)
        except ValueError:
            raise ValueError("invalid_role") from None


@dataclass(frozen=True)
class Identity:
    """Verified bearer-token identity, before role resolution."""

    user_id: str
    email: str


@dataclass(frozen=True)
class Principal:
    user_id: str
    email: str
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN


__all__ = ["Identity", "Principal", "Role"]
