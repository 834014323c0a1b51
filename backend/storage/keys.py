"""
Helpers to generate storage keys for Supabase Storage.

Conventions:
    - Assignment submissions: assignments/{assignment}/{student}_{epoch_ms}_{filename}
    - Profile photos: profile-photos/{user}.jpg
    - Generic uploads: {user}/{folder...}/{filename} or {user}/{epoch_ms}-{filename}

Security:
    - Sanitization removes characters outside [A-Za-z0-9._-] from segments,
      so user-supplied filenames cannot introduce path traversal.
"""
from __future__ import annotations

import os
import re
import unicodedata

_SEGMENT_RE = re.compile(r"[^A-Za-z0-9._-]+")

MAX_FILENAME_LENGTH = 120


def _sanitize_segment(value: str, *, fallback: str = "x") -> str:
    value = value or ""
    normalized = unicodedata.normalize("NFKD", value)
    ascii_value = normalized.encode("ascii", "ignore").decode("ascii")
    sanitized = _SEGMENT_RE.sub("_", ascii_value).strip("-_.")
    return sanitized or fallback


def sanitize_filename(filename: str | None) -> str:
    """Keep a readable basename; the extension survives truncation."""
    base = os.path.basename(filename or "")
    stem, ext = os.path.splitext(base)
    ext = "".join(ch for ch in ext.lower() if ch.isalnum() or ch == ".")
    stem = _sanitize_segment(stem, fallback="file")
    room = max(1, MAX_FILENAME_LENGTH - len(ext))
    return f"{stem[:room]}{ext}"


def make_assignment_submission_key(*, assignment_id: str, student_id: str, filename: str, epoch_ms: int) -> str:
    """Build a storage key for an assignment submission.

    Returns: assignments/{assignment}/{student}_{epoch_ms}_{filename}
    """
    a = _sanitize_segment(assignment_id, fallback="assignment")
    s = _sanitize_segment(student_id, fallback="student")
    return f"assignments/{a}/{s}_{int(epoch_ms)}_{sanitize_filename(filename)}"


def make_profile_photo_key(*, user_id: str) -> str:
    return f"profile-photos/{_sanitize_segment(user_id, fallback='user')}.jpg"


def make_user_upload_key(*, user_id: str, filename: str, epoch_ms: int, folder: str | None = None) -> str:
    """Key a generic upload under the uploader's own prefix.

    A client folder is split on "/" and each segment sanitized; empty and
    dot-only segments are dropped, so the key never leaves `{user}/`.
    """
    u = _sanitize_segment(user_id, fallback="user")
    name = sanitize_filename(filename)
    segments = [_sanitize_segment(s, fallback="") for s in (folder or "").split("/")]
    segments = [s for s in segments if s]
    if segments:
        return "/".join([u, *segments, name])
    return f"{u}/{int(epoch_ms)}-{name}"


__all__ = ["make_assignment_submission_key", "make_profile_photo_key", "make_user_upload_key", "sanitize_filename"]
