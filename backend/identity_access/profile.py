"""
Teacher and student profiles: the common profile row, the role-specific
details, the completion flag, and the profile photo.

Admins have no profile. Every write is keyed by the caller's own user id;
a client-supplied user id is never read.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol, Sequence

from backend.campus.errors import Forbidden, NotFound, ValidationError
from backend.campus.gate import GateContext, MutationGate, MutationRequest, OperationKind
from backend.campus.validation import non_negative_int, optional_text, parse_day, require_id
from backend.identity_access.domain import Principal, Role
from backend.storage.keys import make_profile_photo_key
from backend.storage.ports import BlobStorage, UploadedFile

logger = logging.getLogger("campusflow.storage")
profile_logger = logging.getLogger("campusflow.profile")

NO_PROFILE = "Admins do not have profiles"

# Completion refuses the profile while any of these is missing.
_REQUIRED_FOR_COMPLETION: Dict[Role, Sequence[str]] = {
    Role.STUDENT: ("firstName", "lastName", "branch", "degree", "registrationNumber"),
    Role.TEACHER: ("firstName", "lastName", "department", "qualification"),
}

_KIND_FOR_ROLE = {
    Role.STUDENT: OperationKind.UPDATE_STUDENT_PROFILE,
    Role.TEACHER: OperationKind.UPDATE_TEACHER_PROFILE,
}


class ProfileRepoProtocol(Protocol):
    def set_profile_photo(self, *, user_id: str, photo_url: Optional[str]) -> dict: ...

    def get_profile(self, user_id: str) -> Optional[dict]: ...

    def get_role_profile(self, user_id: str, *, role: str) -> Optional[dict]: ...

    def save_profile(
        self, *, user_id: str, role: str, base: Dict[str, Any], details: Dict[str, Any], complete: bool = False
    ) -> dict: ...


def _text(payload: Dict[str, Any], field: str) -> Optional[str]:
    return optional_text(payload, field, max_len=200)


def _optional_int(payload: Dict[str, Any], field: str) -> Optional[int]:
    value = payload.get(field)
    return None if value is None else non_negative_int(value, field)


def _subjects(payload: Dict[str, Any]) -> Optional[List[str]]:
    value = payload.get("subjectsTaught")
    if value is None:
        return None
    if not isinstance(value, list) or not all(isinstance(s, str) for s in value):
        raise ValidationError("subjectsTaught must be an array of strings")
    return [s.strip() for s in value if s.strip()]


def _drop_none(fields: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in fields.items() if v is not None}


def _validate_completion(role: Role, payload: Any) -> Dict[str, Any]:
    payload = payload if isinstance(payload, dict) else {}
    missing = [name for name in _REQUIRED_FOR_COMPLETION[role] if not _text(payload, name)]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")
    first, last = _text(payload, "firstName"), _text(payload, "lastName")
    dob = payload.get("dob")
    base = _drop_none(
        {
            "first_name": first,
            "last_name": last,
            "full_name": f"{first} {last}",
            "dob": parse_day(dob, "dob") if dob else None,
            "address": _text(payload, "address"),
        }
    )
    if role is Role.STUDENT:
        details = {
            "branch": _text(payload, "branch"),
            "degree": _text(payload, "degree"),
            "registration_number": _text(payload, "registrationNumber"),
        }
    else:
        details = _drop_none(
            {
                "department": _text(payload, "department"),
                "qualification": _text(payload, "qualification"),
                "experience_years": _optional_int(payload, "experienceYears"),
                "subjects_taught": _subjects(payload),
            }
        )
    return {"base": base, "details": details}


def _validate_student_details(payload: Any) -> Dict[str, Any]:
    payload = payload if isinstance(payload, dict) else {}
    details = _drop_none(
        {
            "roll_no": _text(payload, "rollNo"),
            "class_id": require_id(payload, "classId") if payload.get("classId") is not None else None,
            "admission_year": _optional_int(payload, "admissionYear"),
        }
    )
    if not details:
        raise ValidationError("No profile fields to update")
    return details


def _validate_teacher_details(payload: Any) -> Dict[str, Any]:
    payload = payload if isinstance(payload, dict) else {}
    details = _drop_none(
        {
            "department": _text(payload, "department"),
            "qualification": _text(payload, "qualification"),
            "experience_years": _optional_int(payload, "experienceYears"),
        }
    )
    if not details:
        raise ValidationError("No profile fields to update")
    return details


@dataclass
class ProfileService:
    repo: ProfileRepoProtocol
    gate: MutationGate

    def my_profile(self, principal: Principal) -> dict:
        if principal.is_admin:
            raise Forbidden(NO_PROFILE)
        profile = self.repo.get_profile(principal.user_id)
        if profile is None:
            raise NotFound("Profile not found")
        return {**profile, "role": principal.role.value, "details": self._details(principal)}

    def completion_status(self, principal: Principal) -> dict:
        """Admins are always complete; others need a profile flagged complete."""
        role = principal.role.value
        if principal.is_admin:
            return {"isComplete": True, "role": role, "message": "Admins don't need profiles", "profile": None}
        profile = self.repo.get_profile(principal.user_id)
        if profile is None:
            message = "Profile not found. Please complete your profile."
            return {"isComplete": False, "role": role, "message": message, "profile": None}
        complete = bool(profile.get("is_profile_complete"))
        return {
            "isComplete": complete,
            "role": role,
            "message": "Profile complete" if complete else "Profile incomplete",
            "profile": {**profile, "details": self._details(principal)},
        }

    def complete(self, principal: Principal, role: Role, payload: Dict[str, Any]) -> dict:
        """Save the mandatory fields for `role` and flag the profile complete.

        The gate admits only callers holding `role`, so a teacher cannot fill
        in a student profile and admins are refused outright.
        """

        def persist(ctx: GateContext) -> dict:
            saved = self.repo.save_profile(
                user_id=principal.user_id,
                role=role.value,
                base=ctx.payload["base"],
                details=ctx.payload["details"],
                complete=True,
            )
            profile_logger.info("Profile completed role=%s user=%s", role.value, principal.user_id[-6:])
            return saved

        request = MutationRequest(kind=_KIND_FOR_ROLE[role], actor=principal, payload=payload)
        return self.gate.execute(request, validate=lambda p: _validate_completion(role, p), persist=persist)

    def update_student_details(self, principal: Principal, payload: Dict[str, Any]) -> dict:
        return self._update_details(principal, Role.STUDENT, payload, _validate_student_details)

    def update_teacher_details(self, principal: Principal, payload: Dict[str, Any]) -> dict:
        return self._update_details(principal, Role.TEACHER, payload, _validate_teacher_details)

    def _update_details(self, principal: Principal, role: Role, payload: Dict[str, Any], validate) -> dict:
        def persist(ctx: GateContext) -> dict:
            saved = self.repo.save_profile(user_id=principal.user_id, role=role.value, base={}, details=ctx.payload)
            return saved["details"]

        request = MutationRequest(kind=_KIND_FOR_ROLE[role], actor=principal, payload=payload)
        return self.gate.execute(request, validate=validate, persist=persist)

    def _details(self, principal: Principal) -> Optional[dict]:
        return self.repo.get_role_profile(principal.user_id, role=principal.role.value)


@dataclass
class ProfilePhotoService:
    repo: ProfileRepoProtocol
    gate: MutationGate
    storage: BlobStorage
    bucket: str = "profile-photos"
    max_bytes: int = 10 * 1024 * 1024

    def _validate(self, file: Optional[UploadedFile]) -> UploadedFile:
        if file is None or not file.body:
            raise ValidationError("Photo is required")
        if not (file.content_type or "").lower().startswith("image/"):
            raise ValidationError("Only image uploads are allowed")
        if file.size > self.max_bytes:
            raise ValidationError(f"File exceeds the maximum size of {self.max_bytes} bytes")
        return file

    def upload(self, principal: Principal, file: Optional[UploadedFile]) -> dict:
        """Store the photo under a per-user key (overwriting) and save its URL."""

        def persist(ctx: GateContext) -> dict:
            key = make_profile_photo_key(user_id=principal.user_id)
            self.storage.put_object(
                bucket=self.bucket, key=key, body=ctx.payload.body, content_type=ctx.payload.content_type, upsert=True
            )
            url = self.storage.public_url(bucket=self.bucket, key=key)
            logger.info("Profile photo stored user=%s size=%d", principal.user_id[-6:], ctx.payload.size)
            return self.repo.set_profile_photo(user_id=principal.user_id, photo_url=url)

        request = MutationRequest(kind=OperationKind.MANAGE_PROFILE_PHOTO, actor=principal, payload=file)
        return self.gate.execute(request, validate=self._validate, persist=persist)

    def remove(self, principal: Principal) -> dict:
        def persist(ctx: GateContext) -> dict:
            self.storage.remove_objects(bucket=self.bucket, keys=[make_profile_photo_key(user_id=principal.user_id)])
            return self.repo.set_profile_photo(user_id=principal.user_id, photo_url=None)

        return self.gate.execute(MutationRequest(kind=OperationKind.MANAGE_PROFILE_PHOTO, actor=principal), persist=persist)


__all__ = ["NO_PROFILE", "ProfilePhotoService", "ProfileService"]
