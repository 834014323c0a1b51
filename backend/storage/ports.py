"""
Blob storage port used by assignment submissions and profile photos.

Keep it small and framework-agnostic so tests can supply simple fakes.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, Sequence


@dataclass(frozen=True)
class UploadedFile:
    """A file received from a multipart request, fully buffered."""

    filename: str
    content_type: str
    body: bytes

    @property
    def size(self) -> int:
        return len(self.body)


class BlobStorage(Protocol):
    """Upload objects and hand out retrievable URLs.

    Permissions:
        Implementations run with the backend's service credentials; callers
        must have authorized the write before calling.
    """

    def put_object(self, *, bucket: str, key: str, body: bytes, content_type: str, upsert: bool = False) -> None: ...

    def public_url(self, *, bucket: str, key: str) -> str: ...

    def remove_objects(self, *, bucket: str, keys: Sequence[str]) -> None: ...


class StorageNotConfigured(RuntimeError):
    """Raised by NullStorage when no storage backend has been wired."""


class NullStorage:
    """Fallback adapter that signals the storage backend is not configured."""

    def put_object(self, *, bucket: str, key: str, body: bytes, content_type: str, upsert: bool = False) -> None:
        raise StorageNotConfigured("storage_adapter_not_configured")

    def public_url(self, *, bucket: str, key: str) -> str:
        raise StorageNotConfigured("storage_adapter_not_configured")

    def remove_objects(self, *, bucket: str, keys: Sequence[str]) -> None:
        raise StorageNotConfigured("storage_adapter_not_configured")


__all__ = ["BlobStorage", "NullStorage", "StorageNotConfigured", "UploadedFile"]
