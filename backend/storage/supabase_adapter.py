"""
Supabase-backed blob storage adapter.

Implements `BlobStorage` using a provided Supabase client. The client is
duck-typed to keep tests free of network access; it is expected to expose
`.storage.from_(bucket)` returning an object offering:

- upload(path, file, file_options) -> Any
- get_public_url(path) -> str | {publicUrl | public_url | data: {...}}
- remove([path, ...]) -> Any

Security:
- The caller must initialize the client with the service role key.
- Uploads land in public buckets only where the product requires a stable
  URL (submission files, profile photos).
"""
from __future__ import annotations

from typing import Any, Dict, Sequence


class SupabaseBlobStorage:
    """Blob storage adapter using a supabase client for Storage operations."""

    def __init__(self, client: Any):
        self._client = client

    # --- Helpers -----------------------------------------------------------------

    def _bucket(self, bucket: str) -> Any:
        storage = getattr(self._client, "storage", None)
        if storage is None or not hasattr(storage, "from_"):
            raise RuntimeError("invalid_supabase_client")
        return storage.from_(bucket)

    @staticmethod
    def _relative(bucket: str, key: str) -> str:
        # Supabase Storage paths are relative to the bucket.
        norm_key = key.lstrip("/")
        prefix = f"{bucket}/"
        if norm_key.startswith(prefix):
            norm_key = norm_key[len(prefix):]
        return norm_key

    @staticmethod
    def _first_key(d: Dict[str, Any], *keys: str) -> Any:
        for k in keys:
            if k in d and d[k] is not None:
                return d[k]
        return None

    # --- Port methods ------------------------------------------------------------

    def put_object(self, *, bucket: str, key: str, body: bytes, content_type: str, upsert: bool = False) -> None:
        """Upload bytes. Client exceptions propagate to the caller."""
        # supabase-py expects header-like string values in file_options.
        opts = {"content-type": content_type, "upsert": "true" if upsert else "false"}
        self._bucket(bucket).upload(self._relative(bucket, key), body, opts)

    def public_url(self, *, bucket: str, key: str) -> str:
        res = self._bucket(bucket).get_public_url(self._relative(bucket, key))
        url = None
        if isinstance(res, str):
            url = res
        elif isinstance(res, dict):
            url = self._first_key(res, "publicUrl", "public_url", "publicURL")
            data = res.get("data")
            if url is None and isinstance(data, dict):
                url = self._first_key(data, "publicUrl", "public_url", "publicURL")
        if not url:
            raise RuntimeError("failed_to_resolve_public_url")
        # Some client versions append a bare "?" to public URLs.
        return str(url).rstrip("?")

    def remove_objects(self, *, bucket: str, keys: Sequence[str]) -> None:
        if not keys:
            return
        self._bucket(bucket).remove([self._relative(bucket, k) for k in keys])


__all__ = ["SupabaseBlobStorage"]
