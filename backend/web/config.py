"""
Configuration and startup security checks for CampusFlow.

Why: A campus API holds student records; an accidental insecure deployment is
worse than a failed one. Settings are read from the environment once per
call to `load_settings()`, and `ensure_secure_config_on_startup()` aborts the
process on fatal misconfiguration in prod-like environments. Development
stays permissive.

Permissions: The caller needs no special privileges. The functions only read
environment variables and raise `SystemExit` on fatal misconfiguration.
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Tuple

DEFAULT_MAX_UPLOAD_BYTES = 10 * 1024 * 1024


def _is_prod_like(env: str) -> bool:
    env_l = (env or "").lower()
    return env_l in {"prod", "production", "stage", "staging"}


def _parse_int_env(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return value if value > 0 else default


@dataclass(frozen=True)
class CampusSettings:
    env: str = "dev"
    database_url: str = ""
    supabase_url: str = ""
    supabase_service_role_key: str = ""
    jwt_secret: str = ""
    jwt_audience: str = "authenticated"
    assets_bucket: str = "campusflow-assets"
    profile_bucket: str = "profile-photos"
    max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES
    cors_origins: Tuple[str, ...] = ()

    @property
    def is_prod_like(self) -> bool:
        return _is_prod_like(self.env)

    @property
    def storage_configured(self) -> bool:
        return bool(self.supabase_url and self.supabase_service_role_key)


def load_settings() -> CampusSettings:
    origins = tuple(o.strip() for o in (os.getenv("CORS_ORIGINS") or "").split(",") if o.strip())
    return CampusSettings(
        env=(os.getenv("CAMPUSFLOW_ENV") or "dev").strip().lower(),
        database_url=(os.getenv("DATABASE_URL") or os.getenv("SUPABASE_DB_URL") or "").strip(),
        supabase_url=(os.getenv("SUPABASE_URL") or "").strip().rstrip("/"),
        supabase_service_role_key=(os.getenv("SUPABASE_SERVICE_ROLE_KEY") or "").strip(),
        jwt_secret=(os.getenv("SUPABASE_JWT_SECRET") or "").strip(),
        jwt_audience=(os.getenv("SUPABASE_JWT_AUDIENCE") or "authenticated").strip(),
        assets_bucket=(os.getenv("CAMPUSFLOW_ASSETS_BUCKET") or "campusflow-assets").strip(),
        profile_bucket=(os.getenv("CAMPUSFLOW_PROFILE_BUCKET") or "profile-photos").strip(),
        max_upload_bytes=_parse_int_env("CAMPUSFLOW_MAX_UPLOAD_BYTES", DEFAULT_MAX_UPLOAD_BYTES),
        cors_origins=origins,
    )


def ensure_secure_config_on_startup(settings: CampusSettings | None = None) -> None:
    """Fail fast on insecure production configuration.

    Checks (prod/stage only):
    - SUPABASE_SERVICE_ROLE_KEY must be set and not a dummy placeholder.
    - A token verification source must exist (JWT secret or SUPABASE_URL for JWKS).
    - A database URL must be configured and must not disable TLS.
    - SUPABASE_URL must use https.
    - CORS_ORIGINS must not contain `*`.
    """
    cfg = settings or load_settings()
    if not cfg.is_prod_like:
        return

    srole = cfg.supabase_service_role_key
    if not srole or srole.upper() == "DUMMY_DO_NOT_USE":
        raise SystemExit(
            "Refusing to start: SUPABASE_SERVICE_ROLE_KEY is unset or a dummy placeholder in production."
        )

    if not cfg.jwt_secret and not cfg.supabase_url:
        raise SystemExit(
            "Refusing to start: set SUPABASE_JWT_SECRET or SUPABASE_URL so access tokens can be verified."
        )

    if not cfg.database_url:
        raise SystemExit("Refusing to start: DATABASE_URL is required in production.")
    if "sslmode=disable" in cfg.database_url:
        raise SystemExit(
            "Refusing to start: DATABASE_URL contains sslmode=disable in production. Use sslmode=require or verify TLS."
        )

    if cfg.supabase_url.lower().startswith("http://"):
        raise SystemExit("Refusing to start: SUPABASE_URL must use https in production (got http).")

    if "*" in cfg.cors_origins:
        raise SystemExit("Refusing to start: CORS_ORIGINS must list explicit origins in production.")


__all__ = ["CampusSettings", "DEFAULT_MAX_UPLOAD_BYTES", "ensure_secure_config_on_startup", "load_settings"]
