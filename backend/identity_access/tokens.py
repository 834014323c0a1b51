"""
Supabase access-token verification for the identity_access bounded context.

Why: Keep cryptographic validation of bearer tokens outside the web adapter so
we can unit test it independently and swap the verification source.

Two verification sources are supported:
- Legacy Supabase projects sign access tokens with the shared JWT secret
  (HS256). Configure `SUPABASE_JWT_SECRET`.
- Projects using asymmetric signing keys publish a JWKS at
  `{SUPABASE_URL}/auth/v1/.well-known/jwks.json`. Used when no secret is set.

Audience, issuer (JWKS mode), and temporal claims are enforced in both modes.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple
import time

import requests
from jose import jwt
from jose.exceptions import JOSEError

from backend.identity_access.domain import Identity


class TokenVerificationError(Exception):
    """Raised when the access token fails verification."""

    def __init__(self, code: str):
        super().__init__(code)
        self.code = code


@dataclass
class _CacheEntry:
    jwks: Dict[str, object]
    expires_at: float


class JWKSCache:
    """Small in-memory cache for JWKS responses keyed by project URL."""

    def __init__(self, ttl_seconds: int = 300):
        self.ttl_seconds = ttl_seconds
        self._entries: Dict[str, _CacheEntry] = {}

    def get(self, supabase_url: str) -> Dict[str, object]:
        now = time.time()
        entry = self._entries.get(supabase_url)
        if entry and entry.expires_at > now:
            return entry.jwks
        jwks = self._fetch(supabase_url)
        self._entries[supabase_url] = _CacheEntry(jwks=jwks, expires_at=now + self.ttl_seconds)
        return jwks

    def _fetch(self, supabase_url: str) -> Dict[str, object]:
        url = f"{supabase_url.rstrip('/')}/auth/v1/.well-known/jwks.json"
        try:
            resp = requests.get(url, timeout=5)
        except requests.RequestException as exc:
            raise TokenVerificationError("jwks_fetch_failed") from exc
        if resp.status_code != 200:
            raise TokenVerificationError("jwks_fetch_failed")
        try:
            jwks = resp.json()
        except ValueError as exc:
            raise TokenVerificationError("jwks_invalid") from exc
        if not isinstance(jwks, dict) or "keys" not in jwks:
            raise TokenVerificationError("jwks_invalid")
        return jwks


JWKS_CACHE = JWKSCache()

MAX_CLOCK_SKEW_SECONDS = 5


@dataclass(frozen=True)
class TokenConfig:
    supabase_url: str = ""
    jwt_secret: str = ""
    audience: str = "authenticated"


def verify_access_token(
    *,
    token: str,
    cfg: TokenConfig,
    cache: JWKSCache | None = None,
) -> Identity:
    """Validate a Supabase access token and return the caller identity.

    Raises
    ------
    TokenVerificationError:
        When the token is malformed, badly signed, expired, issued for another
        audience, or lacks a subject/email.
    """
    if not token or token.count(".") != 2:
        raise TokenVerificationError("malformed_token")
    try:
        header = jwt.get_unverified_header(token)
    except JOSEError as exc:
        raise TokenVerificationError("malformed_token") from exc

    key, algorithms, issuer = _resolve_key(header, cfg, cache or JWKS_CACHE)
    options = {
        "verify_signature": True,
        "verify_aud": bool(cfg.audience),
        "verify_exp": False,
        "verify_iat": False,
        "verify_nbf": False,
        "verify_at_hash": False,
    }
    try:
        claims = jwt.decode(
            token,
            key,
            algorithms=algorithms,
            audience=cfg.audience or None,
            issuer=issuer,
            options=options,
        )
    except JOSEError as exc:
        raise TokenVerificationError("invalid_token") from exc

    _validate_temporal_claims(claims)
    sub = claims.get("sub")
    email = claims.get("email")
    if not isinstance(sub, str) or not sub:
        raise TokenVerificationError("missing_sub")
    if not isinstance(email, str) or not email:
        raise TokenVerificationError("missing_email")
    return Identity(user_id=sub, email=email)


def make_verifier(cfg: TokenConfig, cache: JWKSCache | None = None) -> Callable[[str], Identity]:
    """Bind a config into a `token -> Identity` callable for the web layer."""

    def _verify(token: str) -> Identity:
        return verify_access_token(token=token, cfg=cfg, cache=cache)

    return _verify


def _resolve_key(
    header: Dict[str, object], cfg: TokenConfig, cache: JWKSCache
) -> Tuple[object, list[str], Optional[str]]:
    alg = str(header.get("alg") or "")
    if cfg.jwt_secret:
        if alg != "HS256":
            raise TokenVerificationError("unexpected_alg")
        return cfg.jwt_secret, ["HS256"], None
    if not cfg.supabase_url:
        raise TokenVerificationError("verifier_not_configured")
    kid = header.get("kid")
    if not kid:
        raise TokenVerificationError("missing_kid")
    key_dict = _find_key(cache.get(cfg.supabase_url), str(kid))
    if not key_dict:
        raise TokenVerificationError("unknown_kid")
    issuer = f"{cfg.supabase_url.rstrip('/')}/auth/v1"
    return key_dict, [str(key_dict.get("alg") or alg or "ES256")], issuer


def _find_key(jwks: Dict[str, object], kid: str) -> Dict[str, object] | None:
    keys = jwks.get("keys")
    if not isinstance(keys, list):
        return None
    for key in keys:
        if isinstance(key, dict) and key.get("kid") == kid:
            return key
    return None


def _validate_temporal_claims(claims: Dict[str, object]) -> None:
    now = time.time()
    exp = claims.get("exp")
    if not isinstance(exp, (int, float)):
        raise TokenVerificationError("invalid_token")
    if exp + MAX_CLOCK_SKEW_SECONDS < now:
        raise TokenVerificationError("token_expired")

    iat = claims.get("iat")
    if isinstance(iat, (int, float)) and iat - MAX_CLOCK_SKEW_SECONDS > now:
        raise TokenVerificationError("invalid_token")

    nbf = claims.get("nbf")
    if isinstance(nbf, (int, float)) and nbf - MAX_CLOCK_SKEW_SECONDS > now:
        raise TokenVerificationError("invalid_token")


__all__ = [
    "JWKSCache",
    "TokenConfig",
    "TokenVerificationError",
    "make_verifier",
    "verify_access_token",
]
