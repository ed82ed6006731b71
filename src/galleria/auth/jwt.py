"""Supabase access-token verification against the project's JWKS."""

import asyncio
import logging
import time
import uuid
from typing import Any, Dict, Optional

import httpx
from jose import jwt, JWTError

from galleria.auth.config import get_auth_settings

logger = logging.getLogger(__name__)

_jwks_cache: Dict[str, Any] = {}
_jwks_fetched_at: float = 0.0
_jwks_inflight: Optional[asyncio.Future] = None


def _fetch_jwks_sync() -> Dict:
    """Blocking JWKS download; only called through run_in_executor."""
    settings = get_auth_settings()
    if not settings.supabase_url:
        raise JWTError("SUPABASE_URL is not configured")
    try:
        response = httpx.get(settings.jwks_url, timeout=settings.jwks_timeout_seconds)
        response.raise_for_status()
        return response.json()
    except httpx.HTTPError as e:
        raise JWTError(f"Failed to fetch JWKS from {settings.jwks_url}: {str(e)}")


def _cache_is_fresh() -> bool:
    ttl = get_auth_settings().jwks_cache_ttl_seconds
    return bool(_jwks_cache) and time.monotonic() - _jwks_fetched_at < ttl


async def get_jwks(force_refresh: bool = False) -> Dict:
    """Return the cached JWKS, fetching it when stale. Concurrent callers share one fetch."""
    global _jwks_cache, _jwks_fetched_at, _jwks_inflight

    if not force_refresh and _cache_is_fresh():
        return _jwks_cache

    if _jwks_inflight is not None:
        return await _jwks_inflight

    loop = asyncio.get_running_loop()
    _jwks_inflight = asyncio.ensure_future(loop.run_in_executor(None, _fetch_jwks_sync))
    try:
        _jwks_cache = await _jwks_inflight
        _jwks_fetched_at = time.monotonic()
        return _jwks_cache
    finally:
        _jwks_inflight = None


def _key_ids(jwks: Dict) -> set:
    return {key.get("kid") for key in jwks.get("keys", []) if key.get("kid")}


async def verify_supabase_jwt(token: str) -> Dict[str, Any]:
    """Verify signature, expiry and audience; return the decoded claims.

    A token signed with a key id missing from the cached JWKS triggers one
    forced refetch, so rotated Supabase keys are picked up before the TTL
    runs out.

    Raises:
        JWTError: If the token is malformed, expired or fails verification
    """
    settings = get_auth_settings()

    try:
        key_id = jwt.get_unverified_header(token).get("kid")
        jwks = await get_jwks()
        if key_id and key_id not in _key_ids(jwks):
            logger.info("Unknown JWKS key id %s; refreshing keys", key_id)
            jwks = await get_jwks(force_refresh=True)

        return jwt.decode(
            token,
            jwks,
            algorithms=[settings.jwt_algorithm],
            audience=settings.jwt_audience,
            options={
                "verify_signature": True,
                "verify_exp": True,
                "verify_aud": True,
            }
        )

    except JWTError as e:
        raise JWTError(f"JWT verification failed: {str(e)}")


async def get_supabase_uid_from_token(token: str) -> uuid.UUID:
    """Return the verified 'sub' claim as the profile key.

    Raises:
        JWTError: If the token is invalid or its subject is not a UUID
    """
    decoded = await verify_supabase_jwt(token)
    subject = decoded.get("sub")
    if not subject:
        raise JWTError("Token has no subject")
    try:
        return uuid.UUID(str(subject))
    except ValueError:
        raise JWTError("Token subject is not a user id")


def clear_jwks_cache() -> None:
    """Drop cached keys so the next verification refetches them."""
    global _jwks_cache, _jwks_fetched_at
    _jwks_cache = {}
    _jwks_fetched_at = 0.0
