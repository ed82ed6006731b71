"""Supabase Authentication module for Galleria.

This module handles:
- JWT verification via Supabase JWKS endpoint
- User profiles carrying the gallery role
- Resolving the request principal for permission checks
"""

from galleria.auth.config import get_auth_settings
from galleria.auth.jwt import verify_supabase_jwt, get_supabase_uid_from_token
from galleria.auth.models import UserProfile

__all__ = [
    "get_auth_settings",
    "verify_supabase_jwt",
    "get_supabase_uid_from_token",
    "UserProfile",
]
