"""
Request dependencies.

Resolves the calling user from an `Authorization: Bearer <jwt>` header via
Supabase Auth.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import Header

from repositories.client import get_supabase
from services.errors import NotAuthenticated

logger = logging.getLogger(__name__)


def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def _resolve_user_id(token: str) -> Optional[str]:
    try:
        response = get_supabase().auth.get_user(token)
    except Exception as e:
        logger.info(f"Supabase auth rejected bearer token: {str(e)}")
        return None

    user = getattr(response, "user", None)
    return str(user.id) if user is not None else None


def get_optional_user_id(authorization: Optional[str] = Header(default=None)) -> Optional[str]:
    """User id for the bearer token, or None for anonymous/invalid callers."""

    token = _bearer_token(authorization)
    if token is None:
        return None
    return _resolve_user_id(token)


def get_current_user_id(authorization: Optional[str] = Header(default=None)) -> str:
    """User id for the bearer token; raises NotAuthenticated otherwise."""

    user_id = get_optional_user_id(authorization)
    if user_id is None:
        raise NotAuthenticated()
    return user_id
