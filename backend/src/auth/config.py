"""User id resolution: single-user mode or Supabase token validation."""

import logging
from uuid import UUID

from fastapi import Request
from fastapi.concurrency import run_in_threadpool
from supabase import Client, create_client

from src.auth.exceptions import (
    InvalidTokenError,
    MissingTokenError,
    SupabaseConfigError,
    TokenExpiredError,
    UnknownAuthProviderError,
)
from src.config.settings import get_settings


logger = logging.getLogger(__name__)

# Every request resolves to this id when AUTH_PROVIDER is "none"
DEFAULT_USER_ID = UUID("00000000-0000-0000-0000-000000000001")

_supabase: Client | None = None


def get_supabase_client() -> Client | None:
    """Create the Supabase client once, on first use."""
    global _supabase  # noqa: PLW0603
    settings = get_settings()
    if _supabase is None and settings.AUTH_PROVIDER == "supabase" and settings.SUPABASE_URL:
        _supabase = create_client(settings.SUPABASE_URL, settings.SUPABASE_PUBLISHABLE_KEY)
    return _supabase


def _extract_token_from_request(request: Request) -> str | None:
    """Extract JWT token from request headers or cookies."""
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header.removeprefix("Bearer ")

    # httpOnly cookie auth; the cookie may carry the "Bearer " prefix too
    cookie_token = request.cookies.get("access_token")
    if cookie_token:
        return cookie_token.removeprefix("Bearer ")

    return None


async def _validate_supabase_token(token: str) -> UUID:
    """Validate a Supabase access token and return its user id."""
    supabase = get_supabase_client()
    if supabase is None:
        logger.error("Supabase client not initialized")
        raise SupabaseConfigError

    try:
        # The Supabase client is synchronous
        response = await run_in_threadpool(supabase.auth.get_user, token)
    except Exception as e:
        error_msg = str(e).lower()
        if "expired" in error_msg:
            logger.debug("Token expired; client should refresh")
            raise TokenExpiredError from e
        logger.warning("Token validation failed: %s", type(e).__name__)
        raise InvalidTokenError from e

    if response and response.user and response.user.id:
        user_id = UUID(str(response.user.id))
        logger.debug(f"Authenticated user: {user_id}")
        return user_id

    logger.warning("Token validation returned no user")
    raise InvalidTokenError


async def get_user_id(request: Request) -> UUID:
    """Resolve the caller's user id.

    Single-user mode always answers DEFAULT_USER_ID and is refused in production.
    Supabase mode validates the token and never falls back to the default user.
    """
    settings = get_settings()

    if settings.AUTH_PROVIDER == "none":
        if settings.ENVIRONMENT == "production":
            logger.error("AUTH_PROVIDER='none' is not allowed in production")
            raise UnknownAuthProviderError("none")
        return DEFAULT_USER_ID

    if settings.AUTH_PROVIDER == "supabase":
        token = _extract_token_from_request(request)
        if not token:
            logger.warning("Missing Authorization header and access_token cookie")
            raise MissingTokenError
        return await _validate_supabase_token(token)

    logger.error(f"Unknown auth provider: {settings.AUTH_PROVIDER}")
    raise UnknownAuthProviderError(settings.AUTH_PROVIDER)
