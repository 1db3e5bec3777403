"""Authentication module exports."""

from src.auth.config import DEFAULT_USER_ID, get_user_id
from src.auth.context import (
    AUTH_SKIP_PATHS,
    AuthContext,
    CurrentAuth,
)


__all__ = [
    "AUTH_SKIP_PATHS",
    "DEFAULT_USER_ID",
    "AuthContext",
    "CurrentAuth",
    "get_user_id",
]
