"""AuthContext: the authenticated user id paired with the request session."""

from __future__ import annotations

from typing import Annotated
from uuid import UUID

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from src.auth.dependencies import UserId
from src.database.session import DbSession


class AuthContext:
    """Request-scoped identity. Progress rows are always scoped by `user_id`."""

    def __init__(self, user_id: UUID, session: AsyncSession) -> None:
        self.user_id = user_id
        self.session = session


async def get_auth_context(user_id: UserId, session: DbSession) -> AuthContext:
    """Build an AuthContext for the current request."""
    return AuthContext(user_id=user_id, session=session)


CurrentAuth = Annotated[AuthContext, Depends(get_auth_context)]


# Paths that bypass auth enforcement in the middleware
AUTH_SKIP_PATHS: list[str] = [
    "/health",
    "/docs",
    "/redoc",
    "/openapi.json",
]
