"""FastAPI authentication dependencies.

The resolution logic lives in config.py; this module wraps it for use as a
FastAPI dependency.
"""

from typing import Annotated
from uuid import UUID

from fastapi import Depends, Request

from src.auth.config import get_user_id


async def _get_user_id(request: Request) -> UUID:
    """Return the user id set by AuthInjectionMiddleware, resolving it if absent."""
    user_id = getattr(request.state, "user_id", None)
    if user_id is not None:
        return user_id
    return await get_user_id(request)


UserId = Annotated[UUID, Depends(_get_user_id)]
