"""Middleware that resolves the caller's user id once per request."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING

from starlette.middleware.base import BaseHTTPMiddleware

from src.auth.config import get_user_id
from src.auth.context import AUTH_SKIP_PATHS
from src.auth.exceptions import AuthenticationError
from src.middleware.error_handlers import handle_authentication_errors


if TYPE_CHECKING:
    from fastapi import Request, Response


logger = logging.getLogger(__name__)


class AuthInjectionMiddleware(BaseHTTPMiddleware):
    """Inject request.state.user_id for protected routes."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        path = request.url.path

        if any(path.startswith(skip) for skip in AUTH_SKIP_PATHS):
            request.state.user_id = None
            return await call_next(request)

        try:
            request.state.user_id = await get_user_id(request)
        except AuthenticationError as e:
            # Exception handlers do not see errors raised in middleware
            logger.info("Auth error in middleware for %s: %s", path, type(e).__name__)
            return await handle_authentication_errors(request, e)
        return await call_next(request)
