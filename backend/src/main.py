import asyncio
import logging
from collections.abc import AsyncGenerator, Awaitable, Callable
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any
from uuid import uuid4

from dotenv import load_dotenv


# Load .env FIRST before any other imports that might need env vars
BACKEND_DIR = Path(__file__).parent.parent
ENV_PATH = BACKEND_DIR / ".env"
load_dotenv(ENV_PATH)

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from sqlalchemy.exc import DatabaseError, IntegrityError, OperationalError
from starlette.middleware.sessions import SessionMiddleware
from starlette.requests import Request

from .auth.exceptions import AuthenticationError
from .auth.middleware import AuthInjectionMiddleware
from .classes.router import router as classes_router
from .config.logging import setup_logging
from .config.settings import get_settings
from .database.base import create_all_tables
from .database.engine import engine
from .database.session import async_session_maker
from .exams.router import router as exams_router
from .exceptions import (
    ConflictError,
    ResourceNotFoundError,
    TransientStoreError,
    ValidationError as CustomValidationError,
)
from .middleware.error_handlers import (
    ErrorCategory,
    ErrorCode,
    format_error_response,
    handle_authentication_errors,
    handle_conflict_errors,
    handle_database_errors,
    handle_not_found_errors,
    handle_transient_store_errors,
    handle_validation_errors,
    log_error_context,
)
from .middleware.security import SimpleSecurityMiddleware, limiter
from .progress.clock import system_clock
from .progress.router import router as progress_router
from .progress.sweeper import TimerSweeper


setup_logging()
logger = logging.getLogger(__name__)


def _register_routers(app: FastAPI) -> None:
    """Register all application routers."""
    app.include_router(classes_router)
    app.include_router(progress_router)
    app.include_router(exams_router)


async def _handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    """Last-resort handler: generic body, full context in the logs under an error id."""
    error_id = uuid4()
    log_error_context(request, exc, error_id)
    return format_error_response(
        category=ErrorCategory.INTERNAL,
        code=ErrorCode.INTERNAL,
        detail="An unexpected error occurred",
        status_code=500,
        metadata={"error_id": str(error_id)},
        suggestions=["Please try again later", "If the problem persists, contact support with the error ID"],
    )


# Most specific first; SQLAlchemy subclasses must precede DatabaseError
EXCEPTION_HANDLERS: list[tuple[type[Exception], Callable[[Request, Any], Awaitable[JSONResponse]]]] = [
    (ResourceNotFoundError, handle_not_found_errors),
    (ConflictError, handle_conflict_errors),
    (TransientStoreError, handle_transient_store_errors),
    (CustomValidationError, handle_validation_errors),
    (AuthenticationError, handle_authentication_errors),
    (RequestValidationError, handle_validation_errors),
    (ValidationError, handle_validation_errors),
    (IntegrityError, handle_database_errors),
    (OperationalError, handle_database_errors),
    (DatabaseError, handle_database_errors),
    (Exception, _handle_unexpected_error),
]


def _register_exception_handlers(app: FastAPI) -> None:
    for exc_class, handler in EXCEPTION_HANDLERS:
        app.add_exception_handler(exc_class, handler)


async def _startup_database() -> None:
    """Create tables, retrying while the database comes up."""
    max_retries = 5
    retry_delay = 1  # seconds

    for attempt in range(max_retries):
        try:
            await create_all_tables()
            logger.info("Database initialization completed successfully")
            break

        except OperationalError:
            if attempt == max_retries - 1:
                logger.exception("Startup failed after %d attempts", max_retries)
                raise

            logger.warning(
                "Database connection attempt %d failed, retrying in %ds...",
                attempt + 1,
                retry_delay,
            )
            await asyncio.sleep(retry_delay)
            retry_delay *= 2


async def _shutdown_cleanup(sweeper: TimerSweeper) -> None:
    """Clean up resources on shutdown."""
    logger.info("Starting graceful shutdown...")

    await sweeper.stop()

    try:
        await engine.dispose()
        logger.info("Database engine disposed successfully")
    except OperationalError as e:
        logger.warning(f"Error disposing database engine: {e}")

    logger.info("Shutdown complete")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan events."""
    settings = get_settings()
    await _startup_database()

    sweeper = TimerSweeper(async_session_maker, system_clock, settings.TIMER_SWEEP_INTERVAL_SECONDS)
    sweeper.start()
    app.state.timer_sweeper = sweeper

    yield

    await _shutdown_cleanup(sweeper)


def create_app() -> FastAPI:
    """Create and configure FastAPI application."""
    try:
        settings = get_settings()
    except Exception:
        logger.exception("Failed to load settings")
        raise

    app = FastAPI(
        title="Class Progression API",
        description="Gated class progression: videos, unlock timers, assessments and the final exam",
        version="0.1.0",
        debug=settings.DEBUG,
        lifespan=lifespan if settings.ENVIRONMENT != "test" else None,
    )

    # allow_credentials=True rules out allow_origins=["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_middleware(GZipMiddleware, minimum_size=1000)

    # Session middleware for cookie handling
    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.SECRET_KEY,
        https_only=settings.ENVIRONMENT == "production",
    )

    app.add_middleware(SimpleSecurityMiddleware)

    # Rate limiting
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    app.add_middleware(AuthInjectionMiddleware)

    _register_exception_handlers(app)

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        """Check application health status."""
        return {"status": "healthy"}

    _register_routers(app)

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn

    from src.config import env

    host = env("API_HOST", "127.0.0.1")
    port = int(env("API_PORT", "8080"))

    uvicorn.run(app, host=host, port=port)
