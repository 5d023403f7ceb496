"""
Kindred — FastAPI application.

Wires the API routers under ``/api`` together with:
- structlog JSON logging and per-request context
- a lifespan that warms the DB pool, connects Redis when configured and
  drains in-flight requests on shutdown
- request timeout and request logging middleware
- exception handlers that render every failure as
  ``{"success": false, "error": ..., "code": ...}``
- ``/health`` and ``/health/deep`` checks
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from app.api.router import router as api_router
from app.config import get_settings
from app.database import async_session_factory, engine
from app.errors import AppError, ValidationError
from app.redis_client import close_redis, connect_redis, get_redis
from app.utils.storage import get_bucket

settings = get_settings()

# ──────────────────────────────────────────────────────────────────────────────
# Logging
# ──────────────────────────────────────────────────────────────────────────────


def _configure_logging(level_name: str) -> None:
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(level_name)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


_configure_logging(settings.LOG_LEVEL)
logger = structlog.get_logger("kindred")

REQUEST_TIMEOUT_SECONDS = 70.0
DRAIN_TIMEOUT_SECONDS = 15.0


# ──────────────────────────────────────────────────────────────────────────────
# In-flight request tracking
# ──────────────────────────────────────────────────────────────────────────────


class InFlightRequests:
    """Counts requests being served so shutdown can wait for them."""

    def __init__(self) -> None:
        self.count = 0

    def enter(self) -> None:
        self.count += 1

    def leave(self) -> None:
        self.count -= 1

    async def drain(self, timeout: float, poll_interval: float = 0.25) -> bool:
        """Wait for the counter to reach zero; False if ``timeout`` expired first."""
        deadline = time.monotonic() + timeout
        while self.count > 0:
            if time.monotonic() >= deadline:
                return False
            await asyncio.sleep(poll_interval)
        return True


in_flight = InFlightRequests()


# ──────────────────────────────────────────────────────────────────────────────
# Lifespan
# ──────────────────────────────────────────────────────────────────────────────


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    logger.info("startup_begin", environment=settings.ENVIRONMENT, log_level=settings.LOG_LEVEL)

    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))
    logger.info("database_ready")

    await connect_redis()
    logger.info("startup_complete")

    yield

    logger.info("shutdown_begin", in_flight=in_flight.count)
    if not await in_flight.drain(DRAIN_TIMEOUT_SECONDS):
        logger.warning("drain_timeout_exceeded", remaining_requests=in_flight.count)

    await close_redis()
    await engine.dispose()
    logger.info("shutdown_complete")


# ──────────────────────────────────────────────────────────────────────────────
# Middleware
# ──────────────────────────────────────────────────────────────────────────────


class TimeoutMiddleware(BaseHTTPMiddleware):
    """Answer 504 when a request runs longer than ``timeout_seconds``."""

    def __init__(self, app, timeout_seconds: float = REQUEST_TIMEOUT_SECONDS) -> None:
        super().__init__(app)
        self.timeout_seconds = timeout_seconds

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        try:
            return await asyncio.wait_for(call_next(request), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning(
                "request_timeout",
                method=request.method,
                path=request.url.path,
                timeout=self.timeout_seconds,
            )
            return _error_response(504, "Request timed out", "timeout")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Bind a request id, count the request as in flight and log its outcome."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)

        started = time.perf_counter()
        in_flight.enter()
        try:
            response = await call_next(request)
        except Exception:
            logger.exception(
                "request_error",
                method=request.method,
                path=request.url.path,
                duration_ms=round((time.perf_counter() - started) * 1000, 2),
            )
            raise
        finally:
            in_flight.leave()

        response.headers["X-Request-ID"] = request_id
        logger.info(
            "request_handled",
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
        )
        return response


# ──────────────────────────────────────────────────────────────────────────────
# Exception handlers
# ──────────────────────────────────────────────────────────────────────────────


def _error_response(status_code: int, message: str, code: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": message, "code": code},
    )


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("app_error", code=exc.code, error=exc.message, path=request.url.path, exc_info=exc)
    else:
        logger.info("request_rejected", code=exc.code, error=exc.message, path=request.url.path)
    return _error_response(exc.status_code, exc.message, exc.code)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report the first field error as a 400 ``validation_error``."""
    errors = exc.errors()
    if errors:
        first = errors[0]
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{location}: {first.get('msg')}" if location else str(first.get("msg"))
    else:
        message = ValidationError.default_message
    logger.info("request_validation_failed", path=request.url.path, errors=len(errors))
    return _error_response(400, message, ValidationError.code)


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("unhandled_error", method=request.method, path=request.url.path, exc_info=exc)
    return _error_response(500, "Internal server error", "internal_error")


# ──────────────────────────────────────────────────────────────────────────────
# Application
# ──────────────────────────────────────────────────────────────────────────────

app = FastAPI(
    title="Kindred",
    description="Dating and messaging backend",
    version="1.0.0",
    lifespan=lifespan,
    docs_url=None if settings.is_production else "/docs",
    redoc_url=None if settings.is_production else "/redoc",
)

app.add_exception_handler(AppError, app_error_handler)
app.add_exception_handler(RequestValidationError, request_validation_handler)
app.add_exception_handler(Exception, unhandled_error_handler)

# Last added runs first: CORS, then timeout, then request logging.
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(TimeoutMiddleware, timeout_seconds=REQUEST_TIMEOUT_SECONDS)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router, prefix="/api")


# ──────────────────────────────────────────────────────────────────────────────
# Health
# ──────────────────────────────────────────────────────────────────────────────


async def _check_database() -> str:
    async with async_session_factory() as session:
        await session.execute(text("SELECT 1"))
    return "connected"


async def _check_redis() -> str:
    redis = get_redis()
    if redis is None:
        return "not_configured"
    await redis.ping()
    return "connected"


async def _check_gcs() -> str:
    if not settings.GCS_BUCKET_NAME:
        return "not_configured"
    exists = await asyncio.to_thread(lambda: get_bucket().exists())
    if not exists:
        raise RuntimeError(f"bucket {settings.GCS_BUCKET_NAME!r} not found")
    return "accessible"


@app.get("/health", tags=["health"])
async def health_liveness() -> dict:
    return {"status": "healthy"}


@app.get("/health/deep", tags=["health"])
async def health_deep() -> dict:
    """Readiness: database, Redis and the profile-image bucket."""
    result: dict = {"status": "healthy"}
    for name, check in (("database", _check_database), ("redis", _check_redis), ("gcs", _check_gcs)):
        try:
            result[name] = await check()
        except Exception as exc:
            logger.error("health_check_failed", dependency=name, error=str(exc))
            result[name] = f"error: {exc}"
            result["status"] = "degraded"
    return result
