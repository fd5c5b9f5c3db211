"""
api/main.py -- FastAPI application entry point for the Portfolio API.

Run with:  uvicorn api.main:app --reload

Middleware stack (outermost to innermost):
  1. CORSMiddleware     -- adds CORS headers for allowed browser origins
  2. SlowAPIMiddleware  -- enforces per-route rate limits from api.limiter

Lifespan handles startup (auth DB, stores, codec, session manager, refresh
token sweep) and shutdown (cancel sweep, dispose engine) symmetrically.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from api.routes.v1.users import router as users_router
from auth.errors import InternalError, SessionError
from auth.sessions import SessionManager, SessionPolicy
from auth.store import RefreshTokenStore, UserStore, create_auth_engine
from auth.tokens import SigningKeys, TokenCodec
from core.config import get_settings

_VERSION = "1.0.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("portfolio.api")

# ---------------------------------------------------------------------------
# Background refresh-token sweep
# ---------------------------------------------------------------------------


async def _sweep_expired_refresh_tokens(store: RefreshTokenStore, interval_seconds: float) -> None:
    """Delete expired refresh token rows every interval_seconds, forever.

    Errors never reach request handling: they are logged and the loop carries
    on with the next pass. CancelledError from task.cancel() during shutdown
    propagates out of asyncio.sleep and unwinds the coroutine cleanly.
    """
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            removed = await asyncio.to_thread(store.purge_expired)
        except Exception:
            logger.exception("Refresh token sweep failed; retrying in %ss", interval_seconds)
            continue
        if removed:
            logger.info("Refresh token sweep removed %d expired record(s)", removed)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application-level resources across the full server lifetime.

    Startup order matters: engine, then stores, then the session manager
    that depends on them, then the sweep task that references the refresh
    store.
    """
    settings = get_settings()
    logger.info("Portfolio API starting up")

    engine = create_auth_engine(settings.auth_db_url)
    app.state.user_store = UserStore(engine)
    app.state.refresh_store = RefreshTokenStore(engine)
    app.state.codec = TokenCodec(SigningKeys.from_settings(settings))
    app.state.session_manager = SessionManager(
        app.state.user_store,
        app.state.refresh_store,
        app.state.codec,
        SessionPolicy(
            refresh_ttl_seconds=settings.refresh_token_expire_seconds,
            rotate_refresh_tokens=settings.rotate_refresh_tokens,
            timeout_seconds=settings.request_timeout_seconds,
        ),
    )
    logger.info(
        "Auth initialized (rotate_refresh_tokens=%s, sweep every %ss)",
        settings.rotate_refresh_tokens,
        settings.refresh_sweep_interval_seconds,
    )
    app.state.sweep_task = asyncio.create_task(
        _sweep_expired_refresh_tokens(app.state.refresh_store, settings.refresh_sweep_interval_seconds)
    )

    yield

    app.state.sweep_task.cancel()
    engine.dispose()
    logger.info("Portfolio API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Portfolio API",
    description="Accounts and token-based sessions for the Portfolio backend.",
    version=_VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in get_settings().cors_origins.split(",") if o.strip()],
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter


# ---------------------------------------------------------------------------
# Request logging middleware
# ---------------------------------------------------------------------------


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])
app.include_router(users_router, prefix="/api/v1", tags=["Users"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


def _error(status_code: int, code: str, message: str, detail: str | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail)).model_dump(
            exclude_none=True
        ),
    )


@app.exception_handler(SessionError)
async def session_error_handler(request: Request, exc: SessionError) -> JSONResponse:
    """Render session-core failures.

    exc.reason carries the internal explanation (e.g. "refresh token not
    found" vs "failed verification") and goes to the log only. Internal
    errors are logged with the traceback and answered with a generic message.
    """
    if isinstance(exc, InternalError):
        logger.error(
            "%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc.reason, exc_info=exc
        )
    else:
        logger.info("%d %s on %s %s: %s", exc.status_code, exc.code, request.method, request.url.path, exc.reason)
    return _error(exc.status_code, exc.code, exc.message)


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a structured error when a rate limit is exceeded."""
    response = _error(429, "rate_limited", "Too many requests.", str(exc.detail))
    response.headers["Retry-After"] = str(int(getattr(exc, "retry_after", 60)))
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 400 with structured error when the request body fails validation.

    Missing or empty login, refresh and account fields are client input errors
    and share the 400 status used by the account field rules. Submitted values
    are left out of the detail so a rejected password is never echoed back.
    """
    detail = "; ".join(".".join(str(part) for part in err["loc"]) + ": " + err["msg"] for err in exc.errors())
    return _error(400, "validation_error", "Request validation failed.", detail)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return _error(exc.status_code, f"http_{exc.status_code}", str(exc.detail))


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception goes to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error(500, "internal_error", "An unexpected error occurred.")


# ---------------------------------------------------------------------------
# Health endpoint
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", tags=["Health"])
async def health() -> HealthResponse:
    """Return API liveness and current version."""
    return HealthResponse(version=_VERSION)
