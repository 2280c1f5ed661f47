"""
api/main.py -- FastAPI application entry point for Hacka-Fi.

Run with:      python main.py serve
               uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for allowed browser origins
  3. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter

Lifespan handles startup (stores, status loop) and shutdown (cancel loop,
close DB connections) symmetrically.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager, suppress

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.openapi.docs import get_redoc_html, get_swagger_ui_html
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.achievements import router as achievements_router
from api.routes.v1.admin import router as admin_router
from api.routes.v1.analytics import router as analytics_router
from api.routes.v1.auth import router as auth_router
from api.routes.v1.hackathons import router as hackathons_router
from api.routes.v1.judging import router as judging_router
from api.routes.v1.users import router as users_router
from api.routes.v1.votes import router as votes_router
from auth.dependencies import get_current_user
from auth.models import WalletUser
from auth.store import AuthStore
from core.config import get_settings
from core.rpc import fetch_chain_status
from hackathons.status import run_status_check
from hackathons.store import HackathonStore

VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("hackafi.api")

_settings = get_settings()


def open_stores(database_url: str = "") -> tuple[HackathonStore, AuthStore]:
    """Build both repositories on DATABASE_URL, or their SQLite defaults when unset."""
    if database_url:
        return HackathonStore(database_url), AuthStore(database_url)
    return HackathonStore(), AuthStore()


# ---------------------------------------------------------------------------
# Background status loop
# ---------------------------------------------------------------------------


async def _status_loop(app: FastAPI, interval: int) -> None:
    """Apply due deadline transitions and purge expired nonces every `interval` seconds.

    Store calls are blocking, so each pass runs in a worker thread. Any
    failure in a pass is logged with its traceback and the loop carries on;
    only cancellation ends it.
    """
    while True:
        await asyncio.sleep(interval)
        try:
            await asyncio.to_thread(run_status_check, app.state.hackathon_store)
            purged = await asyncio.to_thread(app.state.auth_store.purge_expired_challenges)
        except Exception:
            logger.exception("Status loop pass failed")
            continue
        if purged:
            logger.info("Purged %d expired nonces", purged)


# ---------------------------------------------------------------------------
# Lifespan -- modern startup / shutdown pattern (replaces @app.on_event)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application-level resources across the full server lifetime.

    Startup order matters:
      1. Stores first -- every route reads them from app.state.
      2. One immediate status sweep -- deadlines that passed while the
         server was down are applied before the first request.
      3. Status loop last -- references both stores.
    """
    logger.info("Hacka-Fi API starting up")
    app.state.hackathon_store, app.state.auth_store = open_stores(_settings.database_url)
    logger.info("Stores initialized")
    result = run_status_check(app.state.hackathon_store)
    logger.info("Startup status check: %d processed, %d updated", result.processed, result.updated)
    app.state.status_task = asyncio.create_task(_status_loop(app, _settings.status_check_interval_seconds))

    yield

    app.state.status_task.cancel()
    with suppress(asyncio.CancelledError):
        await app.state.status_task
    app.state.hackathon_store.close()
    app.state.auth_store.close()
    logger.info("Hacka-Fi API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Hacka-Fi API",
    description="Blockchain hackathon platform: wallet sign-in, hackathon lifecycle, judging and prizes.",
    version=VERSION,
    lifespan=lifespan,
    # Built-in /docs and /redoc are replaced below with auth-protected routes.
    docs_url=None,
    redoc_url=None,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# Register in the order you want the request to encounter them:
# TrustedHost -> CORS -> SlowAPI.
# ---------------------------------------------------------------------------

app.add_middleware(
    TrustedHostMiddleware,
    allowed_hosts=_settings.allowed_host_list,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter


# ---------------------------------------------------------------------------
# Request logging middleware
#
# Every request passes through this coroutine before reaching any route
# handler. Wall-clock time around call_next gives the latency.
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
app.include_router(hackathons_router, prefix="/api/v1", tags=["Hackathons"])
app.include_router(votes_router, prefix="/api/v1", tags=["Votes & Winners"])
app.include_router(judging_router, prefix="/api/v1", tags=["Judging"])
app.include_router(users_router, prefix="/api/v1", tags=["Users"])
app.include_router(achievements_router, prefix="/api/v1", tags=["Achievements"])
app.include_router(admin_router, prefix="/api/v1", tags=["Admin"])
app.include_router(analytics_router, prefix="/api/v1", tags=["Analytics"])


# ---------------------------------------------------------------------------
# Auth-protected API documentation
# ---------------------------------------------------------------------------


@app.get("/docs", include_in_schema=False)
async def docs(user: WalletUser = Depends(get_current_user)):
    """Swagger UI -- requires authentication."""
    return get_swagger_ui_html(openapi_url="/openapi.json", title="Hacka-Fi API")


@app.get("/redoc", include_in_schema=False)
async def redoc(user: WalletUser = Depends(get_current_user)):
    """ReDoc UI -- requires authentication."""
    return get_redoc_html(openapi_url="/openapi.json", title="Hacka-Fi API")


# ---------------------------------------------------------------------------
# Exception handlers
#
# Every failure leaves the API as {"error": {"code", "message", ...}}.
# Routes raise HTTPException(detail={"code", "message"}) and the vote
# validator adds a "metadata" dict; both pass through untouched.
# ---------------------------------------------------------------------------


def _error_response(
    status_code: int,
    code: str,
    message: str,
    detail: str | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    body = ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail))
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True), headers=headers)


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    logger.warning("Rate limit hit on %s %s: %s", request.method, request.url.path, exc.detail)
    retry_after = str(int(getattr(exc, "retry_after", 60)))
    return _error_response(
        429,
        "RATE_LIMIT_EXCEEDED",
        "Too many requests, slow down.",
        detail=str(exc.detail),
        headers={"Retry-After": retry_after},
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """422 for malformed bodies, path params and query strings."""
    return _error_response(422, "validation_error", "Request validation failed.", detail=str(exc.errors()))


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Render HTTPException in the envelope.

    A dict detail is already shaped like ErrorDetail and becomes the "error"
    field as is. Anything else (Starlette's own 404/405, plain strings) gets
    an http_<status> code.
    """
    if isinstance(exc.detail, dict):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=exc.headers)
    return _error_response(exc.status_code, f"http_{exc.status_code}", str(exc.detail), headers=exc.headers)


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Anything unexpected is logged with its traceback and reported as a bare 500."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error_response(500, "internal_error", "An unexpected error occurred.")


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py (not in a router) so it is always reachable
# regardless of router registration state. No rate limit applied.
# ---------------------------------------------------------------------------


def _database_status(request: Request) -> str:
    try:
        request.app.state.hackathon_store.ping()
        request.app.state.auth_store.ping()
    except SQLAlchemyError:
        logger.exception("Health check: database unreachable")
        return "error"
    return "ok"


@app.get("/api/v1/health", include_in_schema=True, tags=["Health"])
async def health(request: Request) -> HealthResponse:
    """Report liveness plus database and chain RPC reachability."""
    components = {"database": await asyncio.to_thread(_database_status, request)}
    chain = None
    if _settings.rpc_url:
        chain = await asyncio.to_thread(fetch_chain_status, _settings.rpc_url, _settings.rpc_timeout_seconds)
        components["chain"] = "ok" if chain else "error"
    else:
        components["chain"] = "disabled"
    return HealthResponse(
        status="error" if "error" in components.values() else "ok",
        version=VERSION,
        components=components,
        chain_id=chain["chain_id"] if chain else None,
        block_number=chain["block_number"] if chain else None,
    )
