import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import sentry_sdk
from fastapi import FastAPI, Request
from fastapi.exception_handlers import http_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.routing import APIRoute
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.cors import CORSMiddleware

from gaia_api.api.main import api_router
from gaia_api.core.config import settings
from gaia_api.core.pool import PoolConfig, PoolError, PoolManager, QueryError
from gaia_api.initial_data import verify_schema

logging.basicConfig(level=settings.LOG_LEVEL)
_logger = logging.getLogger(__name__)


def custom_generate_unique_id(route: APIRoute) -> str:
    return f"{route.tags[0]}-{route.name}"


if settings.SENTRY_DSN and settings.ENVIRONMENT != "local":
    sentry_sdk.init(dsn=str(settings.SENTRY_DSN), enable_tracing=True)


def open_pool() -> PoolManager:
    """Build and open the pool; exit the process when the database stays unreachable."""
    pool = PoolManager(PoolConfig.from_settings(settings)).open()
    connected = pool.test_connectivity(
        settings.DB_CONNECT_RETRIES, settings.DB_CONNECT_RETRY_DELAY
    )
    if not connected:
        _logger.error("Cannot start server without database connection")
        pool.shutdown(0)
        raise SystemExit(1)
    verify_schema(pool)
    return pool


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Open the pool before serving, shut it down (bounded by the grace period) on exit."""
    pool = await run_in_threadpool(open_pool)
    app.state.pool = pool
    try:
        yield
    finally:
        _logger.info("Shutting down gracefully...")
        await run_in_threadpool(pool.shutdown)


app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    generate_unique_id_function=custom_generate_unique_id,
    lifespan=lifespan,
)


# ---------------------------------------------------------------------------
# Global exception handlers — standardized error response format
# ---------------------------------------------------------------------------


@app.exception_handler(StarletteHTTPException)
async def not_found_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    """Unknown routes get a JSON body naming the method and path; other HTTP errors pass through."""
    if exc.status_code == 404 and exc.detail == "Not Found":
        return JSONResponse(
            status_code=404,
            content={
                "status": "error",
                "message": f"Route {request.method} {request.url.path} not found",
            },
        )
    return await http_exception_handler(request, exc)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Return 422 with a human-readable detail string instead of raw Pydantic errors."""
    errors = exc.errors()
    messages = []
    for err in errors:
        loc = " → ".join(str(l) for l in err.get("loc", []) if l != "body")
        msg = err.get("msg", "Invalid value")
        messages.append(f"{loc}: {msg}" if loc else msg)
    return JSONResponse(
        status_code=422,
        content={"detail": "; ".join(messages)},
    )


@app.exception_handler(QueryError)
async def query_exception_handler(request: Request, exc: QueryError) -> JSONResponse:
    """Driver failure while running a query — 500; the SQL text is only echoed locally."""
    _logger.error(
        "Query error on %s %s (%.1fms): %s",
        request.method,
        request.url.path,
        exc.duration_ms,
        exc.cause,
    )
    detail = "Internal server error"
    if settings.ENVIRONMENT == "local":
        detail = f"Query error: {exc.cause}"
    return JSONResponse(status_code=500, content={"detail": detail})


@app.exception_handler(PoolError)
async def pool_exception_handler(request: Request, exc: PoolError) -> JSONResponse:
    """Pool closed, exhausted or timed out — the database is unavailable right now."""
    _logger.warning(
        "Database unavailable on %s %s: %s", request.method, request.url.path, exc
    )
    return JSONResponse(
        status_code=503,
        content={"detail": "Database unavailable"},
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(
    request: Request, exc: Exception
) -> JSONResponse:
    """Catch-all for unhandled exceptions — log and return 500 with safe message."""
    _logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    detail = "Internal server error"
    if settings.ENVIRONMENT == "local":
        detail = f"Internal server error: {exc}"
    return JSONResponse(
        status_code=500,
        content={"detail": detail},
    )


# Set all CORS enabled origins
if settings.all_cors_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.all_cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

app.include_router(api_router, prefix=settings.API_V1_STR)
