"""FastAPI application entry point for the short link service.

Application Lifecycle Diagram
=============================
::
    ┌─────────────┐
    │  uvicorn    │
    │  startup    │
    └──────┬──────┘
           ▼
    ┌──────────────────┐
    │ lifespan()        │
    │ ServiceManager    │
    │ .initialize()     │
    │ (engine, tables,  │
    │  redis, services) │
    └──────┬───────────┘
           ▼
    ┌─────────────┐
    │ Serve HTTP  │
    │ requests    │
    └──────┬──────┘
           ▼
    ┌──────────────────┐
    │ lifespan()        │
    │ ServiceManager    │
    │ .cleanup()        │
    └──────────────────┘

How to Use
===========
**Run with uvicorn**::
    uvicorn shortlink.main:app --host 0.0.0.0 --port 8080

**Shorten a URL**::
    curl -X POST http://localhost:8080/shortener \
         -H "Content-Type: application/json" \
         -d '{"url": "https://example.com"}'

Error Mapping
=============
::
    InvalidInputError      -> 400
    NotFoundError          -> 404
    RateLimitExceeded      -> 429 (+ X-RateLimit-* and Retry-After headers)
    DependencyUnavailable  -> 503
    ConstraintViolation    -> 409
"""

__all__ = ["app"]

import logging
import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator

from shortlink.config import get_settings
from shortlink.dependencies import _service_manager
from shortlink.exceptions import (
    ConstraintViolation,
    DependencyUnavailable,
    InvalidInputError,
    NotFoundError,
    RateLimitExceeded,
)
from shortlink.routes import router
from shortlink.schemas import ErrorResponse, RateLimitErrorResponse

settings = get_settings()
logger = logging.getLogger("shortlink.main")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    await _service_manager.initialize()
    yield
    await _service_manager.cleanup()


app = FastAPI(
    title=settings.APP_NAME,
    version="1.0.0",
    description="Short link service with cache-aside lookups and click analytics",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

Instrumentator(
    should_group_status_codes=True,
    should_ignore_untemplated=False,
    should_respect_env_var=False,
).instrument(app).expose(app)


def _error(status_code: int, error: str, exc: Exception) -> JSONResponse:
    body = ErrorResponse(error=error, message=str(exc))
    return JSONResponse(status_code=status_code, content=body.model_dump())


@app.exception_handler(RateLimitExceeded)
async def handle_rate_limit_exceeded(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    logger.warning(f"Rate limit exceeded: {exc}")
    body = RateLimitErrorResponse(
        message=str(exc),
        maxRequests=exc.max_requests,
        windowSeconds=exc.window_seconds,
        retryAfterSeconds=exc.retry_after_seconds,
    )
    return JSONResponse(
        status_code=429,
        content=body.model_dump(),
        headers={
            "X-RateLimit-Limit": str(exc.max_requests),
            "X-RateLimit-Remaining": "0",
            "X-RateLimit-Reset": str(int(time.time()) + exc.retry_after_seconds),
            "Retry-After": str(exc.retry_after_seconds),
        },
    )


@app.exception_handler(InvalidInputError)
async def handle_invalid_input(request: Request, exc: InvalidInputError) -> JSONResponse:
    return _error(400, "Invalid Input", exc)


@app.exception_handler(NotFoundError)
async def handle_not_found(request: Request, exc: NotFoundError) -> JSONResponse:
    return _error(404, "Not Found", exc)


@app.exception_handler(ConstraintViolation)
async def handle_constraint_violation(request: Request, exc: ConstraintViolation) -> JSONResponse:
    logger.error(f"Unreconciled constraint violation: {exc}")
    return _error(409, "Conflict", exc)


@app.exception_handler(DependencyUnavailable)
async def handle_dependency_unavailable(request: Request, exc: DependencyUnavailable) -> JSONResponse:
    logger.error(f"Dependency unavailable: {exc}")
    return _error(503, "Service Unavailable", exc)


app.include_router(router)
