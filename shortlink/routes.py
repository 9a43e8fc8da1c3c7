"""FastAPI route definitions for the short link REST API.

API Endpoint Overview
=====================
::
    GET  /health
        └─ HealthResponse (200)

    POST /shortener
        ├─ ShortenRequest (request body)
        └─ ShortenResponse (201) or 422/429/503

    GET  /stats/:short_key
        └─ StatsResponse (200)

    GET  /:short_key
        └─ 307 Redirect or 400/404

Key Behaviours
===============
- Only /shortener is rate limited, keyed by client IP.
- Redirects record the click after the response is sent.
- Domain errors are translated to HTTP responses by the handlers in
  shortlink.main, so routes only deal with the happy path.
"""

from fastapi import APIRouter, BackgroundTasks, Depends, Response
from fastapi.responses import RedirectResponse

from shortlink.click_tracker import ClickTracker
from shortlink.dependencies import (
    RequestContext,
    ServiceManager,
    get_click_tracker,
    get_link_store,
    get_rate_limiter,
    get_request_context,
    get_service_manager,
)
from shortlink.enums import HealthStatus
from shortlink.exceptions import DependencyUnavailable
from shortlink.link_store import ShortLinkStore
from shortlink.rate_limiter import RateLimiter
from shortlink.schemas import HealthResponse, ShortenRequest, ShortenResponse, StatsResponse

__all__ = ["router"]

router = APIRouter()


@router.get("/health", response_model=HealthResponse, tags=["health"])
async def health_check(
    ctx: RequestContext = Depends(get_request_context),
    manager: ServiceManager = Depends(get_service_manager),
) -> HealthResponse:
    db_status = HealthStatus.HEALTHY
    cache_status = HealthStatus.HEALTHY

    try:
        await manager.repository.ping()
    except DependencyUnavailable as e:
        ctx.logger.error(f"Database health check failed: {e}")
        db_status = HealthStatus.UNHEALTHY

    if (await manager.cache.ping()).unavailable:
        ctx.logger.error("Cache health check failed")
        cache_status = HealthStatus.UNHEALTHY

    status = (
        HealthStatus.HEALTHY
        if db_status is HealthStatus.HEALTHY and cache_status is HealthStatus.HEALTHY
        else HealthStatus.UNHEALTHY
    )
    ctx.logger.info(f"Health check completed: {status.value}")
    return HealthResponse(status=status, database=db_status, cache=cache_status)


@router.post("/shortener", response_model=ShortenResponse, status_code=201, tags=["links"])
async def shorten_url(
    payload: ShortenRequest,
    response: Response,
    ctx: RequestContext = Depends(get_request_context),
    limiter: RateLimiter = Depends(get_rate_limiter),
    store: ShortLinkStore = Depends(get_link_store),
) -> ShortenResponse:
    ctx.add_tag("link_creation")

    decision = await limiter.enforce(ctx.rate_limit_identifier)
    ctx.logger.info(f"Received url to shorten: {payload.url} from IP: {ctx.client_ip}")

    short_key = await store.create(payload.url)

    response.headers["X-RateLimit-Limit"] = str(decision.limit)
    response.headers["X-RateLimit-Remaining"] = str(decision.remaining)
    ctx.logger.info(
        f"Shortened url to: {short_key}",
        extra={"operation": "create", "short_key": short_key, "duration_ms": ctx.get_duration()},
    )
    return ShortenResponse(
        short_key=short_key,
        short_url=f"{ctx.settings.BASE_URL.rstrip('/')}/{short_key}",
        long_url=payload.url,
    )


@router.get(
    "/stats/{short_key}",
    response_model=StatsResponse,
    tags=["links"],
)
async def get_stats(
    short_key: str,
    ctx: RequestContext = Depends(get_request_context),
    tracker: ClickTracker = Depends(get_click_tracker),
) -> StatsResponse:
    ctx.logger.info(f"Fetching analytics stats for: {short_key}")
    snapshot = await tracker.get_stats(short_key)
    return StatsResponse(
        short_key=snapshot.short_key,
        total_clicks=snapshot.total_clicks,
        clicks_today=snapshot.clicks_today,
        last_accessed_at=snapshot.last_accessed_at,
        created_at=snapshot.created_at,
        data_source=snapshot.data_source,
    )


@router.get("/{short_key}", tags=["redirect"])
async def redirect_to_url(
    short_key: str,
    background_tasks: BackgroundTasks,
    ctx: RequestContext = Depends(get_request_context),
    store: ShortLinkStore = Depends(get_link_store),
    tracker: ClickTracker = Depends(get_click_tracker),
) -> RedirectResponse:
    ctx.add_tag("redirect")

    long_url = await store.resolve(short_key)
    background_tasks.add_task(tracker.record_click, short_key)

    ctx.logger.info(
        f"Redirect successful: {short_key} -> {long_url}",
        extra={"operation": "redirect", "short_key": short_key, "duration_ms": ctx.get_duration()},
    )
    return RedirectResponse(url=long_url, status_code=307)
