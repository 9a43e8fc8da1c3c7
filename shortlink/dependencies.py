"""Dependency injection with a singleton service manager.

Shared resources (Redis client, database engine, the four core components)
live on one ``ServiceManager`` created at startup. Each request only gets a
lightweight ``RequestContext`` carrying tracking information and a logger
adapter.
"""

import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Optional

import redis.asyncio as redis
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from shortlink.cache import CacheGateway, close_redis_client, create_redis_client
from shortlink.click_tracker import ClickTracker
from shortlink.config import Settings, get_settings
from shortlink.database import close_db, create_engine, create_session_factory, init_db
from shortlink.link_store import ShortLinkStore
from shortlink.rate_limiter import RateLimiter
from shortlink.repository import LinkRepository


# ============================================================================
# SINGLETON SERVICE MANAGER
# ============================================================================


class ServiceManager:
    """Singleton service manager for shared resources.

    Resources passed to ``initialize`` are used as-is and not closed on
    cleanup; anything the manager builds itself it also tears down.
    """

    _instance: Optional["ServiceManager"] = None
    _initialized: bool = False

    def __new__(cls) -> "ServiceManager":
        """Implement singleton pattern."""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    async def initialize(
        self,
        settings: Optional[Settings] = None,
        redis_client: Optional[redis.Redis] = None,
        sessions: Optional[async_sessionmaker[AsyncSession]] = None,
    ) -> None:
        """Initialize shared resources once at startup."""
        if self._initialized:
            return

        self.settings = settings or get_settings()
        self.logger = self._setup_logger()

        self._owns_redis = redis_client is None
        self.redis_client = redis_client or create_redis_client(self.settings)

        self._engine: Optional[AsyncEngine] = None
        if sessions is None:
            self._engine = create_engine(self.settings)
            await init_db(self._engine)
            sessions = create_session_factory(self._engine)

        self.cache = CacheGateway(self.redis_client, timeout=self.settings.REDIS_TIMEOUT_SECONDS)
        self.repository = LinkRepository(sessions)
        self.rate_limiter = RateLimiter(
            self.cache,
            max_requests=self.settings.RATE_LIMIT_MAX_REQUESTS,
            window_seconds=self.settings.RATE_LIMIT_WINDOW_SECONDS,
            key_prefix=self.settings.RATE_LIMIT_KEY_PREFIX,
        )
        self.click_tracker = ClickTracker(
            self.cache,
            self.repository,
            key_prefix=self.settings.ANALYTICS_KEY_PREFIX,
        )
        self.link_store = ShortLinkStore(
            self.cache,
            self.repository,
            cache_ttl_seconds=self.settings.CACHE_TTL_SECONDS,
            id_counter_key=self.settings.ID_COUNTER_KEY,
            url_prefix=self.settings.URL_CACHE_PREFIX,
            hash_prefix=self.settings.HASH_CACHE_PREFIX,
            on_created=self.click_tracker.initialize,
        )
        self._initialized = True
        self.logger.info("Service manager initialized")

    def _setup_logger(self) -> logging.Logger:
        """Setup logger once."""
        logger = logging.getLogger("shortlink")
        if not logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
            handler.setFormatter(formatter)
            logger.addHandler(handler)
            logger.setLevel(self.settings.LOG_LEVEL)
        return logger

    async def cleanup(self) -> None:
        """Cleanup shared resources at shutdown."""
        if not self._initialized:
            return
        if self._owns_redis:
            await close_redis_client(self.redis_client)
        if self._engine is not None:
            await close_db(self._engine)
        self._initialized = False


# Global singleton instance
_service_manager = ServiceManager()


# ============================================================================
# LIGHTWEIGHT REQUEST CONTEXT
# ============================================================================


@dataclass
class RequestContext:
    """Request context with tracking and shared resource access.

    Attributes:
        service_manager: Singleton service manager with shared resources
        request_id: Unique identifier for this request
        trace_id: Correlation ID for distributed tracing
        user_agent: Client user agent string
        client_ip: Client IP address, first X-Forwarded-For hop if present
        start_time: Request start timestamp
        tags: Request tags for categorization
    """

    service_manager: ServiceManager
    request_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    trace_id: Optional[str] = None
    user_agent: Optional[str] = None
    client_ip: Optional[str] = None
    start_time: float = field(default_factory=lambda: time.time())
    tags: list[str] = field(default_factory=list)

    @property
    def settings(self) -> Settings:
        return self.service_manager.settings

    @property
    def logger(self) -> logging.LoggerAdapter:
        """Get shared logger with request context."""
        return logging.LoggerAdapter(
            self.service_manager.logger,
            {
                "request_id": self.request_id,
                "trace_id": self.trace_id or self.request_id,
                "client_ip": self.client_ip,
                "user_agent": self.user_agent,
                "tags": ",".join(self.tags),
            },
        )

    @property
    def rate_limit_identifier(self) -> str:
        return self.client_ip or "unknown"

    def add_tag(self, tag: str) -> None:
        if tag not in self.tags:
            self.tags.append(tag)

    def get_duration(self) -> float:
        """Get request duration in milliseconds."""
        return (time.time() - self.start_time) * 1000


# ============================================================================
# DEPENDENCY FUNCTIONS
# ============================================================================


def _client_ip(request: Request) -> Optional[str]:
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    return request.client.host if request.client else None


async def get_service_manager() -> ServiceManager:
    if not _service_manager._initialized:
        await _service_manager.initialize()
    return _service_manager


async def get_request_context(
    request: Request,
    manager: ServiceManager = Depends(get_service_manager),
) -> RequestContext:
    return RequestContext(
        service_manager=manager,
        trace_id=request.headers.get("x-trace-id"),
        user_agent=request.headers.get("user-agent"),
        client_ip=_client_ip(request),
    )


def get_link_store(manager: ServiceManager = Depends(get_service_manager)) -> ShortLinkStore:
    return manager.link_store


def get_click_tracker(manager: ServiceManager = Depends(get_service_manager)) -> ClickTracker:
    return manager.click_tracker


def get_rate_limiter(manager: ServiceManager = Depends(get_service_manager)) -> RateLimiter:
    return manager.rate_limiter
