"""Configuration management for the short link service.

This module provides centralized configuration management using Pydantic BaseSettings
with environment variable support and caching for performance.

Flow Diagram — get_settings()
=============================
::
    ┌─────────────┐
    │  Call get_  │
    │  settings() │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Check cache  │
    │ (lru_cache)  │
    └──────┬──────┘
    HIT?  │
    ┌─────┴─────┐
    │ NO         │ YES
    ▼            ▼
┌─────────┐  ┌─────────┐
│ Create  │  │ Return  │
│ Settings│  │ cached  │
│ instance│  │ value   │
└─────────┘  └─────────┘

How to Use
===========
**Step 1 — Import**::
    from shortlink.config import get_settings

**Step 2 — Read values**::
    settings = get_settings()
    limit = settings.RATE_LIMIT_MAX_REQUESTS

Key Behaviours
===============
- Settings are cached after first access.
- Environment variables (or a ``.env`` file) override defaults.
- Redis and database calls share short timeouts so that a failing dependency
  is detected quickly and the degraded paths kick in.

Classes:
    Settings:  Pydantic model for all configuration values.
"""

__all__ = ["Settings", "get_settings"]

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    APP_NAME: str = "shortlink"
    APP_ENV: str = "development"
    BASE_URL: str = "http://localhost:8080"
    LOG_LEVEL: str = "INFO"

    # PostgreSQL (source of truth)
    DATABASE_URL: str = "postgresql+asyncpg://shortlink:shortlink@db:5432/shortlink"
    DATABASE_TIMEOUT_SECONDS: float = 2.0

    # Redis (disposable cache and shared counters)
    REDIS_URL: str = "redis://redis:6379/0"
    REDIS_TIMEOUT_SECONDS: float = 0.5

    # Cache-aside tables, both refreshed on write only
    CACHE_TTL_SECONDS: int = 86400
    URL_CACHE_PREFIX: str = "url:"
    HASH_CACHE_PREFIX: str = "hash:"
    ID_COUNTER_KEY: str = "id"

    # Fixed window rate limiting (creation path only)
    RATE_LIMIT_MAX_REQUESTS: int = 10
    RATE_LIMIT_WINDOW_SECONDS: int = 60
    RATE_LIMIT_KEY_PREFIX: str = "ratelimit:"

    # Click counters
    ANALYTICS_KEY_PREFIX: str = "analytics:"

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )


@lru_cache()
def get_settings() -> Settings:
    return Settings()
