"""Shared enums for the short link service.

This module defines all status and state enums used across the codebase.
Using enums instead of string literals provides type safety and prevents typos.
"""

from enum import StrEnum

__all__ = ["HealthStatus", "RequestStatus", "CacheStatus", "CacheHealth", "DataSource"]


class HealthStatus(StrEnum):
    """Health check status values."""

    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"


class RequestStatus(StrEnum):
    """Request status values for metrics and logging."""

    SUCCESS = "success"
    VALIDATION_ERROR = "validation_error"
    ERROR = "error"
    NOT_FOUND = "not_found"


class CacheStatus(StrEnum):
    """Cache lookup outcome values for metrics."""

    HIT = "hit"
    MISS = "miss"
    UNAVAILABLE = "unavailable"


class CacheHealth(StrEnum):
    """Outcome of the most recent cache operation seen by a component."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"


class DataSource(StrEnum):
    """Where the numbers in a stats snapshot came from."""

    REDIS_AND_DB = "redis+db"
    DB_ONLY = "db-only"
