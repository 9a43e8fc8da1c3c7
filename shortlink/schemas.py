"""Pydantic schemas for request/response validation in the short link service.

Schema Hierarchy
=================
::
    ShortenRequest (Input)
    └─ url: str (validated URL)

    ShortenResponse (Output)
    ├─ short_key: str
    ├─ short_url: str (computed)
    └─ long_url: str

    StatsResponse (Output)
    ├─ shortKey, totalClicks, clicksToday
    ├─ lastAccessedAt, createdAt (timezone-aware or null)
    └─ dataSource: "redis+db" | "db-only"

    RateLimitErrorResponse (Output, 429)
    └─ error, message, maxRequests, windowSeconds, retryAfterSeconds

    HealthResponse (Output)
    ├─ status
    ├─ database
    └─ cache

Key Behaviours
===============
- URL validation uses the validators library.
- Stats and rate limit payloads use camelCase field names on the wire.
"""

import datetime

import validators
from pydantic import BaseModel, ConfigDict, Field, field_validator

from shortlink.enums import DataSource, HealthStatus

__all__ = [
    "ShortenRequest",
    "ShortenResponse",
    "StatsResponse",
    "RateLimitErrorResponse",
    "ErrorResponse",
    "HealthResponse",
]


class ShortenRequest(BaseModel):
    url: str

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        v = v.strip()
        if not validators.url(v):
            raise ValueError("Invalid URL provided")
        return v


class ShortenResponse(BaseModel):
    short_key: str
    short_url: str
    long_url: str


class StatsResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    short_key: str = Field(serialization_alias="shortKey")
    total_clicks: int = Field(serialization_alias="totalClicks")
    clicks_today: int = Field(serialization_alias="clicksToday")
    last_accessed_at: datetime.datetime | None = Field(serialization_alias="lastAccessedAt")
    created_at: datetime.datetime = Field(serialization_alias="createdAt")
    data_source: DataSource = Field(serialization_alias="dataSource")


class RateLimitErrorResponse(BaseModel):
    error: str = "Rate Limit Exceeded"
    message: str
    maxRequests: int
    windowSeconds: int
    retryAfterSeconds: int


class ErrorResponse(BaseModel):
    error: str
    message: str


class HealthResponse(BaseModel):
    status: HealthStatus
    database: HealthStatus
    cache: HealthStatus
