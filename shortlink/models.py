"""SQLAlchemy ORM models for the short link service.

This module defines the durable schema. The database is the only source of
truth; Redis holds disposable projections of these rows.

Data Model Layout
=================
::
    short_links table
    ├─ sequence_id (BIGINT PRIMARY KEY, autoincrement when not supplied)
    ├─ short_key (VARCHAR UNIQUE, INDEXED)   == base62(sequence_id)
    ├─ long_url (TEXT NOT NULL)
    ├─ fingerprint (CHAR(64) UNIQUE)          == sha256(long_url)
    └─ created_at (TIMESTAMPTZ)

    link_analytics table
    ├─ short_key (VARCHAR PRIMARY KEY)        1:1 with short_links
    ├─ total_clicks (BIGINT DEFAULT 0)
    ├─ last_accessed_at (TIMESTAMPTZ NULL)    NULL means never clicked
    ├─ clicks_today (BIGINT DEFAULT 0)
    ├─ last_aggregation_date (DATE)
    └─ created_at (TIMESTAMPTZ)

How to Use
===========
**Create a link with a Redis-issued sequence**::
    link = LinkRecord(sequence_id=1, short_key="b", long_url=url, fingerprint=fp)
    session.add(link)
    await session.commit()

**Zeroed analytics for a new link**::
    analytics = AnalyticsRecord.zeroed("b", now)

Key Behaviours
===============
- fingerprint uniqueness is what makes creation idempotent under races.
- short_key uniqueness guards against a reset Redis counter.
- Timestamps are written timezone-aware; ``as_utc`` normalises values read
  back from backends that drop the zone (SQLite).

Classes:
    LinkRecord:  A short key to long URL mapping.
    AnalyticsRecord:  Durable click totals for one short key.
"""

import datetime

from sqlalchemy import BigInteger, Date, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from shortlink.database import Base

__all__ = ["LinkRecord", "AnalyticsRecord", "utcnow", "as_utc"]

# SQLite only autoincrements an INTEGER PRIMARY KEY.
SequenceType = BigInteger().with_variant(Integer(), "sqlite")


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def as_utc(value: datetime.datetime | None) -> datetime.datetime | None:
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=datetime.timezone.utc)


class LinkRecord(Base):
    __tablename__ = "short_links"

    sequence_id: Mapped[int] = mapped_column(SequenceType, primary_key=True, autoincrement=True)
    short_key: Mapped[str] = mapped_column(String(72), unique=True, index=True, nullable=False)
    long_url: Mapped[str] = mapped_column(Text, nullable=False)
    fingerprint: Mapped[str] = mapped_column(String(64), unique=True, index=True, nullable=False)
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<LinkRecord(sequence_id={self.sequence_id}, short_key='{self.short_key}')>"


class AnalyticsRecord(Base):
    __tablename__ = "link_analytics"

    short_key: Mapped[str] = mapped_column(String(72), primary_key=True)
    total_clicks: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    last_accessed_at: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    clicks_today: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    last_aggregation_date: Mapped[datetime.date] = mapped_column(Date, nullable=False)
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    @classmethod
    def zeroed(cls, short_key: str, now: datetime.datetime) -> "AnalyticsRecord":
        return cls(
            short_key=short_key,
            total_clicks=0,
            last_accessed_at=None,
            clicks_today=0,
            last_aggregation_date=now.date(),
            created_at=now,
        )

    def __repr__(self) -> str:
        return f"<AnalyticsRecord(short_key='{self.short_key}', total_clicks={self.total_clicks})>"
