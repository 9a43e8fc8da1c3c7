"""Durable store access for links and click analytics.

The repository is the only code that talks to the relational database.
Each method runs in its own short session so callers never hold a
transaction across a Redis round-trip.

Insert Flow — insert_link_if_absent()
=====================================
::
    ┌──────────────────┐
    │ INSERT link       │
    │ (sequence from    │
    │  Redis or DB)     │
    └──────┬───────────┘
    OK?    │
    ┌──────┴──────────────┐
    │ YES                  │ NO (unique violation)
    ▼                      ▼
┌─────────┐       ┌──────────────────┐
│ return  │       │ ROLLBACK, re-read │
│ new row │       │ by fingerprint    │
└─────────┘       └──────┬───────────┘
                  FOUND? │
                  ┌──────┴──────┐
                  │ YES          │ NO
                  ▼              ▼
            ┌──────────┐  ┌──────────────────┐
            │ return   │  │ SequenceCollision │
            │ winner   │  │ (sequence reused) │
            └──────────┘  └──────────────────┘

Key Behaviours
===============
- A database-assigned sequence gets its short key in the same transaction,
  so a committed row always satisfies short_key == base62(sequence_id).
- On PostgreSQL an insert with an explicit (Redis-issued) sequence also moves
  the table's serial sequence past it, so database-assigned sequences do not
  hand the same number out again.
- Connection, timeout and driver errors surface as ``StoreUnavailable``.
- Unique violations never leak as raw ``IntegrityError``.
"""

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Optional

from sqlalchemy import select, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from shortlink.codec import encode
from shortlink.exceptions import ConstraintViolation, DuplicateLinkError, SequenceCollision, StoreUnavailable
from shortlink.models import AnalyticsRecord, LinkRecord

__all__ = ["LinkRepository"]

logger = logging.getLogger("shortlink.repository")

# Placeholder short keys cannot collide with real ones: "~" is outside the alphabet.
_PENDING_KEY_PREFIX = "~"

# setval never moves the sequence backwards here: a concurrent database-assigned
# insert may already have drawn a higher number.
_ADVANCE_SEQUENCE_SQL = text(
    "SELECT setval(s.seq, GREATEST(:sequence_id, COALESCE(pg_sequence_last_value(s.seq), 1))) "
    "FROM (SELECT pg_get_serial_sequence(:table_name, 'sequence_id')::regclass AS seq) AS s"
)


def _uses_serial_sequence(session: AsyncSession) -> bool:
    # SQLite assigns max(rowid) + 1 and needs no bookkeeping.
    return session.get_bind().dialect.name == "postgresql"


class LinkRepository:
    def __init__(self, sessions: async_sessionmaker[AsyncSession]):
        self._sessions = sessions

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        try:
            async with self._sessions() as session:
                yield session
        except IntegrityError:
            raise
        except (SQLAlchemyError, OSError, asyncio.TimeoutError) as exc:
            logger.error(f"Database operation failed: {exc!r}")
            raise StoreUnavailable(exc) from exc

    async def ping(self) -> None:
        async with self._session() as session:
            await session.execute(text("SELECT 1"))

    # ------------------------------------------------------------------
    # Links
    # ------------------------------------------------------------------

    async def find_by_short_key(self, short_key: str) -> Optional[LinkRecord]:
        async with self._session() as session:
            result = await session.execute(select(LinkRecord).where(LinkRecord.short_key == short_key))
            return result.scalar_one_or_none()

    async def find_by_fingerprint(self, fingerprint: str) -> Optional[LinkRecord]:
        async with self._session() as session:
            result = await session.execute(select(LinkRecord).where(LinkRecord.fingerprint == fingerprint))
            return result.scalar_one_or_none()

    async def insert_link(self, fingerprint: str, long_url: str, sequence_id: Optional[int] = None) -> LinkRecord:
        """Insert a new link row.

        With ``sequence_id=None`` the database assigns the sequence through its
        native autoincrement.

        Raises:
            DuplicateLinkError: the fingerprint, short key or sequence is taken.
            StoreUnavailable: the database could not be reached.
        """
        async with self._session() as session:
            short_key = encode(sequence_id) if sequence_id is not None else f"{_PENDING_KEY_PREFIX}{fingerprint}"
            link = LinkRecord(
                sequence_id=sequence_id,
                short_key=short_key,
                long_url=long_url,
                fingerprint=fingerprint,
            )
            session.add(link)
            try:
                await session.flush()
                if sequence_id is None:
                    link.short_key = encode(link.sequence_id)
                elif _uses_serial_sequence(session):
                    await session.execute(
                        _ADVANCE_SEQUENCE_SQL,
                        {"sequence_id": sequence_id, "table_name": LinkRecord.__tablename__},
                    )
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise DuplicateLinkError(fingerprint, sequence_id, exc) from exc
            return link

    async def insert_link_if_absent(
        self, fingerprint: str, long_url: str, sequence_id: Optional[int] = None
    ) -> LinkRecord:
        """Insert a link, or return the record another writer committed first."""
        try:
            return await self.insert_link(fingerprint, long_url, sequence_id)
        except DuplicateLinkError as exc:
            winner = await self.find_by_fingerprint(fingerprint)
            if winner is not None:
                logger.info(f"[DB RACE] Fingerprint already stored, returning winner {winner.short_key}")
                return winner
            raise SequenceCollision(sequence_id, exc.original_error) from exc

    # ------------------------------------------------------------------
    # Analytics
    # ------------------------------------------------------------------

    async def find_analytics(self, short_key: str) -> Optional[AnalyticsRecord]:
        async with self._session() as session:
            return await session.get(AnalyticsRecord, short_key)

    async def upsert_analytics(self, record: AnalyticsRecord) -> AnalyticsRecord:
        async with self._session() as session:
            merged = await session.merge(record)
            try:
                await session.commit()
            except IntegrityError as exc:
                # Two writers created the same row; the caller decides whether to retry.
                await session.rollback()
                raise ConstraintViolation(f"Analytics for {record.short_key} written concurrently", exc) from exc
            return merged

    async def insert_analytics_if_absent(self, record: AnalyticsRecord) -> bool:
        """Insert ``record`` unless a row for its short key exists. Returns True if inserted."""
        async with self._session() as session:
            if await session.get(AnalyticsRecord, record.short_key) is not None:
                return False
            session.add(record)
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                return False
            return True
