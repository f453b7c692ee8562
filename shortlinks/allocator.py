"""Sequence allocation for short code generation.

A SequenceAllocator hands out strictly increasing integers per logical
sequence name. Each call is a single atomic increment-and-fetch executed by
the backing store, so any number of service instances can share a sequence
without in-process locking.

Flow Diagram — next(name)
=========================
::
    ┌─────────────┐
    │ next(name)   │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Atomic       │◄──────────┐
    │ increment    │           │
    │ (store side) │           │
    └──────┬──────┘           │
    OK?    │                   │
    ┌─────┴─────┐             │
    │ YES        │ NO          │
    ▼            ▼             │
┌─────────┐  ┌─────────────┐  │
│ Return  │  │ attempts    │  │
│ value   │  │ left? ──YES─┼──┘
└─────────┘  └──────┬──────┘
                    │ NO
                    ▼
             ┌─────────────┐
             │ Allocation  │
             │ Failed      │
             └─────────────┘

Backends
========
- SqlSequenceAllocator:  ``INSERT .. ON CONFLICT DO UPDATE SET seq = seq + 1
  RETURNING seq`` on the ``counters`` table (PostgreSQL and SQLite).
- RedisSequenceAllocator:  ``INCR counter:<name>``.

Key Behaviours
===============
- The first call for a fresh name returns 1.
- Retries re-issue the atomic operation; they never read then write.
- A retried call may leave a gap in the sequence but can never repeat a value.
"""

import asyncio
import logging
from abc import ABC, abstractmethod

import redis.asyncio as redis
from prometheus_client import Counter
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from shortlinks.exceptions import AllocationFailed
from shortlinks.models import SequenceCounter

__all__ = ["SequenceAllocator", "SqlSequenceAllocator", "RedisSequenceAllocator"]

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_RETRY_DELAY_SECONDS = 0.05

ALLOCATOR_ATTEMPTS_TOTAL = Counter(
    "shortlinks_allocator_attempts_total",
    "Atomic increment attempts issued by the sequence allocator",
    ["backend"],
)
ALLOCATOR_FAILURES_TOTAL = Counter(
    "shortlinks_allocator_failures_total",
    "Allocations that exhausted their retry budget",
    ["backend"],
)


class SequenceAllocator(ABC):
    """Issues strictly increasing integers per logical sequence name."""

    backend: str = "abstract"
    transient_errors: tuple[type[BaseException], ...] = ()

    def __init__(
        self,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        retry_delay: float = DEFAULT_RETRY_DELAY_SECONDS,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
    ) -> None:
        assert max_attempts >= 1, f"max_attempts must be >= 1, got {max_attempts!r}"
        self._max_attempts = max_attempts
        self._retry_delay = retry_delay
        self._logger = logger or logging.getLogger("shortlinks")

    async def next(self, name: str) -> int:
        """Atomically increment the sequence ``name`` and return the new value.

        Raises:
            AllocationFailed: If every attempt failed or returned no value.
        """
        assert isinstance(name, str) and name, f"name must be a non-empty string, got {name!r}"

        for attempt in range(1, self._max_attempts + 1):
            ALLOCATOR_ATTEMPTS_TOTAL.labels(backend=self.backend).inc()
            try:
                value = await self._increment(name)
            except self.transient_errors as exc:
                self._logger.warning(
                    f"Sequence '{name}' increment failed on attempt {attempt}/{self._max_attempts}: {exc}"
                )
            else:
                if value is not None:
                    return int(value)
                self._logger.warning(
                    f"Sequence '{name}' increment returned no value on attempt {attempt}/{self._max_attempts}"
                )

            if attempt < self._max_attempts:
                await asyncio.sleep(self._retry_delay)

        ALLOCATOR_FAILURES_TOTAL.labels(backend=self.backend).inc()
        self._logger.error(f"Sequence '{name}' allocation failed after {self._max_attempts} attempts")
        raise AllocationFailed(f"Could not allocate from sequence '{name}' after {self._max_attempts} attempts")

    @abstractmethod  # pragma: no cover
    async def _increment(self, name: str) -> int | None:
        """Issue one atomic increment-and-fetch against the backing store."""
        raise NotImplementedError


class SqlSequenceAllocator(SequenceAllocator):
    """Sequence allocator backed by the ``counters`` table."""

    backend = "sql"
    transient_errors = (OperationalError, InterfaceError)

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], **kwargs) -> None:
        super().__init__(**kwargs)
        self._session_factory = session_factory

    async def _increment(self, name: str) -> int | None:
        async with self._session_factory() as session, session.begin():
            stmt = _upsert_increment(session.get_bind().dialect.name, name)
            result = await session.execute(stmt)
            return result.scalar_one_or_none()


class RedisSequenceAllocator(SequenceAllocator):
    """Sequence allocator backed by Redis INCR (no TTL on the counter keys)."""

    backend = "redis"
    transient_errors = (RedisConnectionError, RedisTimeoutError)

    def __init__(self, cache: redis.Redis, key_prefix: str = "counter", **kwargs) -> None:
        super().__init__(**kwargs)
        self._cache = cache
        self._key_prefix = key_prefix

    async def _increment(self, name: str) -> int | None:
        return await self._cache.incr(f"{self._key_prefix}:{name}")


def _upsert_increment(dialect_name: str, name: str):
    """Build the single-statement increment-and-fetch for ``dialect_name``.

    A missing counter is created already holding 1, which is the value an
    initial 0 reaches after its first increment.
    """
    if dialect_name == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect_name == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        raise NotImplementedError(f"Atomic sequence upsert is not supported on '{dialect_name}'")

    counters = SequenceCounter.__table__
    stmt = insert(counters).values(name=name, seq=1)
    stmt = stmt.on_conflict_do_update(
        index_elements=[counters.c.name],
        set_={"seq": counters.c.seq + 1},
    )
    return stmt.returning(counters.c.seq)
