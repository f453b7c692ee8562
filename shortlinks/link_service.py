"""Link Service Layer - Core Business Logic

This module orchestrates short code allocation, deduplication and visit
recording on top of a LinkStore and a SequenceAllocator. It has no knowledge
of which backend is behind either.

Architecture Overview
==================
::
    ┌─────────────────────────────────────────────────────────────┐
    │                       LinkService                           │
    │  ┌─────────────────┐  ┌─────────────────┐  ┌──────────────┐ │
    │  │  Create links   │  │ Resolve / visit │  │  Stats/admin │ │
    │  │ • Validate URL  │  │ • Atomic visit  │  │ • Read only  │ │
    │  │ • Dedup by URL  │  │   increment     │  │ • List       │ │
    │  │ • Allocate+encode│ │ • Append history│  │ • Delete     │ │
    │  └─────────────────┘  └─────────────────┘  └──────────────┘ │
    └─────────────────────────────────────────────────────────────┘
                │                    │                    │
                ▼                    ▼                    ▼
    ┌─────────────────┐  ┌─────────────────┐  ┌─────────────────┐
    │SequenceAllocator│  │    LinkStore    │  │      codec      │
    │ (atomic counter)│  │ (SQL or Redis)  │  │   (base62)      │
    └─────────────────┘  └─────────────────┘  └─────────────────┘

Link Creation Flow
------------------
::
    ┌─────────────┐
    │ Validate URL │──── invalid ───► InvalidUrl
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Dedup check  │──── found ─────► return existing link
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Allocate     │──── exhausted ─► AllocationFailed
    │ next(seq)    │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ base62       │
    │ encode       │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Insert       │──── duplicate ─► AllocationFailed (logged as defect)
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Return link  │
    └─────────────┘

Key Behaviours
===============
- Creating a link for a URL that is already stored returns the stored link
  unchanged and allocates nothing.
- Concurrent first-time creates of the same URL can each allocate; every
  resulting code is still unique (see DESIGN.md).
- A DuplicateCode on insert is never retried: it means the sequence or the
  codec produced a collision.
- resolve and record_visit share one code path; get_stats never mutates.
- Codes that collide with fixed routes (RESERVED_CODES) are skipped and the
  next sequence value is used.
"""

import logging
import time

from prometheus_client import Counter, Histogram

from shortlinks import codec
from shortlinks.allocator import SequenceAllocator
from shortlinks.config import Settings, get_settings
from shortlinks.enums import RequestStatus
from shortlinks.exceptions import AllocationFailed, DuplicateCode, InvalidUrl
from shortlinks.models import utcnow
from shortlinks.schemas import NewShortLink, ShortLink, is_valid_url
from shortlinks.store import LinkStore

__all__ = ["LinkService", "RESERVED_CODES"]

# Codes shadowed by fixed GET routes (health, metrics, FastAPI docs).
RESERVED_CODES = frozenset({"health", "metrics", "docs", "redoc"})


# ============================================================================
# PROMETHEUS METRICS
# ============================================================================

LINK_CREATION_REQUESTS_TOTAL = Counter(
    "shortlinks_creation_requests_total",
    "Total short link creation requests",
    ["status"],
)
LINK_CREATION_DURATION = Histogram(
    "shortlinks_creation_duration_seconds",
    "Time taken to create short links",
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)
LINK_RESOLVE_REQUESTS_TOTAL = Counter(
    "shortlinks_resolve_requests_total",
    "Total short code resolve requests",
    ["status"],
)
LINK_RESOLVE_DURATION = Histogram(
    "shortlinks_resolve_duration_seconds",
    "Time taken to resolve short codes",
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25],
)


# ============================================================================
# CORE SERVICE CLASS
# ============================================================================


class LinkService:
    """Core service class for short link operations.

    Example:
        >>> service = LinkService(store, allocator)
        >>> link = await service.create_short_link("https://example.com")
        >>> await service.resolve(link.short_code)
        'https://example.com'
    """

    def __init__(
        self,
        store: LinkStore,
        allocator: SequenceAllocator,
        settings: Settings | None = None,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
    ) -> None:
        self._store = store
        self._allocator = allocator
        self._settings = settings or get_settings()
        self._logger = logger or logging.getLogger("shortlinks")

    @classmethod
    def from_context(cls, ctx: "RequestContext") -> "LinkService":  # noqa: F821
        """Build a service from a RequestContext's shared store and allocator."""
        return cls(
            store=ctx.service_manager.store,
            allocator=ctx.service_manager.allocator,
            settings=ctx.settings,
            logger=ctx.logger,
        )

    @property
    def settings(self) -> Settings:
        return self._settings

    # ========================================================================
    # PUBLIC API METHODS
    # ========================================================================

    async def create_short_link(self, original_url: str) -> ShortLink:
        """Return the link for ``original_url``, creating it on first request.

        Raises:
            InvalidUrl: If ``original_url`` is not a valid absolute URL.
            AllocationFailed: If no sequence value could be allocated, or the
                allocated code already exists in the store.
        """
        start_time = time.perf_counter()

        try:
            if not is_valid_url(original_url):
                raise InvalidUrl(original_url)

            existing = await self._store.find_by_original_url(original_url)
            if existing is not None:
                LINK_CREATION_REQUESTS_TOTAL.labels(status=RequestStatus.DEDUPLICATED).inc()
                self._logger.info(f"Reusing short code {existing.short_code} for: {original_url}")
                return existing

            short_code = await self._allocate_short_code()
            link = await self._insert_link(original_url, short_code)

            duration = time.perf_counter() - start_time
            LINK_CREATION_DURATION.observe(duration)
            LINK_CREATION_REQUESTS_TOTAL.labels(status=RequestStatus.SUCCESS).inc()
            self._logger.info(f"Short link created: {short_code} in {duration:.3f}s")
            return link

        except InvalidUrl as exc:
            LINK_CREATION_REQUESTS_TOTAL.labels(status=RequestStatus.VALIDATION_ERROR).inc()
            self._logger.warning(f"Short link creation rejected: {exc}")
            raise

        except Exception as exc:
            LINK_CREATION_DURATION.observe(time.perf_counter() - start_time)
            LINK_CREATION_REQUESTS_TOTAL.labels(status=RequestStatus.ERROR).inc()
            self._logger.error(f"Short link creation error: {exc}")
            raise

    async def resolve(
        self,
        short_code: str,
        user_agent: str | None = None,
        referrer: str | None = None,
    ) -> str | None:
        """Record a visit and return the destination URL, or None if unknown."""
        link = await self.record_visit(short_code, user_agent=user_agent, referrer=referrer)
        return link.original_url if link is not None else None

    async def record_visit(
        self,
        short_code: str,
        user_agent: str | None = None,
        referrer: str | None = None,
    ) -> ShortLink | None:
        """Record a visit and return the updated link, or None if unknown."""
        start_time = time.perf_counter()
        self._logger.debug(f"Resolving short code: {short_code}")

        link = await self._store.record_visit(short_code, user_agent=user_agent, referrer=referrer)

        LINK_RESOLVE_DURATION.observe(time.perf_counter() - start_time)
        if link is None:
            LINK_RESOLVE_REQUESTS_TOTAL.labels(status=RequestStatus.NOT_FOUND).inc()
            self._logger.info(f"Short code not found: {short_code}")
            return None

        LINK_RESOLVE_REQUESTS_TOTAL.labels(status=RequestStatus.SUCCESS).inc()
        return link

    async def get_stats(self, short_code: str) -> ShortLink | None:
        self._logger.debug(f"Getting statistics for code: {short_code}")
        return await self._store.find_by_code(short_code)

    async def list_recent(self) -> list[ShortLink]:
        return await self._store.list_all()

    async def delete_by_code(self, short_code: str) -> int:
        deleted = await self._store.delete_by_code(short_code)
        self._logger.info(f"Deleted {deleted} link(s) with short code: {short_code}")
        return deleted

    async def delete_by_id(self, link_id: int) -> int:
        deleted = await self._store.delete_by_id(link_id)
        self._logger.info(f"Deleted {deleted} link(s) with id: {link_id}")
        return deleted

    # ========================================================================
    # PRIVATE HELPER METHODS
    # ========================================================================

    async def _allocate_short_code(self) -> str:
        while True:
            sequence_value = await self._allocator.next(self._settings.SEQUENCE_NAME)
            short_code = codec.encode(sequence_value)
            if short_code not in RESERVED_CODES:
                return short_code
            self._logger.info(f"Skipping reserved short code: {short_code}")

    async def _insert_link(self, original_url: str, short_code: str) -> ShortLink:
        candidate = NewShortLink(original_url=original_url, short_code=short_code, created_at=utcnow())
        try:
            return await self._store.insert(candidate)
        except DuplicateCode as exc:
            self._logger.critical(
                f"Allocated short code {short_code} collides with an existing link; "
                f"sequence '{self._settings.SEQUENCE_NAME}' is inconsistent with the store"
            )
            raise AllocationFailed(f"Short code '{short_code}' collision detected") from exc
