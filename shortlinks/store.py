"""Link storage contract and the durable SQL implementation.

Data Flow — record_visit(code)
==============================
::
    ┌──────────────────┐
    │ record_visit()    │
    └────────┬─────────┘
             ▼
    ┌──────────────────┐      no row
    │ UPDATE short_links├────────────► return None
    │ SET visits+1      │              (nothing written)
    │ RETURNING id      │
    └────────┬─────────┘
             ▼  (row locked until commit)
    ┌──────────────────┐
    │ now = utcnow()    │
    │ SET last_visited  │
    │ INSERT visit row  │
    │ (+ optional trim) │
    └────────┬─────────┘
             ▼
    ┌──────────────────┐
    │ SELECT link +     │
    │ visit history     │
    └────────┬─────────┘
             ▼
    ┌──────────────────┐
    │ COMMIT, return    │
    │ post-update record│
    └──────────────────┘

Key Behaviours
===============
- Each operation runs in its own session and transaction; there are no
  multi-record transactions beyond a link and its own visit rows.
- short_code uniqueness is enforced by the unique index; violations surface
  as DuplicateCode.
- The UPDATE takes the row lock first, so concurrent visits of one code are
  serialized by the database and none is lost. The visit timestamp is taken
  after that lock, so history and last_visited_at follow commit order.
- Deletes are unconditional and report how many links were removed.
"""

import logging
from abc import ABC, abstractmethod

from prometheus_client import Counter
from sqlalchemy import delete, select, text, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from shortlinks.exceptions import DuplicateCode
from shortlinks.models import Link, Visit, utcnow
from shortlinks.schemas import NewShortLink, ShortLink

__all__ = ["LinkStore", "SqlLinkStore", "STORE_OPERATIONS_TOTAL"]

STORE_OPERATIONS_TOTAL = Counter(
    "shortlinks_store_operations_total",
    "Link store operations issued",
    ["backend", "operation"],
)


class LinkStore(ABC):
    """Persistence contract the LinkService depends on.

    Implementations must make ``insert`` reject an existing short code and
    make ``record_visit`` a single atomic find-and-update.
    """

    backend: str = "abstract"

    @abstractmethod  # pragma: no cover
    async def find_by_original_url(self, original_url: str) -> ShortLink | None:
        raise NotImplementedError

    @abstractmethod  # pragma: no cover
    async def find_by_code(self, short_code: str) -> ShortLink | None:
        raise NotImplementedError

    @abstractmethod  # pragma: no cover
    async def insert(self, link: NewShortLink) -> ShortLink:
        """Persist ``link`` and return it with its assigned id.

        Raises:
            DuplicateCode: If the short code is already stored.
        """
        raise NotImplementedError

    @abstractmethod  # pragma: no cover
    async def record_visit(
        self,
        short_code: str,
        user_agent: str | None = None,
        referrer: str | None = None,
    ) -> ShortLink | None:
        """Count one visit and append it to the history, atomically.

        Returns the post-update record, or None without writing anything when
        the code is unknown.
        """
        raise NotImplementedError

    @abstractmethod  # pragma: no cover
    async def delete_by_code(self, short_code: str) -> int:
        raise NotImplementedError

    @abstractmethod  # pragma: no cover
    async def delete_by_id(self, link_id: int) -> int:
        raise NotImplementedError

    @abstractmethod  # pragma: no cover
    async def list_all(self) -> list[ShortLink]:
        """Return every link, newest first."""
        raise NotImplementedError

    @abstractmethod  # pragma: no cover
    async def ping(self) -> None:
        """Raise if the backing store is unreachable."""
        raise NotImplementedError


class SqlLinkStore(LinkStore):
    """LinkStore on PostgreSQL (or SQLite) through SQLAlchemy's async ORM."""

    backend = "sql"

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        history_enabled: bool = True,
        history_limit: int | None = None,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
    ) -> None:
        assert history_limit is None or history_limit > 0, f"history_limit must be positive, got {history_limit!r}"
        self._session_factory = session_factory
        self._history_enabled = history_enabled
        self._history_limit = history_limit
        self._logger = logger or logging.getLogger("shortlinks")

    async def find_by_original_url(self, original_url: str) -> ShortLink | None:
        STORE_OPERATIONS_TOTAL.labels(backend=self.backend, operation="find_by_original_url").inc()
        async with self._session_factory() as session:
            row = await session.scalar(
                self._select_with_history().where(Link.original_url == original_url).order_by(Link.id).limit(1)
            )
            return ShortLink.model_validate(row) if row is not None else None

    async def find_by_code(self, short_code: str) -> ShortLink | None:
        STORE_OPERATIONS_TOTAL.labels(backend=self.backend, operation="find_by_code").inc()
        async with self._session_factory() as session:
            row = await session.scalar(self._select_with_history().where(Link.short_code == short_code))
            return ShortLink.model_validate(row) if row is not None else None

    async def insert(self, link: NewShortLink) -> ShortLink:
        STORE_OPERATIONS_TOTAL.labels(backend=self.backend, operation="insert").inc()
        row = Link(
            short_code=link.short_code,
            original_url=link.original_url,
            created_at=link.created_at,
            visits=0,
            last_visited_at=None,
        )
        row.visit_history = []
        try:
            async with self._session_factory() as session, session.begin():
                session.add(row)
                await session.flush()
        except IntegrityError as exc:
            self._logger.error(f"Unique constraint rejected short code: {link.short_code}")
            raise DuplicateCode(link.short_code) from exc
        return ShortLink.model_validate(row)

    async def record_visit(
        self,
        short_code: str,
        user_agent: str | None = None,
        referrer: str | None = None,
    ) -> ShortLink | None:
        STORE_OPERATIONS_TOTAL.labels(backend=self.backend, operation="record_visit").inc()
        async with self._session_factory() as session, session.begin():
            link_id = await session.scalar(
                update(Link)
                .where(Link.short_code == short_code)
                .values(visits=Link.visits + 1)
                .returning(Link.id)
                .execution_options(synchronize_session=False)
            )
            if link_id is None:
                return None

            # Row lock held from here on.
            now = utcnow()
            await session.execute(
                update(Link)
                .where(Link.id == link_id)
                .values(last_visited_at=now)
                .execution_options(synchronize_session=False)
            )
            if self._history_enabled:
                session.add(Visit(link_id=link_id, timestamp=now, user_agent=user_agent, referrer=referrer))
                await session.flush()
                if self._history_limit is not None:
                    await self._trim_history(session, link_id, self._history_limit)

            row = await session.scalar(
                self._select_with_history()
                .where(Link.id == link_id)
                .execution_options(populate_existing=True)
            )
            return ShortLink.model_validate(row)

    async def delete_by_code(self, short_code: str) -> int:
        STORE_OPERATIONS_TOTAL.labels(backend=self.backend, operation="delete_by_code").inc()
        return await self._delete(Link.short_code == short_code)

    async def delete_by_id(self, link_id: int) -> int:
        STORE_OPERATIONS_TOTAL.labels(backend=self.backend, operation="delete_by_id").inc()
        return await self._delete(Link.id == link_id)

    async def list_all(self) -> list[ShortLink]:
        STORE_OPERATIONS_TOTAL.labels(backend=self.backend, operation="list_all").inc()
        async with self._session_factory() as session:
            rows = await session.scalars(
                self._select_with_history().order_by(Link.created_at.desc(), Link.id.desc())
            )
            return [ShortLink.model_validate(row) for row in rows]

    async def ping(self) -> None:
        async with self._session_factory() as session:
            await session.execute(text("SELECT 1"))

    @staticmethod
    def _select_with_history():
        return select(Link).options(selectinload(Link.visit_history))

    async def _delete(self, condition) -> int:
        async with self._session_factory() as session, session.begin():
            # Visit rows are removed explicitly; SQLite does not enforce ON DELETE CASCADE by default.
            await session.execute(
                delete(Visit)
                .where(Visit.link_id.in_(select(Link.id).where(condition)))
                .execution_options(synchronize_session=False)
            )
            result = await session.execute(delete(Link).where(condition).execution_options(synchronize_session=False))
            return result.rowcount or 0

    @staticmethod
    async def _trim_history(session: AsyncSession, link_id: int, limit: int) -> None:
        newest = select(Visit.id).where(Visit.link_id == link_id).order_by(Visit.id.desc()).limit(limit)
        await session.execute(
            delete(Visit)
            .where(Visit.link_id == link_id, Visit.id.not_in(newest))
            .execution_options(synchronize_session=False)
        )
