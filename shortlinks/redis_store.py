"""Redis-backed LinkStore variant.

Keeps the same contract as the SQL store on top of plain Redis data types.
It trades durability (whatever the Redis persistence settings give) and the
dedup index consistency for operational simplicity; keys never expire.

Key Layout
==========
::
    <prefix>:link:<code>      HASH   id, short_code, original_url, created_at,
                                     visits, last_visited_at
    <prefix>:history:<code>   LIST   VisitDetail JSON, oldest first
    <prefix>:url:<url>        STRING code of the oldest live link for url
    <prefix>:codes:<url>      ZSET   every code stored for url, scored by id
    <prefix>:id:<id>          STRING code for delete-by-id
    <prefix>:created          ZSET   code scored by created_at (epoch seconds)
    <prefix>:ids              STRING INCR source for link ids

Key Behaviours
===============
- insert and record_visit WATCH the link hash and commit with MULTI/EXEC, so
  a concurrent writer forces a retry instead of a lost update.
- record_visit reads the post-update hash and history inside the same
  MULTI/EXEC block as the increment.
- The client must be created with ``decode_responses=True``.
"""

import logging

import redis.asyncio as redis
from redis.asyncio.client import Pipeline

from shortlinks.exceptions import DuplicateCode
from shortlinks.models import utcnow
from shortlinks.schemas import NewShortLink, ShortLink, VisitDetail
from shortlinks.store import STORE_OPERATIONS_TOTAL, LinkStore

__all__ = ["RedisLinkStore"]


class RedisLinkStore(LinkStore):
    backend = "redis"

    def __init__(
        self,
        cache: redis.Redis,
        history_enabled: bool = True,
        history_limit: int | None = None,
        key_prefix: str = "shortlink",
        logger: logging.Logger | logging.LoggerAdapter | None = None,
    ) -> None:
        assert history_limit is None or history_limit > 0, f"history_limit must be positive, got {history_limit!r}"
        self._cache = cache
        self._history_enabled = history_enabled
        self._history_limit = history_limit
        self._prefix = key_prefix
        self._logger = logger or logging.getLogger("shortlinks")

    # ========================================================================
    # KEYS
    # ========================================================================

    def _link_key(self, short_code: str) -> str:
        return f"{self._prefix}:link:{short_code}"

    def _history_key(self, short_code: str) -> str:
        return f"{self._prefix}:history:{short_code}"

    def _url_key(self, original_url: str) -> str:
        return f"{self._prefix}:url:{original_url}"

    def _codes_key(self, original_url: str) -> str:
        return f"{self._prefix}:codes:{original_url}"

    def _id_key(self, link_id: int | str) -> str:
        return f"{self._prefix}:id:{link_id}"

    @property
    def _created_key(self) -> str:
        return f"{self._prefix}:created"

    @property
    def _ids_key(self) -> str:
        return f"{self._prefix}:ids"

    # ========================================================================
    # LinkStore API
    # ========================================================================

    async def find_by_original_url(self, original_url: str) -> ShortLink | None:
        STORE_OPERATIONS_TOTAL.labels(backend=self.backend, operation="find_by_original_url").inc()
        short_code = await self._cache.get(self._url_key(original_url))
        if short_code is None:
            return None
        return await self._load(short_code)

    async def find_by_code(self, short_code: str) -> ShortLink | None:
        STORE_OPERATIONS_TOTAL.labels(backend=self.backend, operation="find_by_code").inc()
        return await self._load(short_code)

    async def insert(self, link: NewShortLink) -> ShortLink:
        STORE_OPERATIONS_TOTAL.labels(backend=self.backend, operation="insert").inc()
        key = self._link_key(link.short_code)
        link_id = await self._cache.incr(self._ids_key)

        async def _write(pipe: Pipeline) -> None:
            if await pipe.exists(key):
                self._logger.error(f"Short code already present in Redis: {link.short_code}")
                raise DuplicateCode(link.short_code)
            pipe.multi()
            pipe.hset(
                key,
                mapping={
                    "id": link_id,
                    "short_code": link.short_code,
                    "original_url": link.original_url,
                    "created_at": link.created_at.isoformat(),
                    "visits": 0,
                },
            )
            pipe.set(self._url_key(link.original_url), link.short_code, nx=True)
            pipe.zadd(self._codes_key(link.original_url), {link.short_code: link_id})
            pipe.set(self._id_key(link_id), link.short_code)
            pipe.zadd(self._created_key, {link.short_code: link.created_at.timestamp()})

        await self._cache.transaction(_write, key)
        return ShortLink(
            id=link_id,
            original_url=link.original_url,
            short_code=link.short_code,
            created_at=link.created_at,
        )

    async def record_visit(
        self,
        short_code: str,
        user_agent: str | None = None,
        referrer: str | None = None,
    ) -> ShortLink | None:
        STORE_OPERATIONS_TOTAL.labels(backend=self.backend, operation="record_visit").inc()
        key = self._link_key(short_code)
        history_key = self._history_key(short_code)

        async def _visit(pipe: Pipeline) -> None:
            if not await pipe.exists(key):
                return
            now = utcnow()
            pipe.multi()
            pipe.hincrby(key, "visits", 1)
            pipe.hset(key, "last_visited_at", now.isoformat())
            if self._history_enabled:
                visit = VisitDetail(timestamp=now, user_agent=user_agent, referrer=referrer)
                pipe.rpush(history_key, visit.model_dump_json())
                if self._history_limit is not None:
                    pipe.ltrim(history_key, -self._history_limit, -1)
            pipe.hgetall(key)
            pipe.lrange(history_key, 0, -1)

        results = await self._cache.transaction(_visit, key)
        if not results:
            return None
        fields, history = results[-2], results[-1]
        return self._to_link(fields, history)

    async def delete_by_code(self, short_code: str) -> int:
        STORE_OPERATIONS_TOTAL.labels(backend=self.backend, operation="delete_by_code").inc()
        key = self._link_key(short_code)

        async def _delete(pipe: Pipeline) -> None:
            fields = await pipe.hgetall(key)
            if not fields:
                return
            url_key = self._url_key(fields["original_url"])
            codes_key = self._codes_key(fields["original_url"])
            await pipe.watch(url_key, codes_key)
            indexed_code = await pipe.get(url_key)
            survivors = [code for code in await pipe.zrange(codes_key, 0, 1) if code != short_code]
            pipe.multi()
            pipe.delete(key, self._history_key(short_code), self._id_key(fields["id"]))
            pipe.zrem(self._created_key, short_code)
            pipe.zrem(codes_key, short_code)
            if indexed_code == short_code:
                # Another link for the same URL takes over the dedup index.
                if survivors:
                    pipe.set(url_key, survivors[0])
                else:
                    pipe.delete(url_key)

        results = await self._cache.transaction(_delete, key)
        return 1 if results else 0

    async def delete_by_id(self, link_id: int) -> int:
        STORE_OPERATIONS_TOTAL.labels(backend=self.backend, operation="delete_by_id").inc()
        short_code = await self._cache.get(self._id_key(link_id))
        if short_code is None:
            return 0
        return await self.delete_by_code(short_code)

    async def list_all(self) -> list[ShortLink]:
        STORE_OPERATIONS_TOTAL.labels(backend=self.backend, operation="list_all").inc()
        codes = await self._cache.zrevrange(self._created_key, 0, -1)
        if not codes:
            return []

        async with self._cache.pipeline(transaction=True) as pipe:
            for short_code in codes:
                pipe.hgetall(self._link_key(short_code))
                pipe.lrange(self._history_key(short_code), 0, -1)
            results = await pipe.execute()

        links = []
        for fields, history in zip(results[::2], results[1::2]):
            if fields:
                links.append(self._to_link(fields, history))
        return links

    async def ping(self) -> None:
        await self._cache.ping()

    # ========================================================================
    # HELPERS
    # ========================================================================

    async def _load(self, short_code: str) -> ShortLink | None:
        async with self._cache.pipeline(transaction=True) as pipe:
            pipe.hgetall(self._link_key(short_code))
            pipe.lrange(self._history_key(short_code), 0, -1)
            fields, history = await pipe.execute()
        if not fields:
            return None
        return self._to_link(fields, history)

    @staticmethod
    def _to_link(fields: dict[str, str], history: list[str]) -> ShortLink:
        return ShortLink.model_validate(
            {
                **fields,
                "visit_history": [VisitDetail.model_validate_json(entry) for entry in history],
            }
        )
