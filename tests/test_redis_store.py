"""RedisLinkStore tests on fakeredis."""

import asyncio
import datetime

import pytest

from shortlinks.exceptions import DuplicateCode
from shortlinks.redis_store import RedisLinkStore
from shortlinks.schemas import NewShortLink

BASE_TIME = datetime.datetime(2024, 1, 1, tzinfo=datetime.timezone.utc)


def new_link(short_code: str, url: str = "https://example.com", minutes: int = 0) -> NewShortLink:
    return NewShortLink(
        original_url=url,
        short_code=short_code,
        created_at=BASE_TIME + datetime.timedelta(minutes=minutes),
    )


@pytest.mark.asyncio
async def test_insert_and_find(redis_store):
    inserted = await redis_store.insert(new_link("1"))

    assert inserted.id == 1
    assert inserted.visits == 0
    found = await redis_store.find_by_code("1")
    assert found == inserted
    assert await redis_store.find_by_code("2") is None


@pytest.mark.asyncio
async def test_insert_duplicate_code_raises(redis_store):
    await redis_store.insert(new_link("abc", "https://a.example"))

    with pytest.raises(DuplicateCode):
        await redis_store.insert(new_link("abc", "https://b.example"))

    assert (await redis_store.find_by_code("abc")).original_url == "https://a.example"


@pytest.mark.asyncio
async def test_find_by_original_url(redis_store):
    first = await redis_store.insert(new_link("1", "https://dup.example"))
    await redis_store.insert(new_link("2", "https://dup.example"))

    assert (await redis_store.find_by_original_url("https://dup.example")).id == first.id
    assert await redis_store.find_by_original_url("https://other.example") is None


@pytest.mark.asyncio
async def test_record_visit(redis_store):
    await redis_store.insert(new_link("v"))

    await redis_store.record_visit("v")
    link = await redis_store.record_visit("v", user_agent="curl/8.0", referrer="https://ref.example")

    assert link.visits == 2
    assert len(link.visit_history) == 2
    assert link.visit_history[0].timestamp <= link.visit_history[1].timestamp
    assert link.visit_history[1].user_agent == "curl/8.0"
    assert link.visit_history[1].referrer == "https://ref.example"
    assert link.last_visited_at == link.visit_history[1].timestamp


@pytest.mark.asyncio
async def test_record_visit_unknown_code_writes_nothing(redis_store, redis_client):
    assert await redis_store.record_visit("unknown") is None
    assert await redis_client.exists("shortlink:link:unknown") == 0
    assert await redis_client.exists("shortlink:history:unknown") == 0


@pytest.mark.asyncio
async def test_concurrent_visits_are_not_lost(redis_store):
    await redis_store.insert(new_link("hot"))

    await asyncio.gather(*(redis_store.record_visit("hot") for _ in range(10)))

    link = await redis_store.find_by_code("hot")
    assert link.visits == 10
    assert len(link.visit_history) == 10


@pytest.mark.asyncio
async def test_history_limit(redis_client):
    store = RedisLinkStore(redis_client, history_limit=2)
    await store.insert(new_link("cap"))

    for _ in range(4):
        link = await store.record_visit("cap")

    assert link.visits == 4
    assert len(link.visit_history) == 2


@pytest.mark.asyncio
async def test_list_all_newest_first(redis_store):
    await redis_store.insert(new_link("old", "https://old.example", minutes=0))
    await redis_store.insert(new_link("new", "https://new.example", minutes=10))
    await redis_store.insert(new_link("mid", "https://mid.example", minutes=5))

    links = await redis_store.list_all()

    assert [link.short_code for link in links] == ["new", "mid", "old"]


@pytest.mark.asyncio
async def test_delete_by_code_removes_indexes(redis_store):
    await redis_store.insert(new_link("gone", "https://gone.example"))
    await redis_store.record_visit("gone")

    assert await redis_store.delete_by_code("gone") == 1
    assert await redis_store.delete_by_code("gone") == 0
    assert await redis_store.find_by_code("gone") is None
    assert await redis_store.find_by_original_url("https://gone.example") is None
    assert await redis_store.list_all() == []


@pytest.mark.asyncio
async def test_delete_by_id(redis_store):
    link = await redis_store.insert(new_link("byid"))

    assert await redis_store.delete_by_id(link.id) == 1
    assert await redis_store.delete_by_id(link.id) == 0
    assert await redis_store.delete_by_id(999) == 0


@pytest.mark.asyncio
async def test_ping(redis_store):
    await redis_store.ping()


@pytest.mark.asyncio
async def test_concurrent_visits_keep_history_in_time_order(redis_store):
    await redis_store.insert(new_link("h"))

    await asyncio.gather(*(redis_store.record_visit("h") for _ in range(20)))

    link = await redis_store.find_by_code("h")
    timestamps = [visit.timestamp for visit in link.visit_history]
    assert len(timestamps) == 20
    assert timestamps == sorted(timestamps)
    assert link.last_visited_at == max(timestamps)


@pytest.mark.asyncio
async def test_deleting_indexed_link_hands_url_to_surviving_link(redis_store):
    await redis_store.insert(new_link("1", "https://race.example"))
    await redis_store.insert(new_link("2", "https://race.example"))

    assert await redis_store.delete_by_code("1") == 1
    assert (await redis_store.find_by_original_url("https://race.example")).short_code == "2"

    assert await redis_store.delete_by_code("2") == 1
    assert await redis_store.find_by_original_url("https://race.example") is None


@pytest.mark.asyncio
async def test_deleting_unindexed_link_keeps_url_index(redis_store):
    await redis_store.insert(new_link("1", "https://race.example"))
    await redis_store.insert(new_link("2", "https://race.example"))

    assert await redis_store.delete_by_code("2") == 1

    assert (await redis_store.find_by_original_url("https://race.example")).short_code == "1"
