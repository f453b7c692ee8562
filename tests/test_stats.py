"""Stats endpoint behavior tests."""

import pytest
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_stats_valid_code(client: AsyncClient) -> None:
    create_resp = await client.post("/api/shorten", json={"url": "https://www.google.com"})
    short_code = create_resp.json()["short_code"]

    response = await client.get(f"/api/stats/{short_code}")
    assert response.status_code == 200
    data = response.json()
    assert data["short_code"] == short_code
    assert data["original_url"] == "https://www.google.com"
    assert data["visits"] == 0
    assert data["visit_history"] == []
    assert data["short_url"] == f"http://short.test/{short_code}"
    assert "created_at" in data


@pytest.mark.asyncio
async def test_stats_invalid_code(client: AsyncClient) -> None:
    response = await client.get("/api/stats/nonexistent")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_stats_do_not_count_as_visits(client: AsyncClient) -> None:
    create_resp = await client.post("/api/shorten", json={"url": "https://www.example.com"})
    short_code = create_resp.json()["short_code"]

    for _ in range(3):
        await client.get(f"/api/stats/{short_code}")

    data = (await client.get(f"/api/stats/{short_code}")).json()
    assert data["visits"] == 0
    assert data["last_visited_at"] is None


@pytest.mark.asyncio
async def test_stats_after_visits(client: AsyncClient) -> None:
    create_resp = await client.post("/api/shorten", json={"url": "https://www.example.com"})
    short_code = create_resp.json()["short_code"]

    for _ in range(5):
        await client.get(f"/{short_code}", follow_redirects=False)

    data = (await client.get(f"/api/stats/{short_code}")).json()
    assert data["visits"] == 5
    timestamps = [visit["timestamp"] for visit in data["visit_history"]]
    assert len(timestamps) == 5
    assert data["last_visited_at"] == timestamps[-1]
