"""Shorten endpoint behavior tests."""

import pytest
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_shorten_valid_url(client: AsyncClient) -> None:
    response = await client.post("/api/shorten", json={"url": "https://www.google.com"})
    assert response.status_code == 201
    data = response.json()
    assert data["original_url"] == "https://www.google.com"
    assert data["short_code"] == "1"
    assert data["short_url"] == "http://short.test/1"
    assert data["visits"] == 0
    assert data["last_visited_at"] is None


@pytest.mark.asyncio
async def test_shorten_invalid_url(client: AsyncClient) -> None:
    response = await client.post("/api/shorten", json={"url": "not-a-url"})
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_shorten_empty_url(client: AsyncClient) -> None:
    response = await client.post("/api/shorten", json={"url": ""})
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_shorten_missing_url(client: AsyncClient) -> None:
    response = await client.post("/api/shorten", json={})
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_shorten_same_url_returns_existing_link(client: AsyncClient) -> None:
    first = await client.post("/api/shorten", json={"url": "https://www.github.com"})
    second = await client.post("/api/shorten", json={"url": "https://www.github.com"})
    assert second.status_code == 201
    assert second.json()["short_code"] == first.json()["short_code"]
    assert second.json()["id"] == first.json()["id"]


@pytest.mark.asyncio
async def test_shorten_multiple_urls(client: AsyncClient) -> None:
    urls = [
        "https://www.google.com",
        "https://www.github.com",
        "https://www.python.org",
    ]
    codes = []
    for url in urls:
        response = await client.post("/api/shorten", json={"url": url})
        assert response.status_code == 201
        codes.append(response.json()["short_code"])
    # Codes follow the sequence
    assert codes == ["1", "2", "3"]


@pytest.mark.asyncio
@pytest.mark.parametrize("url", ["http://localhost:3000/page", "https://example.com/search?q"])
async def test_shorten_accepts_local_hosts_and_bare_query_keys(client: AsyncClient, url: str) -> None:
    response = await client.post("/api/shorten", json={"url": url})
    assert response.status_code == 201
    assert response.json()["original_url"] == url
