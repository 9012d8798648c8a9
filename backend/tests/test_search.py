"""Collective search: database provider, Algolia provider and the endpoint gate."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from unittest.mock import AsyncMock, patch
from urllib.parse import parse_qs

import httpx
import pytest
from fastapi import HTTPException

from fiscalhost.core.config import get_settings
from fiscalhost.services.search.providers import DatabaseSearchProvider, get_search_provider
from fiscalhost.services.search.providers.algolia import AlgoliaProvider
from fiscalhost.services.search.service import search_collectives


@pytest.fixture
def algolia_env(monkeypatch):
    monkeypatch.setenv("ALGOLIA_APP_ID", "APPID")
    monkeypatch.setenv("ALGOLIA_API_KEY", "search-key")
    monkeypatch.setenv("ALGOLIA_INDEX", "collectives")
    get_settings.cache_clear()


def _algolia_response(payload: dict, status_code: int = 200) -> httpx.Response:
    return httpx.Response(
        status_code,
        json=payload,
        request=httpx.Request("POST", "https://APPID-dsn.algolia.net/1/indexes/collectives/query"),
    )


@pytest.mark.asyncio
async def test_database_search_matches_name_and_slug(db, factory):
    factory.collective(slug="webpack", name="Webpack")
    factory.collective(slug="babel", name="Babel", description="JS compiler like webpack's friend")
    factory.collective(slug="vue", name="Vue")

    result = await search_collectives(db, "webpack")

    assert result.total == 2
    assert [c.slug for c in result.collectives] == ["babel", "webpack"]


@pytest.mark.asyncio
async def test_database_search_skips_inactive_and_deleted(db, factory):
    factory.collective(slug="open-one", name="Open One")
    factory.collective(slug="open-two", name="Open Two", is_active=False)
    factory.collective(slug="open-three", name="Open Three", deleted_at=datetime(2025, 1, 1, tzinfo=timezone.utc))

    result = await search_collectives(db, "open")

    assert [c.slug for c in result.collectives] == ["open-one"]


@pytest.mark.asyncio
async def test_database_search_paginates(db, factory):
    for index in range(5):
        factory.collective(slug=f"page-{index}", name=f"Page {index}")

    result = await search_collectives(db, "page", limit=2, offset=2)

    assert result.total == 5
    assert [c.slug for c in result.collectives] == ["page-2", "page-3"]
    assert (result.limit, result.offset) == (2, 2)


@pytest.mark.asyncio
async def test_database_search_escapes_wildcards(db, factory):
    factory.collective(slug="plain", name="Plain")

    result = await search_collectives(db, "%")

    assert result.total == 0


@pytest.mark.asyncio
async def test_blank_term_returns_nothing(db, factory):
    factory.collective(slug="anything", name="Anything")

    result = await search_collectives(db, "   ")

    assert result.total == 0
    assert result.collectives == []


def test_algolia_falls_back_to_database_when_not_configured(db):
    assert isinstance(get_search_provider(db, use_algolia=True), DatabaseSearchProvider)


def test_algolia_provider_when_configured(db, algolia_env):
    provider = get_search_provider(db, use_algolia=True)
    assert isinstance(provider, AlgoliaProvider)
    assert provider.query_url == "https://APPID-dsn.algolia.net/1/indexes/collectives/query"


@pytest.mark.asyncio
async def test_algolia_search_maps_hits(db, algolia_env, caplog):
    payload = {
        "hits": [
            {
                "id": 42,
                "name": "Webpack",
                "slug": "webpack",
                "type": "COLLECTIVE",
                "currency": "USD",
                "tags": ["javascript"],
                "balance": 1000,
                "yearlyBudget": 250000,
                "backersCount": 12,
                "objectID": "42",
            }
        ],
        "nbHits": 7,
    }
    post = AsyncMock(return_value=_algolia_response(payload))
    caplog.set_level(logging.INFO)

    with patch.object(httpx.AsyncClient, "post", post):
        result = await search_collectives(db, "webpack secret", limit=5, offset=10, use_algolia=True)

    assert result.total == 7
    item = result.collectives[0]
    assert item.slug == "webpack"
    assert item.yearly_budget == 250000
    assert item.backers_count == 12

    args, kwargs = post.call_args
    assert args[0] == "https://APPID-dsn.algolia.net/1/indexes/collectives/query"
    assert kwargs["headers"]["X-Algolia-Application-Id"] == "APPID"
    assert kwargs["headers"]["X-Algolia-API-Key"] == "search-key"
    params = parse_qs(kwargs["json"]["params"])
    assert params == {"query": ["webpack secret"], "length": ["5"], "offset": ["10"]}

    # Only the term length is logged.
    assert "webpack secret" not in caplog.text


@pytest.mark.asyncio
async def test_algolia_failure_is_reported_as_502(db, algolia_env):
    post = AsyncMock(return_value=_algolia_response({"message": "down"}, status_code=503))

    with patch.object(httpx.AsyncClient, "post", post):
        with pytest.raises(HTTPException) as excinfo:
            await search_collectives(db, "webpack", use_algolia=True)

    assert excinfo.value.status_code == 502


@pytest.mark.asyncio
async def test_search_endpoint(client, factory):
    factory.collective(slug="webpack", name="Webpack")

    resp = await client.get("/api/v1/search", params={"term": "web"})

    assert resp.status_code == 200
    data = resp.json()
    assert data["total"] == 1
    assert data["collectives"][0]["slug"] == "webpack"


@pytest.mark.asyncio
async def test_search_endpoint_disabled(client, monkeypatch):
    monkeypatch.setenv("ENABLE_COLLECTIVE_SEARCH", "false")
    get_settings.cache_clear()

    resp = await client.get("/api/v1/search", params={"term": "web"})

    assert resp.status_code == 404
