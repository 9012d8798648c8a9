"""Algolia provider (REST API, search-only key)."""

from __future__ import annotations

import logging
import time
from urllib.parse import quote, urlencode

from .base import BaseSearchProvider, SearchResult

logger = logging.getLogger(__name__)


class AlgoliaProvider(BaseSearchProvider):
    name = "algolia"

    def __init__(self, app_id: str, api_key: str, index: str, *, timeout_seconds: float = 5.0) -> None:
        self._app_id = app_id
        self._api_key = api_key
        self._index = index
        self._timeout_seconds = timeout_seconds

    @property
    def query_url(self) -> str:
        return f"https://{self._app_id}-dsn.algolia.net/1/indexes/{quote(self._index, safe='')}/query"

    async def search(self, term: str, *, limit: int, offset: int) -> SearchResult:
        import httpx

        t0 = time.monotonic()
        async with httpx.AsyncClient(timeout=self._timeout_seconds) as client:
            resp = await client.post(
                self.query_url,
                headers={
                    "X-Algolia-Application-Id": self._app_id,
                    "X-Algolia-API-Key": self._api_key,
                    "Content-Type": "application/json",
                },
                json={"params": urlencode({"query": term, "length": limit, "offset": offset})},
            )
            resp.raise_for_status()
            data = resp.json()

        hits = data.get("hits") or []
        logger.info(
            "algolia search hits=%d nb_hits=%s latency_ms=%.2f",
            len(hits),
            data.get("nbHits"),
            (time.monotonic() - t0) * 1000,
        )
        return SearchResult(hits=hits, total=int(data.get("nbHits") or 0), provider=self.name)
