"""Collective search. Only the term length is logged, never the term itself."""

from __future__ import annotations

import logging
from typing import Any

import httpx
from fastapi import HTTPException
from sqlalchemy.orm import Session

from fiscalhost.schemas.collective import CollectiveSearchItem, CollectiveSearchResponse
from fiscalhost.services.search.providers import get_search_provider

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 20


def _hit_to_item(hit: dict[str, Any]) -> CollectiveSearchItem:
    return CollectiveSearchItem(
        id=hit.get("id"),
        name=hit.get("name"),
        slug=hit.get("slug"),
        description=hit.get("description"),
        type=hit.get("type"),
        currency=hit.get("currency"),
        tags=hit.get("tags"),
        image=hit.get("image") or None,
        balance=hit.get("balance"),
        yearly_budget=hit.get("yearlyBudget", hit.get("yearly_budget")),
        backers_count=hit.get("backersCount", hit.get("backers_count")),
    )


async def search_collectives(
    db: Session,
    term: str,
    *,
    limit: int = DEFAULT_LIMIT,
    offset: int = 0,
    use_algolia: bool = False,
) -> CollectiveSearchResponse:
    term = (term or "").strip()
    if not term:
        return CollectiveSearchResponse(collectives=[], total=0, limit=limit, offset=offset)

    provider = get_search_provider(db, use_algolia=use_algolia)
    try:
        result = await provider.search(term, limit=limit, offset=offset)
    except httpx.HTTPError as exc:
        logger.warning("collective search failed provider=%s term_len=%d: %s", provider.name, len(term), exc)
        raise HTTPException(502, "Search provider unavailable") from exc

    logger.info(
        "collective search provider=%s term_len=%d limit=%d offset=%d total=%d",
        result.provider,
        len(term),
        limit,
        offset,
        result.total,
    )
    return CollectiveSearchResponse(
        collectives=[_hit_to_item(hit) for hit in result.hits],
        total=result.total,
        limit=limit,
        offset=offset,
    )
