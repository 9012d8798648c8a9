"""Provider factory: Algolia when requested and configured, database otherwise."""

from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from fiscalhost.core.config import get_settings

from .base import BaseSearchProvider, SearchResult
from .database import DatabaseSearchProvider

logger = logging.getLogger(__name__)

__all__ = ["get_search_provider", "BaseSearchProvider", "SearchResult", "DatabaseSearchProvider"]


def get_search_provider(db: Session, *, use_algolia: bool = False) -> BaseSearchProvider:
    """Return the provider for this request.

    Asking for Algolia without ``ALGOLIA_APP_ID`` / ``ALGOLIA_API_KEY`` /
    ``ALGOLIA_INDEX`` falls back to the database provider.
    """
    if not use_algolia:
        return DatabaseSearchProvider(db)

    settings = get_settings()
    if not settings.algolia_configured:
        logger.warning("Algolia not configured, falling back to database search")
        return DatabaseSearchProvider(db)

    from .algolia import AlgoliaProvider

    return AlgoliaProvider(
        app_id=settings.algolia_app_id,
        api_key=settings.algolia_api_key,
        index=settings.algolia_index,
        timeout_seconds=settings.search_timeout_seconds,
    )
