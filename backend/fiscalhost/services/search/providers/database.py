"""Database provider: case-insensitive match on name, slug and description."""

from __future__ import annotations

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from fiscalhost.models.collective import Collective

from .base import BaseSearchProvider, SearchResult


def _like_pattern(term: str) -> str:
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


class DatabaseSearchProvider(BaseSearchProvider):
    name = "database"

    def __init__(self, db: Session) -> None:
        self._db = db

    async def search(self, term: str, *, limit: int, offset: int) -> SearchResult:
        pattern = _like_pattern(term)
        criteria = (
            Collective.deleted_at.is_(None),
            Collective.is_active.is_(True),
            or_(
                Collective.name.ilike(pattern, escape="\\"),
                Collective.slug.ilike(pattern, escape="\\"),
                Collective.description.ilike(pattern, escape="\\"),
            ),
        )
        total = self._db.scalar(select(func.count()).select_from(Collective).where(*criteria)) or 0
        rows = (
            self._db.execute(
                select(Collective).where(*criteria).order_by(Collective.name, Collective.id).offset(offset).limit(limit)
            )
            .scalars()
            .all()
        )
        hits = [
            {
                "id": str(c.id),
                "name": c.name,
                "slug": c.slug,
                "description": c.description,
                "type": c.type,
                "currency": c.currency,
                "tags": list(c.tags or []),
            }
            for c in rows
        ]
        return SearchResult(hits=hits, total=int(total), provider=self.name)
