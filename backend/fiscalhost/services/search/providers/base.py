"""Abstract base for collective search providers."""

from __future__ import annotations

import abc
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class SearchResult:
    """Hits as returned by the provider, plus the provider-side total."""

    hits: list[dict[str, Any]] = field(default_factory=list)
    total: int = 0
    provider: str = "base"


class BaseSearchProvider(abc.ABC):
    """Contract that every search provider must implement."""

    name: str = "base"

    @abc.abstractmethod
    async def search(self, term: str, *, limit: int, offset: int) -> SearchResult:
        """Return at most *limit* hits for *term*, skipping *offset*."""
