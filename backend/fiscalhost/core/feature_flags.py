from fastapi import HTTPException

from fiscalhost.core.config import get_settings


def ensure_collective_search_enabled() -> None:
    settings = get_settings()
    if not settings.enable_collective_search:
        raise HTTPException(status_code=404, detail="Not found")
