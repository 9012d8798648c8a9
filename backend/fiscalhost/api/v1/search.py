from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from fiscalhost.core.dependencies import get_db
from fiscalhost.core.feature_flags import ensure_collective_search_enabled
from fiscalhost.schemas.collective import CollectiveSearchResponse
from fiscalhost.services.search.service import search_collectives

router = APIRouter()


@router.get(
    "/search",
    response_model=CollectiveSearchResponse,
    dependencies=[Depends(ensure_collective_search_enabled)],
)
async def search(
    term: str = Query("", max_length=200),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    use_algolia: bool = Query(False),
    db: Session = Depends(get_db),
):
    return await search_collectives(db, term, limit=limit, offset=offset, use_algolia=use_algolia)
