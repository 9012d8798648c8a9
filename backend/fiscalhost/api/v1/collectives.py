from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.orm import Session

from fiscalhost.core.dependencies import get_db
from fiscalhost.models.collective import Collective
from fiscalhost.schemas.collective import CollectiveFeatureOut, CollectiveFeaturesOut, Feature
from fiscalhost.services.features import get_feature_status, get_features_statuses

router = APIRouter()


def _get_collective_or_404(db: Session, slug: str) -> Collective:
    collective = db.execute(
        select(Collective).where(Collective.slug == slug, Collective.deleted_at.is_(None))
    ).scalar_one_or_none()
    if not collective:
        raise HTTPException(404, "Collective not found")
    return collective


@router.get("/collectives/{slug}/features", response_model=CollectiveFeaturesOut)
def get_collective_features(slug: str, db: Session = Depends(get_db)):
    collective = _get_collective_or_404(db, slug)
    return CollectiveFeaturesOut(
        collective_id=str(collective.id),
        slug=collective.slug,
        features=get_features_statuses(db, collective),
    )


@router.get("/collectives/{slug}/features/{feature}", response_model=CollectiveFeatureOut)
def get_collective_feature(slug: str, feature: Feature, db: Session = Depends(get_db)):
    collective = _get_collective_or_404(db, slug)
    return CollectiveFeatureOut(
        collective_id=str(collective.id),
        feature=feature,
        status=get_feature_status(db, collective, feature),
    )
