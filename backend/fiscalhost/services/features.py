"""Feature status resolution for collectives.

UNSUPPORTED: the feature does not apply to this kind of account.
DISABLED:    it applies but the collective turned it off (or never opted in).
AVAILABLE:   enabled, not used yet.
ACTIVE:      enabled and in use.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from fiscalhost.models.collective import Collective, ConnectedAccount, Conversation, Order, Update
from fiscalhost.schemas.collective import CollectiveType, Feature, FeatureStatus

logger = logging.getLogger(__name__)

_ALL_TYPES = frozenset(CollectiveType)
_ACCOUNTS_RECEIVING_MONEY = frozenset(
    {
        CollectiveType.COLLECTIVE,
        CollectiveType.EVENT,
        CollectiveType.FUND,
        CollectiveType.PROJECT,
        CollectiveType.ORGANIZATION,
    }
)

FEATURE_ALLOWED_TYPES: dict[Feature, frozenset[CollectiveType]] = {
    Feature.ALL: _ALL_TYPES,
    Feature.CONVERSATIONS: frozenset({CollectiveType.COLLECTIVE, CollectiveType.ORGANIZATION, CollectiveType.FUND}),
    Feature.UPDATES: frozenset(
        {CollectiveType.COLLECTIVE, CollectiveType.ORGANIZATION, CollectiveType.FUND, CollectiveType.PROJECT}
    ),
    Feature.RECURRING_CONTRIBUTIONS: frozenset(
        {CollectiveType.USER, CollectiveType.ORGANIZATION, CollectiveType.COLLECTIVE, CollectiveType.FUND}
    ),
    Feature.TRANSFERWISE: frozenset({CollectiveType.ORGANIZATION}),
    Feature.RECEIVE_EXPENSES: _ACCOUNTS_RECEIVING_MONEY,
    Feature.RECEIVE_FINANCIAL_CONTRIBUTIONS: _ACCOUNTS_RECEIVING_MONEY,
    Feature.EVENTS: frozenset({CollectiveType.COLLECTIVE, CollectiveType.ORGANIZATION}),
    Feature.CONTACT_FORM: frozenset(
        {CollectiveType.COLLECTIVE, CollectiveType.EVENT, CollectiveType.FUND, CollectiveType.ORGANIZATION}
    ),
    Feature.COLLECTIVE_GOALS: frozenset({CollectiveType.COLLECTIVE, CollectiveType.ORGANIZATION}),
    Feature.TRANSACTIONS: _ALL_TYPES,
}

# Only meaningful for accounts acting as a fiscal host.
HOST_ONLY_FEATURES = frozenset({Feature.TRANSFERWISE})

# Disabled unless explicitly enabled in ``collective.data["features"]``.
OPT_IN_FEATURES = frozenset({Feature.COLLECTIVE_GOALS})


def _exists(db: Session, column, *criteria) -> bool:
    return db.scalar(select(column).where(*criteria).limit(1)) is not None


def _active_if(in_use: bool, fallback: FeatureStatus = FeatureStatus.AVAILABLE) -> FeatureStatus:
    return FeatureStatus.ACTIVE if in_use else fallback


def _always_active(db: Session, collective: Collective) -> FeatureStatus:
    return FeatureStatus.ACTIVE


def _updates_status(db: Session, collective: Collective) -> FeatureStatus:
    return _active_if(
        _exists(
            db,
            Update.id,
            Update.collective_id == collective.id,
            Update.published_at.is_not(None),
            Update.deleted_at.is_(None),
        )
    )


def _conversations_status(db: Session, collective: Collective) -> FeatureStatus:
    return _active_if(
        _exists(db, Conversation.id, Conversation.collective_id == collective.id, Conversation.deleted_at.is_(None))
    )


def _recurring_contributions_status(db: Session, collective: Collective) -> FeatureStatus:
    return _active_if(
        _exists(
            db,
            Order.id,
            Order.from_collective_id == collective.id,
            Order.subscription_id.is_not(None),
            Order.status == "ACTIVE",
        )
    )


def _transferwise_status(db: Session, collective: Collective) -> FeatureStatus:
    return _active_if(
        _exists(
            db,
            ConnectedAccount.id,
            ConnectedAccount.collective_id == collective.id,
            ConnectedAccount.service == "transferwise",
            ConnectedAccount.deleted_at.is_(None),
        ),
        fallback=FeatureStatus.DISABLED,
    )


FEATURE_ACTIVITY_CHECKS: dict[Feature, Callable[[Session, Collective], FeatureStatus]] = {
    Feature.ALL: _always_active,
    Feature.CONVERSATIONS: _conversations_status,
    Feature.UPDATES: _updates_status,
    Feature.RECURRING_CONTRIBUTIONS: _recurring_contributions_status,
    Feature.TRANSFERWISE: _transferwise_status,
    Feature.RECEIVE_EXPENSES: _always_active,
    Feature.RECEIVE_FINANCIAL_CONTRIBUTIONS: _always_active,
    Feature.EVENTS: _always_active,
    Feature.CONTACT_FORM: _always_active,
    Feature.COLLECTIVE_GOALS: _always_active,
    Feature.TRANSACTIONS: _always_active,
}


def check_feature_tables() -> None:
    """Every ``Feature`` needs an allowed-types entry and an activity check."""
    for name, table in (
        ("FEATURE_ALLOWED_TYPES", FEATURE_ALLOWED_TYPES),
        ("FEATURE_ACTIVITY_CHECKS", FEATURE_ACTIVITY_CHECKS),
    ):
        missing = set(Feature) - set(table)
        if missing:
            raise RuntimeError(f"{name} is missing features: {sorted(missing)}")


check_feature_tables()


def is_feature_allowed_for_collective_type(
    collective_type: Optional[str], feature: Feature, is_host: bool = False
) -> bool:
    try:
        parsed_type = CollectiveType(collective_type)
    except ValueError:
        return False
    if parsed_type not in FEATURE_ALLOWED_TYPES[feature]:
        return False
    if feature in HOST_ONLY_FEATURES and not is_host:
        return False
    return True


def has_feature(collective: Optional[Collective], feature: Feature) -> bool:
    if collective is None:
        return False
    toggles = (collective.data or {}).get("features") or {}
    if toggles.get(Feature.ALL.value) is False:
        return False
    value = toggles.get(feature.value)
    if feature in OPT_IN_FEATURES:
        return value is True
    return value is not False


def get_feature_status(db: Session, collective: Optional[Collective], feature: Feature) -> FeatureStatus:
    if collective is None:
        return FeatureStatus.UNSUPPORTED
    if not is_feature_allowed_for_collective_type(collective.type, feature, bool(collective.is_host_account)):
        return FeatureStatus.UNSUPPORTED
    if not has_feature(collective, feature):
        return FeatureStatus.DISABLED
    return FEATURE_ACTIVITY_CHECKS[feature](db, collective)


def get_features_statuses(db: Session, collective: Optional[Collective]) -> dict[Feature, FeatureStatus]:
    statuses = {feature: get_feature_status(db, collective, feature) for feature in Feature}
    logger.debug(
        "feature statuses collective_id=%s active=%d",
        getattr(collective, "id", None),
        sum(1 for status in statuses.values() if status == FeatureStatus.ACTIVE),
    )
    return statuses
