from enum import StrEnum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict


class CollectiveType(StrEnum):
    USER = "USER"
    ORGANIZATION = "ORGANIZATION"
    COLLECTIVE = "COLLECTIVE"
    EVENT = "EVENT"
    FUND = "FUND"
    PROJECT = "PROJECT"


class Feature(StrEnum):
    ALL = "ALL"
    CONVERSATIONS = "CONVERSATIONS"
    UPDATES = "UPDATES"
    RECURRING_CONTRIBUTIONS = "RECURRING_CONTRIBUTIONS"
    TRANSFERWISE = "TRANSFERWISE"
    RECEIVE_EXPENSES = "RECEIVE_EXPENSES"
    RECEIVE_FINANCIAL_CONTRIBUTIONS = "RECEIVE_FINANCIAL_CONTRIBUTIONS"
    EVENTS = "EVENTS"
    CONTACT_FORM = "CONTACT_FORM"
    COLLECTIVE_GOALS = "COLLECTIVE_GOALS"
    TRANSACTIONS = "TRANSACTIONS"


class FeatureStatus(StrEnum):
    ACTIVE = "ACTIVE"
    AVAILABLE = "AVAILABLE"
    DISABLED = "DISABLED"
    UNSUPPORTED = "UNSUPPORTED"


class CollectiveFeaturesOut(BaseModel):
    collective_id: str
    slug: str
    features: dict[Feature, FeatureStatus]


class CollectiveFeatureOut(BaseModel):
    collective_id: str
    feature: Feature
    status: FeatureStatus


# --- Search ---


class CollectiveSearchItem(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: Any
    name: Optional[str] = None
    slug: Optional[str] = None
    description: Optional[str] = None
    type: Optional[str] = None
    currency: Optional[str] = None
    tags: Optional[list[str]] = None
    image: Optional[str] = None
    balance: Optional[int] = None
    yearly_budget: Optional[int] = None
    backers_count: Optional[int] = None


class CollectiveSearchResponse(BaseModel):
    collectives: list[CollectiveSearchItem]
    total: int
    limit: int
    offset: int
