from enum import StrEnum
from typing import Optional

from pydantic import BaseModel, Field


class ExpenseType(StrEnum):
    INVOICE = "INVOICE"
    RECEIPT = "RECEIPT"
    UNCLASSIFIED = "UNCLASSIFIED"
    FUNDING_REQUEST = "FUNDING_REQUEST"
    SETTLEMENT = "SETTLEMENT"
    CHARGE = "CHARGE"


class ExpenseStatus(StrEnum):
    DRAFT = "DRAFT"
    UNVERIFIED = "UNVERIFIED"
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    PROCESSING = "PROCESSING"
    ERROR = "ERROR"
    PAID = "PAID"
    SCHEDULED_FOR_PAYMENT = "SCHEDULED_FOR_PAYMENT"
    SPAM = "SPAM"


class LegalDocumentType(StrEnum):
    US_TAX_FORM = "US_TAX_FORM"


class LegalDocumentRequestStatus(StrEnum):
    NOT_REQUESTED = "NOT_REQUESTED"
    REQUESTED = "REQUESTED"
    RECEIVED = "RECEIVED"
    ERROR = "ERROR"


# --- Legal documents ---


class ExpenseLegalDocumentsOut(BaseModel):
    expense_id: str
    required_legal_documents: list[LegalDocumentType] = Field(default_factory=list)
    is_legal_document_required_before_payment: bool = False
    error: Optional[str] = None


class ExpenseLegalDocumentsBatchRequest(BaseModel):
    expense_ids: list[str] = Field(..., min_length=1, max_length=200)


class ExpenseLegalDocumentsBatchResponse(BaseModel):
    items: list[ExpenseLegalDocumentsOut]
