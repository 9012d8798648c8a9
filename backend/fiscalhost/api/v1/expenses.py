import asyncio
import logging

from fastapi import APIRouter, Depends, HTTPException

from fiscalhost.core.dependencies import get_loaders
from fiscalhost.schemas.expense import (
    ExpenseLegalDocumentsBatchRequest,
    ExpenseLegalDocumentsBatchResponse,
    ExpenseLegalDocumentsOut,
)
from fiscalhost.services.legal_documents import (
    NotFoundError,
    is_legal_document_required_before_payment,
    required_legal_document_types,
)
from fiscalhost.services.loaders import RequestLoaders

router = APIRouter()
logger = logging.getLogger(__name__)

NOT_FOUND = "NOT_FOUND"


async def _evaluate(loaders: RequestLoaders, expense_id: str) -> ExpenseLegalDocumentsOut:
    required = await required_legal_document_types(loaders, expense_id)
    before_payment = await is_legal_document_required_before_payment(loaders, expense_id)
    return ExpenseLegalDocumentsOut(
        expense_id=expense_id,
        required_legal_documents=required,
        is_legal_document_required_before_payment=before_payment,
    )


@router.get("/expenses/{expense_id}/legal-documents", response_model=ExpenseLegalDocumentsOut)
async def get_expense_legal_documents(expense_id: str, loaders: RequestLoaders = Depends(get_loaders)):
    try:
        return await _evaluate(loaders, expense_id)
    except NotFoundError as exc:
        raise HTTPException(404, "Expense not found") from exc


@router.post("/expenses/legal-documents", response_model=ExpenseLegalDocumentsBatchResponse)
async def batch_expense_legal_documents(
    payload: ExpenseLegalDocumentsBatchRequest,
    loaders: RequestLoaders = Depends(get_loaders),
):
    results = await asyncio.gather(
        *(_evaluate(loaders, expense_id) for expense_id in payload.expense_ids),
        return_exceptions=True,
    )
    items = []
    for expense_id, result in zip(payload.expense_ids, results):
        if isinstance(result, NotFoundError):
            items.append(ExpenseLegalDocumentsOut(expense_id=expense_id, error=NOT_FOUND))
        elif isinstance(result, BaseException):
            raise result
        else:
            items.append(result)
    logger.info(
        "legal documents batch size=%d not_found=%d",
        len(items),
        sum(1 for item in items if item.error == NOT_FOUND),
    )
    return ExpenseLegalDocumentsBatchResponse(items=items)
