"""Legal-document requirements for expenses (tax forms to collect before payment).

A payee must file a legal document (today only ``US_TAX_FORM``) once the
total they invoiced to the collectives of a host that requires it reaches
the threshold within one calendar year. Every lookup goes through a
DataLoader owned by the per-request ``RequestLoaders`` so that a page
rendering N expenses costs a fixed number of queries:

  1. expense -> (submitter, host, fiscal year)      ``ExpenseContextLoader``
  2. host -> required document types                ``HostRequiredLegalDocumentsLoader``
  3. (host, submitter, year) -> invoiced total      ``InvoicedTotalLoader``
  4. (submitter, year, type) -> document status     ``LegalDocumentStatusLoader``

Steps 3 and 4 are queued in the same tick, one round trip each. They share
the synchronous ``Session``, so the two queries execute one after the other
on the event loop. Failures are reported per key.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections import defaultdict
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, NamedTuple

from aiodataloader import DataLoader
from sqlalchemy import func, literal, select, union_all
from sqlalchemy.orm import Session, aliased

from fiscalhost.core.config import get_settings
from fiscalhost.models.collective import Collective, Expense, LegalDocument, RequiredLegalDocument
from fiscalhost.schemas.expense import (
    ExpenseStatus,
    ExpenseType,
    LegalDocumentRequestStatus,
    LegalDocumentType,
)

if TYPE_CHECKING:
    from fiscalhost.services.loaders import RequestLoaders

logger = logging.getLogger(__name__)

# Never subject to legal documents: reimbursements are not invoiced income.
EXEMPT_EXPENSE_TYPES = frozenset({ExpenseType.RECEIPT.value})

# Other expenses in these states do not count toward a submitter's yearly total.
IGNORED_EXPENSE_STATUSES = frozenset(
    {
        ExpenseStatus.DRAFT.value,
        ExpenseStatus.UNVERIFIED.value,
        ExpenseStatus.REJECTED.value,
        ExpenseStatus.ERROR.value,
        ExpenseStatus.SPAM.value,
    }
)


def _us_tax_form_threshold() -> int:
    return get_settings().us_tax_form_threshold


LEGAL_DOCUMENT_THRESHOLDS: dict[LegalDocumentType, Callable[[], int]] = {
    LegalDocumentType.US_TAX_FORM: _us_tax_form_threshold,
}


def _check_document_type_thresholds() -> None:
    missing = set(LegalDocumentType) - set(LEGAL_DOCUMENT_THRESHOLDS)
    if missing:
        raise RuntimeError(f"No threshold defined for legal document types: {sorted(missing)}")


_check_document_type_thresholds()


class NotFoundError(LookupError):
    """The expense (or the collective / host it belongs to) does not exist."""


@dataclass(frozen=True)
class ExpenseContext:
    expense_id: uuid.UUID
    submitter_id: uuid.UUID
    host_id: uuid.UUID | None
    type: str
    status: str
    amount: int
    fiscal_year: int

    @property
    def is_exempt(self) -> bool:
        return self.type in EXEMPT_EXPENSE_TYPES


class InvoicedTotalKey(NamedTuple):
    host_id: uuid.UUID
    submitter_id: uuid.UUID
    year: int


class LegalDocumentKey(NamedTuple):
    submitter_id: uuid.UUID
    year: int
    document_type: LegalDocumentType


def fiscal_year(moment: datetime) -> int:
    """Calendar year of *moment*, in UTC when the value is timezone-aware."""
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc)
    return moment.year


def fiscal_year_bounds(year: int) -> tuple[datetime, datetime]:
    """Half-open ``[start, end)`` range covering the calendar year."""
    return (
        datetime(year, 1, 1, tzinfo=timezone.utc),
        datetime(year + 1, 1, 1, tzinfo=timezone.utc),
    )


def _as_uuid(value: Any) -> uuid.UUID | None:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError):
        return None


async def _gather_per_key(awaitables: Iterable[Awaitable[Any]]) -> list[Any]:
    """Gather, keeping each failure in its own slot instead of failing the batch."""
    results = await asyncio.gather(*awaitables, return_exceptions=True)
    for result in results:
        if isinstance(result, asyncio.CancelledError):
            raise result
    return results


class ExpenseContextLoader(DataLoader):
    """Expense id -> ``ExpenseContext``; expense, collective and host in one query."""

    def __init__(self, db: Session) -> None:
        super().__init__(get_cache_key=str)
        self.db = db

    async def batch_load_fn(self, keys):
        ids = {key: _as_uuid(key) for key in keys}
        valid_ids = sorted({value for value in ids.values() if value is not None}, key=str)

        contexts: dict[uuid.UUID, ExpenseContext | NotFoundError] = {}
        if valid_ids:
            host = aliased(Collective)
            rows = self.db.execute(
                select(
                    Expense.id,
                    Expense.from_collective_id,
                    Expense.type,
                    Expense.status,
                    Expense.amount,
                    Expense.incurred_at,
                    Collective.host_collective_id,
                    host.id.label("host_id"),
                    host.deleted_at.label("host_deleted_at"),
                )
                .join(Collective, Collective.id == Expense.collective_id)
                .outerjoin(host, host.id == Collective.host_collective_id)
                .where(
                    Expense.id.in_(valid_ids),
                    Expense.deleted_at.is_(None),
                    Collective.deleted_at.is_(None),
                )
            ).all()
            for row in rows:
                if row.host_collective_id is not None and (row.host_id is None or row.host_deleted_at is not None):
                    contexts[row.id] = NotFoundError(f"Host {row.host_collective_id} not found")
                    continue
                contexts[row.id] = ExpenseContext(
                    expense_id=row.id,
                    submitter_id=row.from_collective_id,
                    host_id=row.host_collective_id,
                    type=row.type,
                    status=row.status,
                    amount=int(row.amount or 0),
                    fiscal_year=fiscal_year(row.incurred_at),
                )

        results = []
        for key in keys:
            context = contexts.get(ids[key]) if ids[key] is not None else None
            results.append(context if context is not None else NotFoundError(f"Expense {key} not found"))
        return results


class HostRequiredLegalDocumentsLoader(DataLoader):
    """Host id -> sorted list of document types the host requires (may be empty)."""

    def __init__(self, db: Session) -> None:
        super().__init__()
        self.db = db

    async def batch_load_fn(self, keys):
        rows = self.db.execute(
            select(RequiredLegalDocument.host_collective_id, RequiredLegalDocument.document_type).where(
                RequiredLegalDocument.host_collective_id.in_(list(keys))
            )
        ).all()
        by_host: dict[uuid.UUID, set[LegalDocumentType]] = defaultdict(set)
        for host_id, document_type in rows:
            by_host[host_id].add(LegalDocumentType(document_type))
        return [sorted(by_host.get(key, ())) for key in keys]


class InvoicedTotalLoader(DataLoader):
    """(host, submitter, year) -> amount invoiced to the host's collectives that year.

    One aggregate per key, sent as a single ``UNION ALL`` round trip.
    """

    def __init__(self, db: Session) -> None:
        super().__init__()
        self.db = db

    async def batch_load_fn(self, keys):
        exempt_types = sorted(EXEMPT_EXPENSE_TYPES)
        ignored_statuses = sorted(IGNORED_EXPENSE_STATUSES)

        selects = []
        for index, key in enumerate(keys):
            start, end = fiscal_year_bounds(key.year)
            selects.append(
                select(
                    literal(index).label("key_index"),
                    func.coalesce(func.sum(Expense.amount), 0).label("total"),
                )
                .select_from(Expense)
                .join(Collective, Collective.id == Expense.collective_id)
                .where(
                    Expense.from_collective_id == key.submitter_id,
                    Collective.host_collective_id == key.host_id,
                    Expense.incurred_at >= start,
                    Expense.incurred_at < end,
                    Expense.type.not_in(exempt_types),
                    Expense.status.not_in(ignored_statuses),
                    Expense.deleted_at.is_(None),
                )
            )

        statement = selects[0] if len(selects) == 1 else union_all(*selects)
        totals = {int(row.key_index): int(row.total or 0) for row in self.db.execute(statement)}
        return [totals.get(index, 0) for index in range(len(keys))]


class LegalDocumentStatusLoader(DataLoader):
    """(submitter, year, type) -> request status of the filed document, or None."""

    def __init__(self, db: Session) -> None:
        super().__init__()
        self.db = db

    async def batch_load_fn(self, keys):
        rows = self.db.execute(
            select(
                LegalDocument.collective_id,
                LegalDocument.year,
                LegalDocument.document_type,
                LegalDocument.request_status,
            ).where(
                LegalDocument.collective_id.in_(sorted({key.submitter_id for key in keys}, key=str)),
                LegalDocument.year.in_(sorted({key.year for key in keys})),
                LegalDocument.document_type.in_(sorted({key.document_type.value for key in keys})),
            )
        ).all()
        statuses = {
            LegalDocumentKey(row.collective_id, int(row.year), LegalDocumentType(row.document_type)): row.request_status
            for row in rows
        }
        return [statuses.get(key) for key in keys]


class RequiredLegalDocumentsLoader(DataLoader):
    """Expense id -> legal document types still outstanding before payment."""

    def __init__(self, loaders: RequestLoaders) -> None:
        super().__init__(get_cache_key=str)
        self.loaders = loaders

    async def batch_load_fn(self, keys):
        contexts = await _gather_per_key(self.loaders.expense_context.load(key) for key in keys)
        candidates = [c for c in contexts if isinstance(c, ExpenseContext) and c.host_id is not None and not c.is_exempt]

        host_ids = sorted({c.host_id for c in candidates}, key=str)
        host_documents = dict(zip(host_ids, await self.loaders.host_required_legal_documents.load_many(host_ids)))
        candidates = [c for c in candidates if host_documents[c.host_id]]

        total_keys = sorted({InvoicedTotalKey(c.host_id, c.submitter_id, c.fiscal_year) for c in candidates}, key=str)
        document_keys = sorted(
            {
                LegalDocumentKey(c.submitter_id, c.fiscal_year, document_type)
                for c in candidates
                for document_type in host_documents[c.host_id]
            },
            key=str,
        )
        totals, statuses = await asyncio.gather(
            self.loaders.invoiced_total.load_many(total_keys),
            self.loaders.legal_document_status.load_many(document_keys),
        )
        totals_by_key = dict(zip(total_keys, totals))
        statuses_by_key = dict(zip(document_keys, statuses))
        logger.debug(
            "legal_documents batch keys=%d candidates=%d totals=%d documents=%d",
            len(keys),
            len(candidates),
            len(total_keys),
            len(document_keys),
        )

        results: list[Any] = []
        for context in contexts:
            if isinstance(context, Exception):
                results.append(context)
            elif context.host_id is None or context.is_exempt or not host_documents.get(context.host_id):
                results.append([])
            else:
                results.append(
                    _outstanding_documents(context, host_documents[context.host_id], totals_by_key, statuses_by_key)
                )
        return results


def _outstanding_documents(
    context: ExpenseContext,
    document_types: list[LegalDocumentType],
    totals: dict[InvoicedTotalKey, int],
    statuses: dict[LegalDocumentKey, str | None],
) -> list[LegalDocumentType]:
    total = totals[InvoicedTotalKey(context.host_id, context.submitter_id, context.fiscal_year)]
    # The evaluated expense always counts toward its own total.
    if context.status in IGNORED_EXPENSE_STATUSES:
        total += context.amount

    outstanding = []
    for document_type in document_types:
        if total < LEGAL_DOCUMENT_THRESHOLDS[document_type]():
            continue
        status = statuses.get(LegalDocumentKey(context.submitter_id, context.fiscal_year, document_type))
        if status == LegalDocumentRequestStatus.RECEIVED:
            continue
        outstanding.append(document_type)
    return outstanding


class TaxFormRequiredBeforePaymentLoader(DataLoader):
    """Expense id -> True when at least one legal document is outstanding."""

    def __init__(self, loaders: RequestLoaders) -> None:
        super().__init__(get_cache_key=str)
        self.loaders = loaders

    async def batch_load_fn(self, keys):
        results = await _gather_per_key(self.loaders.required_legal_documents.load(key) for key in keys)
        return [result if isinstance(result, Exception) else bool(result) for result in results]


async def required_legal_document_types(loaders: RequestLoaders, expense_id) -> list[LegalDocumentType]:
    return await loaders.required_legal_documents.load(expense_id)


async def is_legal_document_required_before_payment(loaders: RequestLoaders, expense_id) -> bool:
    return await loaders.tax_form_required_before_payment.load(expense_id)
