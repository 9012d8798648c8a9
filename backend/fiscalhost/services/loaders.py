"""Per-request DataLoader registry.

Build one ``RequestLoaders`` per request (see ``core.dependencies.get_loaders``)
and pass it to every evaluator call. Loaders are created on first use, inside
the running event loop, and their caches are dropped with the request: host
configuration and legal documents can change at any time.
"""

from __future__ import annotations

from functools import cached_property

from sqlalchemy.orm import Session

from fiscalhost.services.legal_documents import (
    ExpenseContextLoader,
    HostRequiredLegalDocumentsLoader,
    InvoicedTotalLoader,
    LegalDocumentStatusLoader,
    RequiredLegalDocumentsLoader,
    TaxFormRequiredBeforePaymentLoader,
)


class RequestLoaders:
    def __init__(self, db: Session) -> None:
        self.db = db

    @cached_property
    def expense_context(self) -> ExpenseContextLoader:
        return ExpenseContextLoader(self.db)

    @cached_property
    def host_required_legal_documents(self) -> HostRequiredLegalDocumentsLoader:
        return HostRequiredLegalDocumentsLoader(self.db)

    @cached_property
    def invoiced_total(self) -> InvoicedTotalLoader:
        return InvoicedTotalLoader(self.db)

    @cached_property
    def legal_document_status(self) -> LegalDocumentStatusLoader:
        return LegalDocumentStatusLoader(self.db)

    @cached_property
    def required_legal_documents(self) -> RequiredLegalDocumentsLoader:
        return RequiredLegalDocumentsLoader(self)

    @cached_property
    def tax_form_required_before_payment(self) -> TaxFormRequiredBeforePaymentLoader:
        return TaxFormRequiredBeforePaymentLoader(self)
