"""
Tests for the monthly platform fees and tips settlement.

Covers:
  - Fees and tips of last month are grouped per host and per source
  - Stripe payments, non-organization hosts and other months are skipped
  - Settlement rows: credit transaction, approved invoice, items, CSV, audit log
  - Payout method choice, dry-run and the production first-of-month guard
"""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, timezone
from unittest.mock import patch

import pytest
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from fiscalhost.core.config import get_settings
from fiscalhost.models.collective import (
    AuditLog,
    ConnectedAccount,
    Expense,
    ExpenseAttachedFile,
    ExpenseItem,
    PaymentMethod,
    PayoutMethod,
    Transaction,
)
from fiscalhost.services.platform_tips_invoicing import (
    invoice_platform_tips,
    previous_month_window,
)

RUN_DATE = date(2025, 11, 1)
IN_WINDOW = datetime(2025, 10, 10, 12, 0, tzinfo=timezone.utc)
UPLOAD_TARGET = "fiscalhost.services.platform_tips_invoicing.upload_expense_attachment"


@pytest.fixture
def platform(factory, db, monkeypatch):
    platform = factory.collective(slug="platform", type="ORGANIZATION")
    wise = PayoutMethod(collective_id=platform.id, type="BANK_ACCOUNT", name="Wise")
    paypal = PayoutMethod(collective_id=platform.id, type="PAYPAL", name="PayPal")
    db.add_all([wise, paypal])
    db.commit()
    monkeypatch.setenv("PLATFORM_COLLECTIVE_ID", str(platform.id))
    monkeypatch.setenv("PLATFORM_WISE_PAYOUT_METHOD_ID", str(wise.id))
    monkeypatch.setenv("PLATFORM_PAYPAL_PAYOUT_METHOD_ID", str(paypal.id))
    get_settings.cache_clear()
    return {"collective": platform, "wise": wise, "paypal": paypal}


def _payment_method(db, service, source=None):
    pm = PaymentMethod(service=service, source_payment_method_id=source.id if source else None)
    db.add(pm)
    db.commit()
    return pm


def _fee(db, collective, host, fee, *, created_at=IN_WINDOW, payment_method=None):
    txn = Transaction(
        type="CREDIT",
        amount=10_000,
        currency="USD",
        host_currency="USD",
        platform_fee_in_host_currency=fee,
        collective_id=collective.id,
        host_collective_id=host.id,
        payment_method_id=payment_method.id if payment_method else None,
        created_at=created_at,
    )
    db.add(txn)
    db.commit()
    return txn


def _tip(db, platform, collective, host, net_amount, *, fx_rate=None, created_at=IN_WINDOW):
    group = uuid.uuid4()
    db.add(
        Transaction(
            type="CREDIT",
            amount=10_000,
            currency="USD",
            host_currency="USD",
            collective_id=collective.id,
            host_collective_id=host.id,
            transaction_group=group,
            created_at=created_at,
        )
    )
    tip = Transaction(
        type="CREDIT",
        amount=net_amount,
        currency="USD",
        net_amount_in_collective_currency=net_amount,
        collective_id=platform.id,
        transaction_group=uuid.uuid4(),
        platform_tip_for_transaction_group=group,
        data={"hostToPlatformFxRate": fx_rate} if fx_rate else {},
        created_at=created_at,
    )
    db.add(tip)
    db.commit()
    return tip


@pytest.fixture
def hosted(factory):
    host = factory.collective(type="ORGANIZATION", is_host_account=True, name="Open Source Host")
    collective = factory.collective(host=host)
    return host, collective


def test_previous_month_window():
    assert previous_month_window(date(2025, 11, 1)) == (
        datetime(2025, 10, 1, tzinfo=timezone.utc),
        datetime(2025, 11, 1, tzinfo=timezone.utc),
    )
    assert previous_month_window(date(2025, 1, 15)) == (
        datetime(2024, 12, 1, tzinfo=timezone.utc),
        datetime(2025, 1, 1, tzinfo=timezone.utc),
    )


def test_invoices_fees_and_tips_per_host(db, platform, hosted):
    host, collective = hosted
    _fee(db, collective, host, -500)
    _fee(db, collective, host, -250)
    _tip(db, platform["collective"], collective, host, 1000, fx_rate=2)
    # skipped: stripe, stripe as source, previous month
    _fee(db, collective, host, -900, payment_method=_payment_method(db, "stripe"))
    _fee(db, collective, host, -900, payment_method=_payment_method(db, "opencollective", _payment_method(db, "stripe")))
    _fee(db, collective, host, -900, created_at=datetime(2025, 9, 30, 23, 0, tzinfo=timezone.utc))

    with patch(UPLOAD_TARGET, return_value=("platform-tips/host.csv", "https://storage/host.csv")) as upload:
        settlements = invoice_platform_tips(db, RUN_DATE)

    assert len(settlements) == 1
    settlement = settlements[0]
    assert settlement.host_id == host.id
    assert dict(settlement.items) == {"Platform Fees": 750, "Platform Tips": 500}
    assert settlement.total == 1250

    expense = db.get(Expense, settlement.expense_id)
    assert expense.type == "INVOICE"
    assert expense.status == "APPROVED"
    assert expense.amount == 1250
    assert expense.collective_id == host.id
    assert expense.from_collective_id == platform["collective"].id
    assert expense.payout_method_id == platform["paypal"].id
    assert expense.description == "Platform Tips settlement for October"
    assert expense.data["isPlatformTipSettlement"] is True
    assert len(expense.data["transactionIds"]) == 3

    items = db.scalars(select(ExpenseItem).where(ExpenseItem.expense_id == expense.id)).all()
    assert sorted((i.description, i.amount) for i in items) == [("Platform Fees", 750), ("Platform Tips", 500)]

    credit = db.scalars(
        select(Transaction).where(
            Transaction.collective_id == host.id,
            Transaction.from_collective_id == platform["collective"].id,
        )
    ).one()
    assert credit.type == "CREDIT"
    assert credit.amount == 1250
    assert credit.description == "Platform Fees and Tips collected in October"

    attached = db.scalars(select(ExpenseAttachedFile).where(ExpenseAttachedFile.expense_id == expense.id)).one()
    assert attached.url == "https://storage/host.csv"

    kwargs = upload.call_args.kwargs
    assert kwargs["filename"] == "Open Source Host-October-2025.csv"
    assert kwargs["content_type"] == "text/csv"
    csv_text = kwargs["content"].decode("utf-8")
    assert csv_text.splitlines()[0].startswith("created_at,description,amount,currency")
    assert len(csv_text.strip().splitlines()) == 4

    log = db.scalars(select(AuditLog).where(AuditLog.action == "PLATFORM_TIPS_INVOICED")).one()
    assert log.entity_id == expense.id
    assert log.new_value["amount"] == 1250


def test_only_organization_hosts_are_invoiced(db, factory, platform):
    self_hosted = factory.collective(type="COLLECTIVE", is_host_account=True)
    _fee(db, self_hosted, self_hosted, -500)

    with patch(UPLOAD_TARGET) as upload:
        assert invoice_platform_tips(db, RUN_DATE) == []
    upload.assert_not_called()


def test_wise_payout_method_when_host_has_wise(db, platform, hosted):
    host, collective = hosted
    db.add(ConnectedAccount(collective_id=host.id, service="transferwise"))
    db.commit()
    _fee(db, collective, host, -500)

    with patch(UPLOAD_TARGET, return_value=("p", "https://storage/p.csv")):
        settlement = invoice_platform_tips(db, RUN_DATE)[0]

    assert db.get(Expense, settlement.expense_id).payout_method_id == platform["wise"].id


def test_no_payout_method_when_paypal_disabled(db, factory, platform):
    host = factory.collective(type="ORGANIZATION", is_host_account=True, settings={"disablePaypalPayouts": True})
    collective = factory.collective(host=host)
    _fee(db, collective, host, -500)

    with patch(UPLOAD_TARGET, return_value=("p", "https://storage/p.csv")):
        settlement = invoice_platform_tips(db, RUN_DATE)[0]

    assert db.get(Expense, settlement.expense_id).payout_method_id is None


def test_dry_run_writes_nothing(db, platform, hosted):
    host, collective = hosted
    _fee(db, collective, host, -500)

    with patch(UPLOAD_TARGET) as upload:
        settlements = invoice_platform_tips(db, RUN_DATE, dry_run=True)

    assert settlements[0].total == 500
    assert settlements[0].expense_id is None
    assert db.scalars(select(Expense)).all() == []
    upload.assert_not_called()


def test_production_runs_only_on_first_of_month(db, platform, hosted, monkeypatch):
    host, collective = hosted
    _fee(db, collective, host, -500)
    monkeypatch.setenv("ENVIRONMENT", "production")
    get_settings.cache_clear()

    with patch(UPLOAD_TARGET) as upload:
        assert invoice_platform_tips(db, date(2025, 11, 2)) == []
    upload.assert_not_called()


def test_requires_platform_collective(db, monkeypatch):
    monkeypatch.delenv("PLATFORM_COLLECTIVE_ID", raising=False)
    get_settings.cache_clear()

    with pytest.raises(RuntimeError, match="PLATFORM_COLLECTIVE_ID"):
        invoice_platform_tips(db, RUN_DATE)


def test_failed_commit_reports_uploaded_attachment(db, platform, hosted, caplog):
    host, collective = hosted
    _fee(db, collective, host, -500)
    caplog.set_level(logging.ERROR)

    with patch(UPLOAD_TARGET, return_value=("p", "https://storage/orphan.csv")):
        with patch.object(db, "commit", side_effect=SQLAlchemyError("boom")):
            with pytest.raises(SQLAlchemyError):
                invoice_platform_tips(db, RUN_DATE)

    assert "https://storage/orphan.csv" in caplog.text
    assert db.scalars(select(Expense)).all() == []
    assert db.scalars(select(ExpenseAttachedFile)).all() == []
