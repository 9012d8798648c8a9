"""Monthly settlement of platform fees and platform tips owed by hosts.

For the month preceding ``run_date`` every ORGANIZATION host that collected
platform fees or platform tips outside of Stripe gets one APPROVED invoice
from the platform collective, with one item per source and the detailed
transactions attached as CSV.
"""

from __future__ import annotations

import csv
import io
import logging
import uuid
from collections import defaultdict
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional

from sqlalchemy import or_, select
from sqlalchemy.orm import Session, aliased

from fiscalhost.core.config import get_settings
from fiscalhost.core.storage import upload_expense_attachment
from fiscalhost.models.collective import (
    Collective,
    ConnectedAccount,
    Expense,
    ExpenseAttachedFile,
    ExpenseItem,
    PaymentMethod,
    Transaction,
)
from fiscalhost.schemas.collective import CollectiveType
from fiscalhost.schemas.expense import ExpenseStatus, ExpenseType
from fiscalhost.services.audit import SYSTEM_ACTOR, create_audit_log

logger = logging.getLogger(__name__)

SOURCE_PLATFORM_FEE = "Platform Fee"
SOURCE_PLATFORM_TIP = "Platform Tip"

STRIPE_SERVICE = "stripe"
CREDIT = "CREDIT"

CSV_COLUMNS = [
    "created_at",
    "description",
    "amount",
    "currency",
    "collective_id",
    "collective_slug",
    "host_collective_id",
    "host_name",
    "order_id",
    "transaction_id",
    "payment_service",
    "source_payment_service",
    "source",
]


@dataclass
class SettlementRow:
    created_at: Optional[datetime]
    description: Optional[str]
    amount: int
    currency: Optional[str]
    collective_id: Optional[uuid.UUID]
    collective_slug: Optional[str]
    host_collective_id: uuid.UUID
    host_name: Optional[str]
    order_id: Optional[uuid.UUID]
    transaction_id: uuid.UUID
    payment_service: Optional[str]
    source_payment_service: Optional[str]
    source: str


@dataclass
class HostSettlement:
    host_id: uuid.UUID
    host_name: Optional[str]
    currency: Optional[str]
    items: list[tuple[str, int]]
    rows: list[SettlementRow] = field(default_factory=list)
    expense_id: Optional[uuid.UUID] = None
    attachment_url: Optional[str] = None

    @property
    def total(self) -> int:
        return sum(amount for _, amount in self.items)

    @property
    def transaction_ids(self) -> list[str]:
        return [str(row.transaction_id) for row in self.rows]


def _round(value) -> int:
    """Round half away from zero, like the database ``round``."""
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _as_utc_datetime(value: date | datetime) -> datetime:
    if isinstance(value, datetime):
        return value.astimezone(timezone.utc) if value.tzinfo else value.replace(tzinfo=timezone.utc)
    return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)


def previous_month_window(run_date: date | datetime) -> tuple[datetime, datetime]:
    """``[first day of previous month, first day of run_date's month)`` in UTC."""
    moment = _as_utc_datetime(run_date)
    end = datetime(moment.year, moment.month, 1, tzinfo=timezone.utc)
    if moment.month == 1:
        start = datetime(moment.year - 1, 12, 1, tzinfo=timezone.utc)
    else:
        start = datetime(moment.year, moment.month - 1, 1, tzinfo=timezone.utc)
    return start, end


def _optional_uuid(value: str) -> Optional[uuid.UUID]:
    if not value:
        return None
    return uuid.UUID(value)


def _not_stripe(payment_method, source_payment_method):
    return (
        or_(payment_method.service.is_(None), payment_method.service != STRIPE_SERVICE),
        or_(source_payment_method.service.is_(None), source_payment_method.service != STRIPE_SERVICE),
    )


def _platform_fee_rows(db: Session, start: datetime, end: datetime) -> list[SettlementRow]:
    host = aliased(Collective)
    collective = aliased(Collective)
    pm = aliased(PaymentMethod)
    spm = aliased(PaymentMethod)
    stmt = (
        select(
            Transaction,
            host.name.label("host_name"),
            collective.slug.label("collective_slug"),
            pm.service.label("payment_service"),
            spm.service.label("source_payment_service"),
        )
        .join(host, host.id == Transaction.host_collective_id)
        .outerjoin(collective, collective.id == Transaction.collective_id)
        .outerjoin(pm, pm.id == Transaction.payment_method_id)
        .outerjoin(spm, spm.id == pm.source_payment_method_id)
        .where(
            Transaction.created_at >= start,
            Transaction.created_at < end,
            Transaction.deleted_at.is_(None),
            Transaction.type == CREDIT,
            Transaction.platform_fee_in_host_currency != 0,
            host.type == CollectiveType.ORGANIZATION.value,
            *_not_stripe(pm, spm),
        )
        .order_by(Transaction.created_at)
    )
    rows = []
    for txn, host_name, collective_slug, payment_service, source_payment_service in db.execute(stmt):
        rows.append(
            SettlementRow(
                created_at=txn.created_at,
                description=txn.description,
                amount=-int(txn.platform_fee_in_host_currency or 0),
                currency=txn.host_currency,
                collective_id=txn.collective_id,
                collective_slug=collective_slug,
                host_collective_id=txn.host_collective_id,
                host_name=host_name,
                order_id=txn.order_id,
                transaction_id=txn.id,
                payment_service=payment_service,
                source_payment_service=source_payment_service,
                source=SOURCE_PLATFORM_FEE,
            )
        )
    return rows


def _platform_tip_rows(
    db: Session, start: datetime, end: datetime, platform_collective_id: uuid.UUID
) -> list[SettlementRow]:
    # The tip CREDIT lands on the platform collective; host, currency and order
    # come from the contribution the tip was added to.
    original = aliased(Transaction)
    host = aliased(Collective)
    collective = aliased(Collective)
    pm = aliased(PaymentMethod)
    spm = aliased(PaymentMethod)
    stmt = (
        select(
            Transaction,
            original.host_currency.label("currency"),
            original.collective_id.label("collective_id"),
            original.host_collective_id.label("host_collective_id"),
            original.order_id.label("order_id"),
            host.name.label("host_name"),
            collective.slug.label("collective_slug"),
            pm.service.label("payment_service"),
            spm.service.label("source_payment_service"),
        )
        .join(
            original,
            (original.transaction_group == Transaction.platform_tip_for_transaction_group)
            & (original.type == CREDIT)
            & original.platform_tip_for_transaction_group.is_(None),
        )
        .join(host, host.id == original.host_collective_id)
        .outerjoin(collective, collective.id == original.collective_id)
        .outerjoin(pm, pm.id == Transaction.payment_method_id)
        .outerjoin(spm, spm.id == pm.source_payment_method_id)
        .where(
            Transaction.created_at >= start,
            Transaction.created_at < end,
            Transaction.deleted_at.is_(None),
            Transaction.collective_id == platform_collective_id,
            Transaction.platform_tip_for_transaction_group.is_not(None),
            Transaction.type == CREDIT,
            host.type == CollectiveType.ORGANIZATION.value,
            *_not_stripe(pm, spm),
        )
        .order_by(Transaction.created_at)
    )
    rows = []
    for row in db.execute(stmt):
        txn = row.Transaction
        fx_rate = float((txn.data or {}).get("hostToPlatformFxRate") or 1)
        rows.append(
            SettlementRow(
                created_at=txn.created_at,
                description=txn.description,
                amount=_round(float(txn.net_amount_in_collective_currency or 0) / fx_rate),
                currency=row.currency,
                collective_id=row.collective_id,
                collective_slug=row.collective_slug,
                host_collective_id=row.host_collective_id,
                host_name=row.host_name,
                order_id=row.order_id,
                transaction_id=txn.id,
                payment_service=row.payment_service,
                source_payment_service=row.source_payment_service,
                source=SOURCE_PLATFORM_TIP,
            )
        )
    return rows


def build_host_settlements(db: Session, run_date: date | datetime) -> list[HostSettlement]:
    settings = get_settings()
    platform_collective_id = _optional_uuid(settings.platform_collective_id)
    if platform_collective_id is None:
        raise RuntimeError("PLATFORM_COLLECTIVE_ID is not configured")

    start, end = previous_month_window(run_date)
    rows = _platform_fee_rows(db, start, end) + _platform_tip_rows(db, start, end, platform_collective_id)

    by_host: dict[uuid.UUID, list[SettlementRow]] = defaultdict(list)
    for row in rows:
        by_host[row.host_collective_id].append(row)

    settlements = []
    for host_id, host_rows in by_host.items():
        by_source: dict[str, list[SettlementRow]] = defaultdict(list)
        for row in host_rows:
            by_source[row.source].append(row)
        items = [(f"{source}s", _round(sum(r.amount for r in source_rows))) for source, source_rows in by_source.items()]
        settlements.append(
            HostSettlement(
                host_id=host_id,
                host_name=host_rows[0].host_name,
                currency=host_rows[0].currency,
                items=items,
                rows=host_rows,
            )
        )
    return settlements


def _settlement_csv(rows: list[SettlementRow]) -> bytes:
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=CSV_COLUMNS)
    writer.writeheader()
    for row in rows:
        values: dict[str, Any] = asdict(row)
        writer.writerow({key: "" if values[key] is None else values[key] for key in CSV_COLUMNS})
    return buffer.getvalue().encode("utf-8")


def _pick_payout_method_id(db: Session, host: Collective) -> Optional[uuid.UUID]:
    settings = get_settings()
    services = set(
        db.scalars(
            select(ConnectedAccount.service).where(
                ConnectedAccount.collective_id == host.id,
                ConnectedAccount.deleted_at.is_(None),
            )
        )
    )
    if "transferwise" in services:
        return _optional_uuid(settings.platform_wise_payout_method_id)
    if "paypal" in services or not (host.settings or {}).get("disablePaypalPayouts"):
        return _optional_uuid(settings.platform_paypal_payout_method_id)
    return None


def _create_settlement(
    db: Session,
    settlement: HostSettlement,
    *,
    run_date: datetime,
    period_start: datetime,
    platform_collective_id: uuid.UUID,
    settlement_user_id: Optional[uuid.UUID],
) -> None:
    month = period_start.strftime("%B")
    total = settlement.total
    now = datetime.now(timezone.utc)

    db.add(
        Transaction(
            type=CREDIT,
            description=f"Platform Fees and Tips collected in {month}",
            amount=total,
            currency=settlement.currency,
            amount_in_host_currency=total,
            host_currency=settlement.currency,
            net_amount_in_collective_currency=total,
            collective_id=settlement.host_id,
            from_collective_id=platform_collective_id,
            host_collective_id=settlement.host_id,
            created_by_user_id=settlement_user_id,
        )
    )

    host = db.get(Collective, settlement.host_id)
    expense = Expense(
        collective_id=settlement.host_id,
        from_collective_id=platform_collective_id,
        user_id=settlement_user_id,
        payout_method_id=_pick_payout_method_id(db, host),
        amount=total,
        currency=settlement.currency,
        type=ExpenseType.INVOICE.value,
        status=ExpenseStatus.APPROVED.value,
        description=f"Platform Tips settlement for {month}",
        incurred_at=now,
        data={"isPlatformTipSettlement": True, "transactionIds": settlement.transaction_ids},
    )
    db.add(expense)
    db.flush()
    settlement.expense_id = expense.id

    for description, amount in settlement.items:
        db.add(ExpenseItem(expense_id=expense.id, amount=amount, description=description, incurred_at=run_date))

    create_audit_log(
        db,
        entity_type="expense",
        entity_id=str(expense.id),
        action="PLATFORM_TIPS_INVOICED",
        old_value=None,
        new_value={
            "host_id": str(settlement.host_id),
            "amount": total,
            "currency": settlement.currency,
            "items": [{"description": d, "amount": a} for d, a in settlement.items],
        },
        actor_type=SYSTEM_ACTOR,
        actor_id=None,
        metadata={"transaction_count": len(settlement.rows), "period": period_start.strftime("%Y-%m")},
    )
    db.flush()

    # Upload last: only the commit can still fail once the object exists.
    _, url = upload_expense_attachment(
        expense_prefix="platform-tips",
        filename=f"{settlement.host_name}-{period_start.strftime('%B-%Y')}.csv",
        content=_settlement_csv(settlement.rows),
        content_type="text/csv",
    )
    settlement.attachment_url = url
    db.add(ExpenseAttachedFile(expense_id=expense.id, url=url, created_by_user_id=settlement_user_id))


def invoice_platform_tips(db: Session, run_date: date | datetime, *, dry_run: bool = False) -> list[HostSettlement]:
    settings = get_settings()
    moment = _as_utc_datetime(run_date)
    if settings.is_production and moment.day != 1:
        logger.warning("Production run on %s is not the first of the month, platform tips invoicing aborted", moment.date())
        return []

    period_start, _ = previous_month_window(moment)
    logger.info("Invoicing hosts pending fees and tips for %s", period_start.strftime("%B %Y"))

    settlements = build_host_settlements(db, moment)
    platform_collective_id = uuid.UUID(settings.platform_collective_id)
    settlement_user_id = _optional_uuid(settings.platform_settlement_user_id)

    for settlement in settlements:
        logger.info(
            "Host %s (%s) has %d pending transactions and owes %.2f %s",
            settlement.host_name,
            settlement.host_id,
            len(settlement.rows),
            settlement.total / 100,
            settlement.currency,
        )
        if dry_run:
            continue
        try:
            _create_settlement(
                db,
                settlement,
                run_date=moment,
                period_start=period_start,
                platform_collective_id=platform_collective_id,
                settlement_user_id=settlement_user_id,
            )
            db.commit()
        except Exception:
            db.rollback()
            logger.exception("Platform tips settlement failed for host %s", settlement.host_id)
            if settlement.attachment_url:
                logger.error(
                    "Settlement CSV for host %s was uploaded but is not attached to any expense: %s",
                    settlement.host_id,
                    settlement.attachment_url,
                )
            settlement.expense_id = None
            raise

    return settlements
