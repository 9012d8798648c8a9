import uuid

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import INET, JSONB
from sqlalchemy.dialects.postgresql import UUID as PGUUID
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func
from sqlalchemy.types import CHAR, TypeDecorator

Base = declarative_base()


class GUID(TypeDecorator):
    impl = CHAR
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(PGUUID(as_uuid=True))
        return dialect.type_descriptor(CHAR(36))

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, uuid.UUID):
            return value if dialect.name == "postgresql" else str(value)
        if isinstance(value, str):
            try:
                parsed = uuid.UUID(value)
            except ValueError:
                return value
            return parsed if dialect.name == "postgresql" else str(parsed)
        return value

    def process_result_value(self, value, dialect):
        if value is None or isinstance(value, uuid.UUID):
            return value
        try:
            return uuid.UUID(value)
        except ValueError:
            return value


UUID_TYPE = GUID()
JSON_TYPE = JSON().with_variant(JSONB, "postgresql")
INET_TYPE = String(45).with_variant(INET, "postgresql")


def _uuid_pk() -> Column:
    return Column(
        UUID_TYPE,
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )


class Collective(Base):
    __tablename__ = "collectives"
    __table_args__ = (
        UniqueConstraint("slug", name="uniq_collective_slug"),
        Index("idx_collective_host", "host_collective_id"),
    )

    id = _uuid_pk()
    slug = Column(String(255), nullable=False)
    name = Column(String(255), nullable=False)
    type = Column(String(32), nullable=False, default="COLLECTIVE", server_default=text("'COLLECTIVE'"))
    description = Column(Text)
    currency = Column(String(3), nullable=False, default="USD", server_default=text("'USD'"))
    tags = Column(JSON_TYPE)
    host_collective_id = Column(UUID_TYPE, ForeignKey("collectives.id", ondelete="SET NULL"))
    is_host_account = Column(Boolean, nullable=False, default=False, server_default=text("false"))
    is_active = Column(Boolean, nullable=False, default=True, server_default=text("true"))
    settings = Column(JSON_TYPE, nullable=False, default=dict, server_default=text("'{}'"))
    data = Column(JSON_TYPE, nullable=False, default=dict, server_default=text("'{}'"))
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    deleted_at = Column(DateTime(timezone=True))

    host = relationship("Collective", remote_side=[id], foreign_keys=[host_collective_id])


class User(Base):
    __tablename__ = "users"

    id = _uuid_pk()
    email = Column(String(255), nullable=False, unique=True)
    collective_id = Column(UUID_TYPE, ForeignKey("collectives.id", ondelete="SET NULL"))
    is_active = Column(Boolean, nullable=False, default=True, server_default=text("true"))
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class RequiredLegalDocument(Base):
    __tablename__ = "required_legal_documents"
    __table_args__ = (
        UniqueConstraint("host_collective_id", "document_type", name="uniq_required_legal_document"),
    )

    id = _uuid_pk()
    host_collective_id = Column(UUID_TYPE, ForeignKey("collectives.id", ondelete="CASCADE"), nullable=False)
    document_type = Column(String(32), nullable=False, default="US_TAX_FORM", server_default=text("'US_TAX_FORM'"))
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class LegalDocument(Base):
    __tablename__ = "legal_documents"
    __table_args__ = (
        UniqueConstraint("collective_id", "year", "document_type", name="uniq_legal_document_year_type"),
        CheckConstraint(
            "request_status IN ('NOT_REQUESTED','REQUESTED','RECEIVED','ERROR')",
            name="chk_legal_document_request_status",
        ),
    )

    id = _uuid_pk()
    collective_id = Column(UUID_TYPE, ForeignKey("collectives.id", ondelete="CASCADE"), nullable=False)
    year = Column(Integer, nullable=False)
    document_type = Column(String(32), nullable=False, default="US_TAX_FORM", server_default=text("'US_TAX_FORM'"))
    request_status = Column(
        String(32),
        nullable=False,
        default="NOT_REQUESTED",
        server_default=text("'NOT_REQUESTED'"),
    )
    document_link = Column(Text)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


class PayoutMethod(Base):
    __tablename__ = "payout_methods"

    id = _uuid_pk()
    collective_id = Column(UUID_TYPE, ForeignKey("collectives.id", ondelete="CASCADE"), nullable=False)
    type = Column(String(32), nullable=False)  # PAYPAL, BANK_ACCOUNT, OTHER
    name = Column(String(255))
    data = Column(JSON_TYPE)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class Expense(Base):
    __tablename__ = "expenses"
    __table_args__ = (
        CheckConstraint("amount >= 0", name="chk_expense_amount_non_negative"),
        Index("idx_expense_collective", "collective_id"),
        Index("idx_expense_from_collective_incurred", "from_collective_id", "incurred_at"),
    )

    id = _uuid_pk()
    collective_id = Column(UUID_TYPE, ForeignKey("collectives.id", ondelete="CASCADE"), nullable=False)
    from_collective_id = Column(UUID_TYPE, ForeignKey("collectives.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(UUID_TYPE, ForeignKey("users.id", ondelete="SET NULL"))
    payout_method_id = Column(UUID_TYPE, ForeignKey("payout_methods.id", ondelete="SET NULL"))
    amount = Column(BigInteger, nullable=False)  # cents
    currency = Column(String(3), nullable=False, default="USD", server_default=text("'USD'"))
    type = Column(String(32), nullable=False, default="UNCLASSIFIED", server_default=text("'UNCLASSIFIED'"))
    status = Column(String(32), nullable=False, default="PENDING", server_default=text("'PENDING'"))
    description = Column(Text)
    incurred_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    data = Column(JSON_TYPE)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    deleted_at = Column(DateTime(timezone=True))

    collective = relationship("Collective", foreign_keys=[collective_id])
    from_collective = relationship("Collective", foreign_keys=[from_collective_id])
    items = relationship("ExpenseItem", back_populates="expense")
    attached_files = relationship("ExpenseAttachedFile", back_populates="expense")


class ExpenseItem(Base):
    __tablename__ = "expense_items"

    id = _uuid_pk()
    expense_id = Column(UUID_TYPE, ForeignKey("expenses.id", ondelete="CASCADE"), nullable=False)
    amount = Column(BigInteger, nullable=False)
    description = Column(Text)
    incurred_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    expense = relationship("Expense", back_populates="items")


class ExpenseAttachedFile(Base):
    __tablename__ = "expense_attached_files"

    id = _uuid_pk()
    expense_id = Column(UUID_TYPE, ForeignKey("expenses.id", ondelete="CASCADE"), nullable=False)
    url = Column(Text, nullable=False)
    created_by_user_id = Column(UUID_TYPE, ForeignKey("users.id", ondelete="SET NULL"))
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    expense = relationship("Expense", back_populates="attached_files")


class PaymentMethod(Base):
    __tablename__ = "payment_methods"

    id = _uuid_pk()
    service = Column(String(32))  # stripe, paypal, opencollective, ...
    type = Column(String(32))
    collective_id = Column(UUID_TYPE, ForeignKey("collectives.id", ondelete="SET NULL"))
    source_payment_method_id = Column(UUID_TYPE, ForeignKey("payment_methods.id", ondelete="SET NULL"))
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class Transaction(Base):
    __tablename__ = "transactions"
    __table_args__ = (
        CheckConstraint("type IN ('CREDIT','DEBIT')", name="chk_transaction_type"),
        Index("idx_transaction_created", "created_at"),
        Index("idx_transaction_group", "transaction_group"),
    )

    id = _uuid_pk()
    type = Column(String(16), nullable=False)
    description = Column(Text)
    amount = Column(BigInteger, nullable=False)
    currency = Column(String(3), nullable=False)
    amount_in_host_currency = Column(BigInteger)
    host_currency = Column(String(3))
    net_amount_in_collective_currency = Column(BigInteger)
    platform_fee_in_host_currency = Column(BigInteger, nullable=False, default=0, server_default=text("0"))
    collective_id = Column(UUID_TYPE, ForeignKey("collectives.id", ondelete="CASCADE"), nullable=False)
    from_collective_id = Column(UUID_TYPE, ForeignKey("collectives.id", ondelete="SET NULL"))
    host_collective_id = Column(UUID_TYPE, ForeignKey("collectives.id", ondelete="SET NULL"))
    order_id = Column(UUID_TYPE, ForeignKey("orders.id", ondelete="SET NULL"))
    payment_method_id = Column(UUID_TYPE, ForeignKey("payment_methods.id", ondelete="SET NULL"))
    created_by_user_id = Column(UUID_TYPE, ForeignKey("users.id", ondelete="SET NULL"))
    transaction_group = Column(UUID_TYPE)
    # Set on the tip CREDIT; points at the transaction group of the contribution it was added to.
    platform_tip_for_transaction_group = Column(UUID_TYPE)
    data = Column(JSON_TYPE)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    deleted_at = Column(DateTime(timezone=True))


class ConnectedAccount(Base):
    __tablename__ = "connected_accounts"

    id = _uuid_pk()
    collective_id = Column(UUID_TYPE, ForeignKey("collectives.id", ondelete="CASCADE"), nullable=False)
    service = Column(String(32), nullable=False)  # transferwise, paypal, stripe
    username = Column(String(255))
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    deleted_at = Column(DateTime(timezone=True))


class Update(Base):
    __tablename__ = "updates"

    id = _uuid_pk()
    collective_id = Column(UUID_TYPE, ForeignKey("collectives.id", ondelete="CASCADE"), nullable=False)
    title = Column(String(255), nullable=False)
    published_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    deleted_at = Column(DateTime(timezone=True))


class Conversation(Base):
    __tablename__ = "conversations"

    id = _uuid_pk()
    collective_id = Column(UUID_TYPE, ForeignKey("collectives.id", ondelete="CASCADE"), nullable=False)
    title = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    deleted_at = Column(DateTime(timezone=True))


class Order(Base):
    __tablename__ = "orders"

    id = _uuid_pk()
    collective_id = Column(UUID_TYPE, ForeignKey("collectives.id", ondelete="CASCADE"), nullable=False)
    from_collective_id = Column(UUID_TYPE, ForeignKey("collectives.id", ondelete="CASCADE"), nullable=False)
    subscription_id = Column(UUID_TYPE)
    status = Column(String(32), nullable=False, default="NEW", server_default=text("'NEW'"))
    total_amount = Column(BigInteger, nullable=False, default=0, server_default=text("0"))
    currency = Column(String(3), nullable=False, default="USD", server_default=text("'USD'"))
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    deleted_at = Column(DateTime(timezone=True))


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = _uuid_pk()
    entity_type = Column(String(50), nullable=False)
    entity_id = Column(UUID_TYPE, nullable=False)
    action = Column(String(64), nullable=False)
    old_value = Column(JSON_TYPE)
    new_value = Column(JSON_TYPE)
    actor_type = Column(String(50), nullable=False)
    actor_id = Column(UUID_TYPE)
    ip_address = Column(INET_TYPE)
    user_agent = Column(Text)
    audit_meta = Column("metadata", JSON_TYPE, nullable=True)
    timestamp = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
