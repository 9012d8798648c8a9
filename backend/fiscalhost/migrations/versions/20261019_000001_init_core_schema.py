"""init core schema

Revision ID: 20261019_000001
Revises: 
Create Date: 2026-10-19 09:00:00
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = "20261019_000001"
down_revision = None
branch_labels = None
depends_on = None


def _id_column() -> sa.Column:
    return sa.Column(
        "id",
        postgresql.UUID(as_uuid=True),
        primary_key=True,
        nullable=False,
        server_default=sa.text("gen_random_uuid()"),
    )


def _created_at() -> sa.Column:
    return sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()"))


def upgrade() -> None:
    op.execute("CREATE EXTENSION IF NOT EXISTS pgcrypto")

    op.create_table(
        "collectives",
        _id_column(),
        sa.Column("slug", sa.String(length=255), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("type", sa.String(length=32), nullable=False, server_default=sa.text("'COLLECTIVE'")),
        sa.Column("description", sa.Text()),
        sa.Column("currency", sa.String(length=3), nullable=False, server_default=sa.text("'USD'")),
        sa.Column("tags", postgresql.JSONB()),
        sa.Column(
            "host_collective_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("collectives.id", ondelete="SET NULL"),
        ),
        sa.Column("is_host_account", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("settings", postgresql.JSONB(), nullable=False, server_default=sa.text("'{}'")),
        sa.Column("data", postgresql.JSONB(), nullable=False, server_default=sa.text("'{}'")),
        _created_at(),
        sa.Column("deleted_at", sa.DateTime(timezone=True)),
        sa.UniqueConstraint("slug", name="uniq_collective_slug"),
    )
    op.create_index("idx_collective_host", "collectives", ["host_collective_id"])

    op.create_table(
        "users",
        _id_column(),
        sa.Column("email", sa.String(length=255), nullable=False, unique=True),
        sa.Column(
            "collective_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("collectives.id", ondelete="SET NULL"),
        ),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        _created_at(),
    )

    op.create_table(
        "required_legal_documents",
        _id_column(),
        sa.Column(
            "host_collective_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("collectives.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("document_type", sa.String(length=32), nullable=False, server_default=sa.text("'US_TAX_FORM'")),
        _created_at(),
        sa.UniqueConstraint("host_collective_id", "document_type", name="uniq_required_legal_document"),
    )

    op.create_table(
        "legal_documents",
        _id_column(),
        sa.Column(
            "collective_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("collectives.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("document_type", sa.String(length=32), nullable=False, server_default=sa.text("'US_TAX_FORM'")),
        sa.Column("request_status", sa.String(length=32), nullable=False, server_default=sa.text("'NOT_REQUESTED'")),
        sa.Column("document_link", sa.Text()),
        _created_at(),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.UniqueConstraint("collective_id", "year", "document_type", name="uniq_legal_document_year_type"),
        sa.CheckConstraint(
            "request_status IN ('NOT_REQUESTED','REQUESTED','RECEIVED','ERROR')",
            name="chk_legal_document_request_status",
        ),
    )

    op.create_table(
        "payout_methods",
        _id_column(),
        sa.Column(
            "collective_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("collectives.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("type", sa.String(length=32), nullable=False),
        sa.Column("name", sa.String(length=255)),
        sa.Column("data", postgresql.JSONB()),
        _created_at(),
    )

    op.create_table(
        "expenses",
        _id_column(),
        sa.Column(
            "collective_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("collectives.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "from_collective_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("collectives.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id", ondelete="SET NULL")),
        sa.Column(
            "payout_method_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("payout_methods.id", ondelete="SET NULL"),
        ),
        sa.Column("amount", sa.BigInteger(), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False, server_default=sa.text("'USD'")),
        sa.Column("type", sa.String(length=32), nullable=False, server_default=sa.text("'UNCLASSIFIED'")),
        sa.Column("status", sa.String(length=32), nullable=False, server_default=sa.text("'PENDING'")),
        sa.Column("description", sa.Text()),
        sa.Column("incurred_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("data", postgresql.JSONB()),
        _created_at(),
        sa.Column("deleted_at", sa.DateTime(timezone=True)),
        sa.CheckConstraint("amount >= 0", name="chk_expense_amount_non_negative"),
    )
    op.create_index("idx_expense_collective", "expenses", ["collective_id"])
    op.create_index("idx_expense_from_collective_incurred", "expenses", ["from_collective_id", "incurred_at"])

    op.create_table(
        "expense_items",
        _id_column(),
        sa.Column(
            "expense_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("expenses.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("amount", sa.BigInteger(), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("incurred_at", sa.DateTime(timezone=True), nullable=False),
        _created_at(),
    )

    op.create_table(
        "expense_attached_files",
        _id_column(),
        sa.Column(
            "expense_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("expenses.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("url", sa.Text(), nullable=False),
        sa.Column("created_by_user_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id", ondelete="SET NULL")),
        _created_at(),
    )

    op.create_table(
        "payment_methods",
        _id_column(),
        sa.Column("service", sa.String(length=32)),
        sa.Column("type", sa.String(length=32)),
        sa.Column(
            "collective_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("collectives.id", ondelete="SET NULL"),
        ),
        sa.Column(
            "source_payment_method_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("payment_methods.id", ondelete="SET NULL"),
        ),
        _created_at(),
    )

    op.create_table(
        "orders",
        _id_column(),
        sa.Column(
            "collective_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("collectives.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "from_collective_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("collectives.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("subscription_id", postgresql.UUID(as_uuid=True)),
        sa.Column("status", sa.String(length=32), nullable=False, server_default=sa.text("'NEW'")),
        sa.Column("total_amount", sa.BigInteger(), nullable=False, server_default=sa.text("0")),
        sa.Column("currency", sa.String(length=3), nullable=False, server_default=sa.text("'USD'")),
        _created_at(),
        sa.Column("deleted_at", sa.DateTime(timezone=True)),
    )

    op.create_table(
        "transactions",
        _id_column(),
        sa.Column("type", sa.String(length=16), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("amount", sa.BigInteger(), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("amount_in_host_currency", sa.BigInteger()),
        sa.Column("host_currency", sa.String(length=3)),
        sa.Column("net_amount_in_collective_currency", sa.BigInteger()),
        sa.Column("platform_fee_in_host_currency", sa.BigInteger(), nullable=False, server_default=sa.text("0")),
        sa.Column(
            "collective_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("collectives.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "from_collective_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("collectives.id", ondelete="SET NULL"),
        ),
        sa.Column(
            "host_collective_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("collectives.id", ondelete="SET NULL"),
        ),
        sa.Column("order_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("orders.id", ondelete="SET NULL")),
        sa.Column(
            "payment_method_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("payment_methods.id", ondelete="SET NULL"),
        ),
        sa.Column("created_by_user_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id", ondelete="SET NULL")),
        sa.Column("transaction_group", postgresql.UUID(as_uuid=True)),
        sa.Column("platform_tip_for_transaction_group", postgresql.UUID(as_uuid=True)),
        sa.Column("data", postgresql.JSONB()),
        _created_at(),
        sa.Column("deleted_at", sa.DateTime(timezone=True)),
        sa.CheckConstraint("type IN ('CREDIT','DEBIT')", name="chk_transaction_type"),
    )
    op.create_index("idx_transaction_created", "transactions", ["created_at"])
    op.create_index("idx_transaction_group", "transactions", ["transaction_group"])

    op.create_table(
        "connected_accounts",
        _id_column(),
        sa.Column(
            "collective_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("collectives.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("service", sa.String(length=32), nullable=False),
        sa.Column("username", sa.String(length=255)),
        _created_at(),
        sa.Column("deleted_at", sa.DateTime(timezone=True)),
    )

    op.create_table(
        "updates",
        _id_column(),
        sa.Column(
            "collective_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("collectives.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("published_at", sa.DateTime(timezone=True)),
        _created_at(),
        sa.Column("deleted_at", sa.DateTime(timezone=True)),
    )

    op.create_table(
        "conversations",
        _id_column(),
        sa.Column(
            "collective_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("collectives.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("title", sa.String(length=255), nullable=False),
        _created_at(),
        sa.Column("deleted_at", sa.DateTime(timezone=True)),
    )

    op.create_table(
        "audit_logs",
        _id_column(),
        sa.Column("entity_type", sa.String(length=50), nullable=False),
        sa.Column("entity_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("action", sa.String(length=64), nullable=False),
        sa.Column("old_value", postgresql.JSONB()),
        sa.Column("new_value", postgresql.JSONB()),
        sa.Column("actor_type", sa.String(length=50), nullable=False),
        sa.Column("actor_id", postgresql.UUID(as_uuid=True)),
        sa.Column("ip_address", postgresql.INET()),
        sa.Column("user_agent", sa.Text()),
        sa.Column("metadata", postgresql.JSONB()),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )
    op.create_index("idx_audit_entity", "audit_logs", ["entity_type", "entity_id"])


def downgrade() -> None:
    op.drop_index("idx_audit_entity", table_name="audit_logs")
    op.drop_table("audit_logs")
    op.drop_table("conversations")
    op.drop_table("updates")
    op.drop_table("connected_accounts")
    op.drop_index("idx_transaction_group", table_name="transactions")
    op.drop_index("idx_transaction_created", table_name="transactions")
    op.drop_table("transactions")
    op.drop_table("orders")
    op.drop_table("payment_methods")
    op.drop_table("expense_attached_files")
    op.drop_table("expense_items")
    op.drop_index("idx_expense_from_collective_incurred", table_name="expenses")
    op.drop_index("idx_expense_collective", table_name="expenses")
    op.drop_table("expenses")
    op.drop_table("payout_methods")
    op.drop_table("legal_documents")
    op.drop_table("required_legal_documents")
    op.drop_table("users")
    op.drop_index("idx_collective_host", table_name="collectives")
    op.drop_table("collectives")
