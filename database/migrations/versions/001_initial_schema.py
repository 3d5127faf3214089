"""Initial database schema

Revision ID: 001
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

BIGINT_PK = sa.BigInteger().with_variant(sa.Integer(), "sqlite")
JSON_TYPE = sa.JSON().with_variant(postgresql.JSONB(astext_type=sa.Text()), "postgresql")


def upgrade() -> None:
    """Upgrade database schema."""
    op.create_table(
        "users",
        sa.Column("id", BIGINT_PK, autoincrement=True, nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
    )

    op.create_table(
        "merchant_accounts",
        sa.Column("id", BIGINT_PK, autoincrement=True, nullable=False),
        sa.Column("user_id", BIGINT_PK, nullable=True),
        sa.Column("charge_processor_id", sa.String(length=32), nullable=False),
        sa.Column("charge_processor_merchant_id", sa.String(length=255), nullable=True),
        sa.Column("country", sa.String(length=2), nullable=True),
        sa.Column("currency", sa.String(length=3), nullable=True),
        sa.Column("is_stripe_connect", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("unclaimed_balance_collection_transfer_id", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "charge_processor_id IN ('stripe', 'paypal')",
            name="valid_charge_processor",
        ),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "idx_merchant_accounts_processor_country",
        "merchant_accounts",
        ["charge_processor_id", "country"],
        unique=False,
    )
    op.create_index(
        op.f("ix_merchant_accounts_user_id"), "merchant_accounts", ["user_id"], unique=False
    )
    op.create_index(
        op.f("ix_merchant_accounts_charge_processor_merchant_id"),
        "merchant_accounts",
        ["charge_processor_merchant_id"],
        unique=False,
    )
    op.create_index(
        op.f("ix_merchant_accounts_created_at"), "merchant_accounts", ["created_at"], unique=False
    )

    op.create_table(
        "purchases",
        sa.Column("id", BIGINT_PK, autoincrement=True, nullable=False),
        sa.Column("seller_id", BIGINT_PK, nullable=False),
        sa.Column("price_cents", sa.Integer(), nullable=False),
        sa.Column("purchase_state", sa.String(length=50), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["seller_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "idx_purchases_seller_state_created",
        "purchases",
        ["seller_id", "purchase_state", "created_at"],
        unique=False,
    )

    op.create_table(
        "payments",
        sa.Column("id", BIGINT_PK, autoincrement=True, nullable=False),
        sa.Column("user_id", BIGINT_PK, nullable=False),
        sa.Column("amount_cents", sa.BigInteger(), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("state", sa.String(length=50), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "idx_payments_user_state_created",
        "payments",
        ["user_id", "state", "created_at"],
        unique=False,
    )

    op.create_table(
        "balances",
        sa.Column("id", BIGINT_PK, autoincrement=True, nullable=False),
        sa.Column("user_id", BIGINT_PK, nullable=False),
        sa.Column("merchant_account_id", BIGINT_PK, nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("amount_cents", sa.BigInteger(), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("holding_amount_cents", sa.BigInteger(), nullable=False),
        sa.Column("holding_currency", sa.String(length=3), nullable=False),
        sa.Column("state", sa.String(length=50), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["merchant_account_id"], ["merchant_accounts.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "idx_balances_user_merchant_state",
        "balances",
        ["user_id", "merchant_account_id", "state"],
        unique=False,
    )

    op.create_table(
        "unclaimed_balance_collection_runs",
        sa.Column("id", BIGINT_PK, autoincrement=True, nullable=False),
        sa.Column("status", sa.String(length=50), nullable=False),
        sa.Column("accounts_scanned", sa.Integer(), nullable=False),
        sa.Column("accounts_collected", sa.Integer(), nullable=False),
        sa.Column("accounts_failed", sa.Integer(), nullable=False),
        sa.Column("collected_cents", sa.BigInteger(), nullable=False),
        sa.Column("details", JSON_TYPE, nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "status IN ('in_progress', 'completed', 'completed_with_failures', 'failed')",
            name="valid_collection_run_status",
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "idx_collection_runs_started_at",
        "unclaimed_balance_collection_runs",
        ["started_at"],
        unique=False,
    )


def downgrade() -> None:
    """Downgrade database schema."""
    op.drop_index("idx_collection_runs_started_at", table_name="unclaimed_balance_collection_runs")
    op.drop_table("unclaimed_balance_collection_runs")

    op.drop_index("idx_balances_user_merchant_state", table_name="balances")
    op.drop_table("balances")

    op.drop_index("idx_payments_user_state_created", table_name="payments")
    op.drop_table("payments")

    op.drop_index("idx_purchases_seller_state_created", table_name="purchases")
    op.drop_table("purchases")

    op.drop_index(op.f("ix_merchant_accounts_created_at"), table_name="merchant_accounts")
    op.drop_index(
        op.f("ix_merchant_accounts_charge_processor_merchant_id"), table_name="merchant_accounts"
    )
    op.drop_index(op.f("ix_merchant_accounts_user_id"), table_name="merchant_accounts")
    op.drop_index("idx_merchant_accounts_processor_country", table_name="merchant_accounts")
    op.drop_table("merchant_accounts")

    op.drop_table("users")
