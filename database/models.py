"""SQLAlchemy database models for merchant accounts, sales, payouts and balances."""
from datetime import date as calendar_date, datetime
from typing import Any, Dict

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# SQLite only autoincrements INTEGER PRIMARY KEY columns
BigIntPK = BigInteger().with_variant(Integer, "sqlite")
JSONType = JSON().with_variant(JSONB, "postgresql")


class Base(DeclarativeBase):
    """Base class for all database models."""

    pass


class User(Base):
    """A seller on the platform."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=func.now()
    )

    def __repr__(self) -> str:
        """String representation of User."""
        return f"<User(id={self.id}, email={self.email})>"


class MerchantAccount(Base):
    """
    Payment processor sub-account held for a seller.

    The row with no user is the platform's own account for that processor.
    Once the unclaimed balance of an inactive account has been collected,
    ``unclaimed_balance_collection_transfer_id`` holds the transfer id and
    is never cleared.
    """

    __tablename__ = "merchant_accounts"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id"), nullable=True, index=True
    )
    charge_processor_id: Mapped[str] = mapped_column(String(32), nullable=False)
    charge_processor_merchant_id: Mapped[str | None] = mapped_column(
        String(255), nullable=True, index=True
    )
    country: Mapped[str | None] = mapped_column(String(2), nullable=True)
    currency: Mapped[str | None] = mapped_column(String(3), nullable=True)
    is_stripe_connect: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    unclaimed_balance_collection_transfer_id: Mapped[str | None] = mapped_column(
        String(255), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=func.now(), index=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=func.now(),
        onupdate=func.now(),
    )

    __table_args__ = (
        CheckConstraint(
            "charge_processor_id IN ('stripe', 'paypal')",
            name="valid_charge_processor",
        ),
        Index(
            "idx_merchant_accounts_processor_country",
            "charge_processor_id",
            "country",
        ),
    )

    def __repr__(self) -> str:
        """String representation of MerchantAccount."""
        return (
            f"<MerchantAccount(id={self.id}, user_id={self.user_id}, "
            f"processor={self.charge_processor_id}, "
            f"merchant_id={self.charge_processor_merchant_id})>"
        )


class Purchase(Base):
    """A sale of one of the seller's products."""

    __tablename__ = "purchases"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    seller_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    price_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    purchase_state: Mapped[str] = mapped_column(String(50), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=func.now()
    )

    __table_args__ = (
        Index("idx_purchases_seller_state_created", "seller_id", "purchase_state", "created_at"),
    )

    def __repr__(self) -> str:
        """String representation of Purchase."""
        return (
            f"<Purchase(id={self.id}, seller_id={self.seller_id}, "
            f"state={self.purchase_state})>"
        )


class Payment(Base):
    """A payout of the seller's balance."""

    __tablename__ = "payments"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    amount_cents: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="usd")
    state: Mapped[str] = mapped_column(String(50), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=func.now()
    )

    __table_args__ = (
        Index("idx_payments_user_state_created", "user_id", "state", "created_at"),
    )

    def __repr__(self) -> str:
        """String representation of Payment."""
        return f"<Payment(id={self.id}, user_id={self.user_id}, state={self.state})>"


class Balance(Base):
    """
    Balance ledger row.

    Records funds owed to a seller for one day, attributed to the merchant
    account that holds them.
    """

    __tablename__ = "balances"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    merchant_account_id: Mapped[int] = mapped_column(
        ForeignKey("merchant_accounts.id"), nullable=False
    )
    date: Mapped[calendar_date] = mapped_column(Date, nullable=False, default=calendar_date.today)
    amount_cents: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="usd")
    holding_amount_cents: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    holding_currency: Mapped[str] = mapped_column(String(3), nullable=False, default="usd")
    state: Mapped[str] = mapped_column(String(50), nullable=False, default="unpaid")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=func.now(),
        onupdate=func.now(),
    )

    __table_args__ = (
        Index("idx_balances_user_merchant_state", "user_id", "merchant_account_id", "state"),
    )

    def __repr__(self) -> str:
        """String representation of Balance."""
        return (
            f"<Balance(id={self.id}, user_id={self.user_id}, "
            f"merchant_account_id={self.merchant_account_id}, "
            f"holding_amount={self.holding_amount_cents}, state={self.state})>"
        )


class UnclaimedBalanceCollectionRun(Base):
    """
    Unclaimed balance collection run tracking table.

    One row per execution of the collection job, with per-account outcomes
    stored in ``details``.
    """

    __tablename__ = "unclaimed_balance_collection_runs"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    status: Mapped[str] = mapped_column(String(50), nullable=False)
    accounts_scanned: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    accounts_collected: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    accounts_failed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    collected_cents: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    details: Mapped[Dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('in_progress', 'completed', 'completed_with_failures', 'failed')",
            name="valid_collection_run_status",
        ),
        Index("idx_collection_runs_started_at", "started_at"),
    )

    def __repr__(self) -> str:
        """String representation of UnclaimedBalanceCollectionRun."""
        return (
            f"<UnclaimedBalanceCollectionRun(id={self.id}, status={self.status}, "
            f"collected={self.collected_cents})>"
        )
