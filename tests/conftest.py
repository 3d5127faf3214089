"""
Pytest configuration and fixtures.
"""
import os

# Settings are read from the environment on first use
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_fake_key_for_testing")
os.environ.setdefault("STRIPE_PLATFORM_ACCOUNT_ID", "acct_platform_test")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("APP_NAME", "unclaimed-balances-test")
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("LOG_LEVEL", "DEBUG")

import itertools  # noqa: E402
from datetime import date  # noqa: E402
from types import SimpleNamespace  # noqa: E402
from typing import Any, AsyncGenerator, Optional  # noqa: E402
from unittest.mock import AsyncMock, MagicMock  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool  # noqa: E402

from config import Settings  # noqa: E402
from database.models import Balance, Base, MerchantAccount, Payment, Purchase, User  # noqa: E402
from integrations.stripe_client import StripeClient  # noqa: E402
from support import PLATFORM_STRIPE_ACCOUNT_ID, ago, stripe_balance, timestamp_ago  # noqa: E402


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """Create test settings."""
    return Settings(
        stripe_secret_key="sk_test_fake_key_for_testing",
        stripe_platform_account_id=PLATFORM_STRIPE_ACCOUNT_ID,
        database_url="sqlite+aiosqlite:///:memory:",
        app_name="unclaimed-balances-test",
        app_env="test",
        log_level="DEBUG",
        debug=True,
    )


@pytest_asyncio.fixture
async def session_factory() -> AsyncGenerator[async_sessionmaker[AsyncSession], Any]:
    """In-memory database shared by every session of one test."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture
async def test_db(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, Any]:
    """Session used by tests to seed and inspect data."""
    async with session_factory() as session:
        yield session


class Factory:
    """Creates persisted records with sensible defaults."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self._sequence = itertools.count(1)

    async def _save(self, record: Any) -> Any:
        self.db.add(record)
        await self.db.commit()
        return record

    async def user(self, **kwargs: Any) -> User:
        kwargs.setdefault("email", f"seller{next(self._sequence)}@example.com")
        kwargs.setdefault("created_at", ago(days=365))
        return await self._save(User(**kwargs))

    async def merchant_account(
        self, user: Optional[User] = None, **kwargs: Any
    ) -> MerchantAccount:
        if user is None:
            user = await self.user()
        kwargs.setdefault("charge_processor_id", "stripe")
        kwargs.setdefault("charge_processor_merchant_id", f"acct_test{next(self._sequence)}")
        kwargs.setdefault("country", "US")
        kwargs.setdefault("currency", "usd")
        kwargs.setdefault("created_at", ago(days=60))
        kwargs.setdefault("updated_at", kwargs["created_at"])
        return await self._save(MerchantAccount(user_id=user.id, **kwargs))

    async def platform_merchant_account(self) -> MerchantAccount:
        created_at = ago(days=3650)
        return await self._save(
            MerchantAccount(
                user_id=None,
                charge_processor_id="stripe",
                charge_processor_merchant_id=PLATFORM_STRIPE_ACCOUNT_ID,
                country="US",
                currency="usd",
                created_at=created_at,
                updated_at=created_at,
            )
        )

    async def balance(
        self, merchant_account: MerchantAccount, amount_cents: int, **kwargs: Any
    ) -> Balance:
        created_at = kwargs.pop("created_at", ago(days=60))
        kwargs.setdefault("state", "unpaid")
        kwargs.setdefault("holding_currency", "usd")
        return await self._save(
            Balance(
                user_id=merchant_account.user_id,
                merchant_account_id=merchant_account.id,
                date=date.today(),
                amount_cents=amount_cents,
                holding_amount_cents=amount_cents,
                created_at=created_at,
                updated_at=created_at,
                **kwargs,
            )
        )

    async def purchase(self, seller: User, **kwargs: Any) -> Purchase:
        kwargs.setdefault("price_cents", 1000)
        kwargs.setdefault("purchase_state", "successful")
        kwargs.setdefault("created_at", ago(days=1))
        return await self._save(Purchase(seller_id=seller.id, **kwargs))

    async def payment(self, user: User, **kwargs: Any) -> Payment:
        kwargs.setdefault("amount_cents", 1000)
        kwargs.setdefault("state", "completed")
        kwargs.setdefault("created_at", ago(days=1))
        return await self._save(Payment(user_id=user.id, **kwargs))


@pytest_asyncio.fixture
async def factory(test_db: AsyncSession) -> Factory:
    return Factory(test_db)


@pytest.fixture
def mock_stripe_client() -> MagicMock:
    """
    Stripe client whose connected accounts all look dormant and empty.

    Tests override individual return values to describe activity or funds.
    """
    client = MagicMock(spec=StripeClient)
    client.retrieve_account = AsyncMock(
        return_value=SimpleNamespace(type="express", created=timestamp_ago(days=60))
    )
    client.list_payouts = AsyncMock(return_value=SimpleNamespace(data=[]))
    client.list_charges = AsyncMock(return_value=SimpleNamespace(data=[]))
    client.retrieve_balance = AsyncMock(return_value=stripe_balance())

    transfer_ids = itertools.count(1)
    client.create_transfer = AsyncMock(
        side_effect=lambda **kwargs: SimpleNamespace(id=f"tr_test{next(transfer_ids)}")
    )
    return client
