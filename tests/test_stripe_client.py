"""
Unit tests for the Stripe client wrapper.
"""
import threading
from types import SimpleNamespace
from typing import Any

import pytest
import stripe
from tenacity import wait_none

from integrations.stripe_client import (
    CircuitBreaker,
    StripeClient,
    StripeError,
    StripeErrorType,
)


@pytest.fixture
def stripe_client(test_settings: Any) -> StripeClient:
    return StripeClient(settings=test_settings)


class TestErrorClassification:
    """Test suite for mapping Stripe exceptions onto retry classes."""

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "error,expected",
        [
            (stripe.RateLimitError("Too many requests"), StripeErrorType.RATE_LIMIT),
            (stripe.APIConnectionError("Connection reset"), StripeErrorType.TRANSIENT),
            (stripe.APIError("Internal error"), StripeErrorType.TRANSIENT),
            (stripe.InvalidRequestError("No such account", "account"), StripeErrorType.PERMANENT),
            (stripe.AuthenticationError("Invalid API key"), StripeErrorType.PERMANENT),
        ],
    )
    def test_classify_error(self, error: stripe.StripeError, expected: StripeErrorType) -> None:
        assert StripeClient._classify_error(error) == expected

    @pytest.mark.unit
    def test_only_permanent_errors_are_final(self) -> None:
        """Test which classified errors are retried."""
        assert StripeError("x", StripeErrorType.TRANSIENT).is_retryable
        assert StripeError("x", StripeErrorType.RATE_LIMIT).is_retryable
        assert not StripeError("x", StripeErrorType.PERMANENT).is_retryable


class TestConnectedAccountCalls:
    """Test suite for calls made on behalf of connected accounts."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_retrieve_account(self, stripe_client: StripeClient, mocker: Any) -> None:
        account = SimpleNamespace(id="acct_123", type="express", created=1_500_000_000)
        retrieve = mocker.patch("stripe.Account.retrieve", return_value=account)

        result = await stripe_client.retrieve_account("acct_123")

        assert result is account
        retrieve.assert_called_once_with("acct_123")

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_lists_run_against_the_connected_account(
        self, stripe_client: StripeClient, mocker: Any
    ) -> None:
        """Test payouts and charges are listed on the sub-account, not the platform."""
        payouts = mocker.patch("stripe.Payout.list", return_value=SimpleNamespace(data=[]))
        charges = mocker.patch("stripe.Charge.list", return_value=SimpleNamespace(data=[]))

        await stripe_client.list_payouts("acct_123")
        await stripe_client.list_charges("acct_123", limit=3)

        payouts.assert_called_once_with(limit=1, stripe_account="acct_123")
        charges.assert_called_once_with(limit=3, stripe_account="acct_123")

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_retrieve_balance(self, stripe_client: StripeClient, mocker: Any) -> None:
        retrieve = mocker.patch("stripe.Balance.retrieve", return_value={"available": []})

        await stripe_client.retrieve_balance("acct_123")

        retrieve.assert_called_once_with(stripe_account="acct_123")

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_create_transfer(self, stripe_client: StripeClient, mocker: Any) -> None:
        """Test transfer creation passes the source account and idempotency key."""
        create = mocker.patch("stripe.Transfer.create", return_value=SimpleNamespace(id="tr_123"))

        transfer = await stripe_client.create_transfer(
            amount_cents=100_00,
            currency="USD",
            destination="acct_platform",
            source_account_id="acct_123",
            idempotency_key="unclaimed-balance-collection:1",
            description="Collect unclaimed balance of inactive account",
        )

        assert transfer.id == "tr_123"
        create.assert_called_once_with(
            amount=100_00,
            currency="usd",
            destination="acct_platform",
            stripe_account="acct_123",
            idempotency_key="unclaimed-balance-collection:1",
            description="Collect unclaimed balance of inactive account",
        )


class TestRetries:
    """Test suite for retrying transient Stripe failures."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_permanent_error_is_not_retried(
        self, stripe_client: StripeClient, mocker: Any
    ) -> None:
        retrieve = mocker.patch(
            "stripe.Account.retrieve",
            side_effect=stripe.InvalidRequestError("No such account", "account"),
        )

        with pytest.raises(StripeError) as exc_info:
            await stripe_client.retrieve_account("acct_missing")

        assert exc_info.value.error_type == StripeErrorType.PERMANENT
        assert isinstance(exc_info.value.original_error, stripe.InvalidRequestError)
        assert retrieve.call_count == 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_transient_error_is_retried(
        self, stripe_client: StripeClient, mocker: Any
    ) -> None:
        account = SimpleNamespace(id="acct_123", type="express", created=1_500_000_000)
        retrieve = mocker.patch(
            "stripe.Account.retrieve",
            side_effect=[stripe.APIConnectionError("Connection reset"), account],
        )
        retrieve_account = StripeClient.retrieve_account.retry_with(wait=wait_none())

        result = await retrieve_account(stripe_client, "acct_123")

        assert result is account
        assert retrieve.call_count == 2

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_gives_up_after_five_attempts(
        self, stripe_client: StripeClient, mocker: Any
    ) -> None:
        retrieve = mocker.patch(
            "stripe.Balance.retrieve",
            side_effect=stripe.APIError("Internal error"),
        )
        retrieve_balance = StripeClient.retrieve_balance.retry_with(wait=wait_none())

        with pytest.raises(StripeError) as exc_info:
            await retrieve_balance(stripe_client, "acct_123")

        assert exc_info.value.error_type == StripeErrorType.TRANSIENT
        assert retrieve.call_count == 5


class TestCircuitBreaker:
    """Test suite for CircuitBreaker."""

    @staticmethod
    def _fail() -> None:
        raise stripe.APIConnectionError("Connection reset")

    @pytest.mark.unit
    def test_opens_after_threshold(self) -> None:
        breaker = CircuitBreaker(failure_threshold=2, timeout=60)

        for _ in range(2):
            with pytest.raises(stripe.APIConnectionError):
                breaker.call(self._fail)

        assert breaker.state == "open"
        with pytest.raises(StripeError, match="Circuit breaker is open"):
            breaker.call(lambda: "ok")

    @pytest.mark.unit
    def test_half_opens_after_timeout_and_closes_on_success(self, mocker: Any) -> None:
        breaker = CircuitBreaker(failure_threshold=1, timeout=60, success_threshold=2)
        with pytest.raises(stripe.APIConnectionError):
            breaker.call(self._fail)
        assert breaker.state == "open"

        mocker.patch(
            "integrations.stripe_client.time.time",
            return_value=breaker.last_failure_time + 61,
        )

        assert breaker.call(lambda: "ok") == "ok"
        assert breaker.state == "half_open"
        assert breaker.call(lambda: "ok") == "ok"
        assert breaker.state == "closed"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_open_circuit_rejects_client_calls(
        self, test_settings: Any, mocker: Any
    ) -> None:
        breaker = CircuitBreaker(failure_threshold=1, timeout=60)
        breaker.on_failure()
        client = StripeClient(settings=test_settings, circuit_breaker=breaker)
        retrieve = mocker.patch("stripe.Account.retrieve")
        retrieve_account = StripeClient.retrieve_account.retry_with(
            wait=wait_none(), stop=lambda retry_state: True
        )

        with pytest.raises(StripeError, match="Circuit breaker is open"):
            await retrieve_account(client, "acct_123")

        retrieve.assert_not_called()

    @pytest.mark.unit
    def test_permanent_errors_do_not_open_circuit(self) -> None:
        """Test rejected requests for individual accounts leave the circuit closed."""
        breaker = CircuitBreaker(failure_threshold=2, timeout=60)

        def no_such_account() -> None:
            raise stripe.InvalidRequestError("No such account", "account")

        for _ in range(5):
            with pytest.raises(stripe.InvalidRequestError):
                breaker.call(no_such_account)

        assert breaker.state == "closed"
        assert breaker.failure_count == 0

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_dead_accounts_do_not_block_healthy_ones(
        self, test_settings: Any, mocker: Any
    ) -> None:
        client = StripeClient(
            settings=test_settings, circuit_breaker=CircuitBreaker(failure_threshold=5)
        )
        healthy = SimpleNamespace(id="acct_healthy", type="express", created=1_500_000_000)

        def retrieve(account_id: str) -> Any:
            if account_id.startswith("acct_closed"):
                raise stripe.PermissionError("Account has been closed")
            return healthy

        mocker.patch("stripe.Account.retrieve", side_effect=retrieve)

        for index in range(5):
            with pytest.raises(StripeError) as exc_info:
                await client.retrieve_account(f"acct_closed{index}")
            assert exc_info.value.error_type == StripeErrorType.PERMANENT

        assert await client.retrieve_account("acct_healthy") is healthy
        assert client.circuit_breaker.state == "closed"


class TestEventLoop:
    """Test suite for keeping blocking SDK calls off the event loop."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_sdk_calls_run_in_executor(
        self, stripe_client: StripeClient, mocker: Any
    ) -> None:
        loop_thread = threading.get_ident()
        call_threads = []

        def retrieve(account_id: str) -> Any:
            call_threads.append(threading.get_ident())
            return SimpleNamespace(id=account_id)

        mocker.patch("stripe.Account.retrieve", side_effect=retrieve)

        await stripe_client.retrieve_account("acct_123")

        assert len(call_threads) == 1
        assert call_threads[0] != loop_thread

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_ping_is_not_retried(self, stripe_client: StripeClient, mocker: Any) -> None:
        retrieve = mocker.patch(
            "stripe.Balance.retrieve",
            side_effect=stripe.APIConnectionError("Connection reset"),
        )

        with pytest.raises(StripeError):
            await stripe_client.ping()

        assert retrieve.call_count == 1
