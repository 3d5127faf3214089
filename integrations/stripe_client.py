"""
Stripe API client with retry logic and comprehensive error handling.

Implements:
- Exponential backoff for transient errors
- Circuit breaker pattern
- Connected account reads (account, payouts, charges, balance)
- Idempotent transfers between accounts
"""
import asyncio
import time
from enum import Enum
from typing import Any, Callable, Optional

import stripe
import structlog
from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from config import Settings, get_settings
from monitoring.metrics import metrics

logger = structlog.get_logger(__name__)


class StripeErrorType(Enum):
    """Classification of Stripe errors for retry logic."""

    TRANSIENT = "transient"  # Retry these
    PERMANENT = "permanent"  # Don't retry these
    RATE_LIMIT = "rate_limit"  # Retry with longer backoff


class StripeError(Exception):
    """Base exception for Stripe-related errors."""

    def __init__(
        self,
        message: str,
        error_type: StripeErrorType,
        original_error: Optional[Exception] = None,
    ):
        """
        Initialize Stripe error.

        Args:
            message: Error message
            error_type: Classification of error
            original_error: Original Stripe exception
        """
        super().__init__(message)
        self.error_type = error_type
        self.original_error = original_error

    @property
    def is_retryable(self) -> bool:
        return self.error_type != StripeErrorType.PERMANENT


def _is_retryable(error: BaseException) -> bool:
    return isinstance(error, StripeError) and error.is_retryable


def _is_permanent(error: BaseException) -> bool:
    return (
        isinstance(error, stripe.StripeError)
        and StripeClient._classify_error(error) == StripeErrorType.PERMANENT
    )


stripe_retry = retry(
    retry=retry_if_exception(_is_retryable),
    stop=stop_after_attempt(5),
    wait=wait_exponential(multiplier=1, min=1, max=16),
    reraise=True,
)


class CircuitBreaker:
    """
    Circuit breaker for Stripe API calls.

    Prevents cascading failures by temporarily stopping requests
    when error rate exceeds threshold.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        timeout: int = 60,
        success_threshold: int = 2,
    ):
        """
        Initialize circuit breaker.

        Args:
            failure_threshold: Number of failures before opening circuit
            timeout: Seconds before attempting to close circuit
            success_threshold: Successful calls needed to close circuit
        """
        self.failure_threshold = failure_threshold
        self.timeout = timeout
        self.success_threshold = success_threshold
        self.failure_count = 0
        self.success_count = 0
        self.last_failure_time: Optional[float] = None
        self.state = "closed"  # closed, open, half_open

    def call(self, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """
        Execute function with circuit breaker protection.

        Args:
            func: Function to execute
            *args: Positional arguments
            **kwargs: Keyword arguments

        Returns:
            Function result

        Raises:
            StripeError: If circuit is open
        """
        if self.state == "open":
            if (
                self.last_failure_time
                and time.time() - self.last_failure_time > self.timeout
            ):
                self._set_state("half_open")
                self.success_count = 0
                logger.info("circuit_breaker_half_open")
            else:
                raise StripeError(
                    "Circuit breaker is open",
                    StripeErrorType.TRANSIENT,
                )

        try:
            result = func(*args, **kwargs)
        except Exception as e:
            # A rejected request for one account says nothing about Stripe's availability
            if not _is_permanent(e):
                self.on_failure()
            raise
        self.on_success()
        return result

    def on_success(self) -> None:
        """Record successful call."""
        self.failure_count = 0
        if self.state == "half_open":
            self.success_count += 1
            if self.success_count >= self.success_threshold:
                self._set_state("closed")
                logger.info("circuit_breaker_closed")

    def on_failure(self) -> None:
        """Record failed call."""
        self.failure_count += 1
        self.last_failure_time = time.time()
        if self.failure_count >= self.failure_threshold:
            self._set_state("open")
            logger.warning(
                "circuit_breaker_opened",
                failure_count=self.failure_count,
            )

    def _set_state(self, state: str) -> None:
        self.state = state
        metrics.set_circuit_breaker_state(state)


class StripeClient:
    """
    Wrapper for Stripe API with production-grade error handling.

    Every call on behalf of a connected account passes ``stripe_account``
    so that it is executed against that sub-account rather than the platform.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
    ) -> None:
        """Initialize Stripe client."""
        settings = settings or get_settings()
        stripe.api_key = settings.stripe_secret_key
        stripe.api_version = settings.stripe_api_version
        self.settings = settings
        self.circuit_breaker = circuit_breaker or CircuitBreaker()

        logger.info(
            "stripe_client_initialized",
            api_version=stripe.api_version,
            test_mode=settings.is_test_mode,
        )

    @staticmethod
    def _classify_error(error: stripe.StripeError) -> StripeErrorType:
        """
        Classify Stripe error for retry logic.

        Args:
            error: Stripe error

        Returns:
            StripeErrorType: Error classification
        """
        if isinstance(error, stripe.RateLimitError):
            return StripeErrorType.RATE_LIMIT
        elif isinstance(error, (stripe.APIConnectionError, stripe.APIError)):
            return StripeErrorType.TRANSIENT
        elif isinstance(
            error,
            (
                stripe.CardError,
                stripe.InvalidRequestError,
                stripe.AuthenticationError,
                stripe.PermissionError,
                stripe.IdempotencyError,
            ),
        ):
            return StripeErrorType.PERMANENT
        else:
            # Unknown errors are treated as transient
            return StripeErrorType.TRANSIENT

    def _handle_stripe_error(self, operation: str, error: stripe.StripeError) -> StripeError:
        """
        Log and classify a Stripe error.

        Args:
            operation: Name of the failed operation
            error: Stripe error

        Returns:
            StripeError: Classified error, ready to raise
        """
        error_type = self._classify_error(error)
        metrics.record_stripe_api_error(error_type.value)

        logger.error(
            "stripe_api_error",
            operation=operation,
            error_type=error_type.value,
            error_code=getattr(error, "code", None),
            error_message=str(error),
        )

        return StripeError(
            message=str(error),
            error_type=error_type,
            original_error=error,
        )

    async def _execute(self, operation: str, func: Callable[[], Any]) -> Any:
        """
        Run one Stripe call through the circuit breaker, recording metrics.

        The SDK call blocks on HTTP, so it runs in the default executor to keep
        the event loop serving other requests during a long scan.
        """
        start_time = time.time()
        try:
            result = await asyncio.get_running_loop().run_in_executor(
                None, self.circuit_breaker.call, func
            )
        except stripe.StripeError as e:
            metrics.record_stripe_api_call(operation, "error", time.time() - start_time)
            raise self._handle_stripe_error(operation, e) from e
        except StripeError:
            metrics.record_stripe_api_call(operation, "rejected", time.time() - start_time)
            raise
        metrics.record_stripe_api_call(operation, "success", time.time() - start_time)
        return result

    @stripe_retry
    async def retrieve_account(self, account_id: str) -> stripe.Account:
        """
        Retrieve a connected account.

        Args:
            account_id: Stripe account ID (acct_...)

        Returns:
            stripe.Account: Retrieved account

        Raises:
            StripeError: If retrieval fails
        """
        logger.info("retrieving_stripe_account", stripe_account_id=account_id)
        return await self._execute(
            "retrieve_account",
            lambda: stripe.Account.retrieve(account_id),
        )

    @stripe_retry
    async def list_payouts(self, account_id: str, limit: int = 1) -> stripe.ListObject:
        """
        List the most recent payouts made by a connected account.

        Args:
            account_id: Stripe account ID
            limit: Number of payouts to return, newest first

        Returns:
            stripe.ListObject: List of payouts

        Raises:
            StripeError: If listing fails
        """
        logger.info("listing_stripe_payouts", stripe_account_id=account_id, limit=limit)
        return await self._execute(
            "list_payouts",
            lambda: stripe.Payout.list(limit=limit, stripe_account=account_id),
        )

    @stripe_retry
    async def list_charges(self, account_id: str, limit: int = 1) -> stripe.ListObject:
        """
        List the most recent charges made on a connected account.

        Args:
            account_id: Stripe account ID
            limit: Number of charges to return, newest first

        Returns:
            stripe.ListObject: List of charges

        Raises:
            StripeError: If listing fails
        """
        logger.info("listing_stripe_charges", stripe_account_id=account_id, limit=limit)
        return await self._execute(
            "list_charges",
            lambda: stripe.Charge.list(limit=limit, stripe_account=account_id),
        )

    @stripe_retry
    async def retrieve_balance(self, account_id: str) -> stripe.Balance:
        """
        Retrieve the balance of a connected account.

        Args:
            account_id: Stripe account ID

        Returns:
            stripe.Balance: Available and pending funds per currency

        Raises:
            StripeError: If retrieval fails
        """
        logger.info("retrieving_stripe_balance", stripe_account_id=account_id)
        return await self._execute(
            "retrieve_balance",
            lambda: stripe.Balance.retrieve(stripe_account=account_id),
        )

    @stripe_retry
    async def create_transfer(
        self,
        amount_cents: int,
        currency: str,
        destination: str,
        source_account_id: str,
        idempotency_key: str,
        description: Optional[str] = None,
    ) -> stripe.Transfer:
        """
        Transfer funds from a connected account to another Stripe account.

        Args:
            amount_cents: Amount in cents
            currency: Currency code (e.g., 'usd')
            destination: Stripe account receiving the funds
            source_account_id: Connected account the funds are taken from
            idempotency_key: Idempotency key for preventing duplicate transfers
            description: Optional transfer description

        Returns:
            stripe.Transfer: Created transfer

        Raises:
            StripeError: If transfer creation fails
        """
        logger.info(
            "creating_stripe_transfer",
            amount_cents=amount_cents,
            currency=currency,
            destination=destination,
            stripe_account_id=source_account_id,
            idempotency_key=idempotency_key,
        )

        def _create() -> stripe.Transfer:
            kwargs: dict[str, Any] = {
                "amount": amount_cents,
                "currency": currency.lower(),
                "destination": destination,
                "stripe_account": source_account_id,
                "idempotency_key": idempotency_key,
            }
            if description:
                kwargs["description"] = description
            return stripe.Transfer.create(**kwargs)

        transfer = await self._execute("create_transfer", _create)

        logger.info(
            "stripe_transfer_created",
            transfer_id=transfer.id,
            amount_cents=amount_cents,
            stripe_account_id=source_account_id,
        )

        return transfer

    async def ping(self) -> None:
        """Cheap authenticated call used by health checks. Never retried."""
        await self._execute("ping", lambda: stripe.Balance.retrieve())
