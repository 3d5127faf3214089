"""
Collection of unclaimed balances held in inactive Stripe merchant accounts.

Stripe treats a connected account as inactive once it has had no activity
for three years, and the platform must then reclaim the funds left in it.
For each candidate account the collector checks, in order and stopping at
the first sign of life:

- the seller's most recent successful sale and completed payout
- the Stripe account itself (standard accounts and recent creation)
- the most recent payout on Stripe
- the most recent charge on Stripe

Only when all of them are older than the inactivity window is the balance
read, transferred to the platform account, and the seller's unpaid balance
rows moved onto the platform merchant account.

An account whose balance has been collected carries the transfer id in
``unclaimed_balance_collection_transfer_id`` and is excluded from every
later run, which makes re-running the job safe.
"""
import time
from datetime import datetime, timedelta, timezone
from typing import Any, AsyncIterator, Dict, List, Optional

import structlog
from sqlalchemy import exists, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from config import Settings, get_settings
from core.compliance import ChargeProcessor, Currency, StripeAccountType
from database.connection import get_session_factory
from database.models import (
    Balance,
    MerchantAccount,
    Payment,
    Purchase,
    UnclaimedBalanceCollectionRun,
)
from integrations.stripe_client import StripeClient
from monitoring.metrics import metrics

logger = structlog.get_logger(__name__)

TRANSFER_DESCRIPTION = "Collect unclaimed balance of inactive account"


class UnclaimedBalanceCollectionError(Exception):
    """Raised when a collection run cannot complete its scan."""

    pass


class SkipReason:
    RECENT_LOCAL_ACTIVITY = "recent_local_activity"
    STANDARD_ACCOUNT = "standard_account"
    RECENTLY_CREATED_ON_PROCESSOR = "recently_created_on_processor"
    RECENT_PROCESSOR_PAYOUT = "recent_processor_payout"
    RECENT_PROCESSOR_CHARGE = "recent_processor_charge"
    NO_BALANCE = "no_balance"


class Outcome:
    COLLECTED = "collected"
    # Transfer made and marker written, but the unpaid balances were not moved
    LEDGER_FAILED = "ledger_failed"
    SKIPPED = "skipped"
    FAILED = "failed"

    TRANSFERRED = (COLLECTED, LEDGER_FAILED)
    UNSUCCESSFUL = (LEDGER_FAILED, FAILED)


def transfer_idempotency_key(merchant_account_id: int) -> str:
    """Stripe idempotency key for the collection transfer of one merchant account."""
    return f"unclaimed-balance-collection:{merchant_account_id}"


class UnclaimedBalanceCollector:
    """
    Collects the balances of inactive US Stripe merchant accounts.

    Accounts are processed one at a time. A failure while processing an
    account is recorded against that account only; transfers already made
    for other accounts stand, and the account is picked up again on the next
    run because its marker was never written. The exception is a failure to
    move the ledger rows after the transfer: that account is reported as
    ``ledger_failed`` with its transfer id and amount, and counts towards the
    collected total.
    """

    def __init__(
        self,
        stripe_client: Optional[StripeClient] = None,
        settings: Optional[Settings] = None,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        inactive_after: Optional[timedelta] = None,
        batch_size: int = 1000,
    ):
        """
        Initialize the collector.

        Args:
            stripe_client: Optional Stripe client
            settings: Optional settings (defaults to environment settings)
            session_factory: Optional session factory (defaults to the app's)
            inactive_after: Inactivity window, overriding the configured one
            batch_size: Number of candidate ids fetched per query
        """
        self.settings = settings or get_settings()
        self.stripe_client = stripe_client or StripeClient(self.settings)
        self.session_factory = session_factory or get_session_factory()
        self.inactive_after = inactive_after or self.settings.unclaimed_balance_inactive_after
        self.batch_size = batch_size

    def _candidates_query(self, cutoff: datetime, after_id: int) -> Any:
        return (
            select(MerchantAccount.id)
            .where(
                MerchantAccount.charge_processor_id == ChargeProcessor.STRIPE,
                MerchantAccount.country == self.settings.unclaimed_balance_country,
                MerchantAccount.charge_processor_merchant_id.isnot(None),
                MerchantAccount.user_id.isnot(None),
                MerchantAccount.is_stripe_connect.is_(False),
                MerchantAccount.unclaimed_balance_collection_transfer_id.is_(None),
                MerchantAccount.created_at < cutoff,
                MerchantAccount.id > after_id,
            )
            .order_by(MerchantAccount.id)
            .limit(self.batch_size)
        )

    async def _candidate_ids(self, db: AsyncSession, cutoff: datetime) -> AsyncIterator[int]:
        """Yield candidate merchant account ids in id order, one batch at a time."""
        last_id = 0
        while True:
            result = await db.execute(self._candidates_query(cutoff, last_id))
            ids = list(result.scalars().all())
            if not ids:
                return
            for merchant_account_id in ids:
                yield merchant_account_id
            last_id = ids[-1]

    async def _get_platform_merchant_account_id(self, db: AsyncSession) -> int:
        stmt = (
            select(MerchantAccount.id)
            .where(
                MerchantAccount.user_id.is_(None),
                MerchantAccount.charge_processor_id == ChargeProcessor.STRIPE,
            )
            .order_by(MerchantAccount.id)
            .limit(1)
        )
        platform_account_id = await db.scalar(stmt)
        if platform_account_id is None:
            raise UnclaimedBalanceCollectionError(
                "Platform Stripe merchant account does not exist"
            )
        return platform_account_id

    @staticmethod
    async def _has_recent_local_activity(
        db: AsyncSession, user_id: int, cutoff: datetime
    ) -> bool:
        """Whether the seller made a successful sale or received a completed payout since cutoff."""
        recent_sale = exists().where(
            Purchase.seller_id == user_id,
            Purchase.purchase_state == "successful",
            Purchase.created_at > cutoff,
        )
        recent_payout = exists().where(
            Payment.user_id == user_id,
            Payment.state == "completed",
            Payment.created_at > cutoff,
        )
        return bool(await db.scalar(select(or_(recent_sale, recent_payout))))

    async def _processor_activity_reason(
        self, stripe_account_id: str, cutoff_timestamp: int
    ) -> Optional[str]:
        """Return why the Stripe account counts as active, or None if it is dormant."""
        stripe_account = await self.stripe_client.retrieve_account(stripe_account_id)
        if getattr(stripe_account, "type", None) == StripeAccountType.STANDARD:
            return SkipReason.STANDARD_ACCOUNT
        if (getattr(stripe_account, "created", None) or 0) > cutoff_timestamp:
            return SkipReason.RECENTLY_CREATED_ON_PROCESSOR

        payouts = await self.stripe_client.list_payouts(stripe_account_id, limit=1)
        if payouts.data and (payouts.data[0].created or 0) > cutoff_timestamp:
            return SkipReason.RECENT_PROCESSOR_PAYOUT

        charges = await self.stripe_client.list_charges(stripe_account_id, limit=1)
        if charges.data and (charges.data[0].created or 0) > cutoff_timestamp:
            return SkipReason.RECENT_PROCESSOR_CHARGE

        return None

    async def _collectable_amount(self, stripe_account_id: str) -> int:
        """Available plus pending USD funds in the Stripe account, in cents."""
        balance = await self.stripe_client.retrieve_balance(stripe_account_id)
        return sum(
            funds["amount"]
            for funds in [*balance["available"], *balance["pending"]]
            if funds["currency"] == Currency.USD
        )

    @staticmethod
    async def _move_unpaid_balances_to_platform(
        db: AsyncSession,
        user_id: int,
        merchant_account_id: int,
        platform_account_id: int,
    ) -> int:
        # The funds are at least three years old, so no refund or dispute can touch them now
        result = await db.execute(
            update(Balance)
            .where(
                Balance.user_id == user_id,
                Balance.merchant_account_id == merchant_account_id,
                Balance.holding_currency == Currency.USD,
                Balance.state == "unpaid",
            )
            .values(merchant_account_id=platform_account_id)
        )
        await db.commit()
        return result.rowcount or 0

    async def process_merchant_account(
        self,
        db: AsyncSession,
        merchant_account: MerchantAccount,
        platform_account_id: int,
        cutoff: datetime,
    ) -> Dict[str, Any]:
        """
        Check one merchant account and collect its balance if it is inactive.

        Args:
            db: Database session
            merchant_account: Candidate merchant account
            platform_account_id: Platform merchant account receiving the balances
            cutoff: Activity after this moment marks the account as active

        Returns:
            Dict[str, Any]: Outcome for this account
        """
        merchant_account_id = merchant_account.id
        user_id = merchant_account.user_id
        stripe_account_id = merchant_account.charge_processor_merchant_id
        log = logger.bind(
            merchant_account_id=merchant_account_id,
            stripe_account_id=stripe_account_id,
        )

        def skipped(reason: str) -> Dict[str, Any]:
            log.info("unclaimed_balance_account_skipped", reason=reason)
            return {
                "merchant_account_id": merchant_account_id,
                "outcome": Outcome.SKIPPED,
                "reason": reason,
            }

        if await self._has_recent_local_activity(db, user_id, cutoff):
            return skipped(SkipReason.RECENT_LOCAL_ACTIVITY)

        reason = await self._processor_activity_reason(
            stripe_account_id, int(cutoff.timestamp())
        )
        if reason is not None:
            return skipped(reason)

        amount_cents = await self._collectable_amount(stripe_account_id)
        if amount_cents <= 0:
            return skipped(SkipReason.NO_BALANCE)

        transfer = await self.stripe_client.create_transfer(
            amount_cents=amount_cents,
            currency=Currency.USD,
            destination=self.settings.stripe_platform_account_id,
            source_account_id=stripe_account_id,
            idempotency_key=transfer_idempotency_key(merchant_account_id),
            description=TRANSFER_DESCRIPTION,
        )

        # The marker is committed before the ledger moves so the transfer is never repeated
        merchant_account.unclaimed_balance_collection_transfer_id = transfer.id
        await db.commit()

        metrics.record_collection(amount_cents, Currency.USD)

        try:
            moved_balances = await self._move_unpaid_balances_to_platform(
                db, user_id, merchant_account_id, platform_account_id
            )
        except Exception as e:
            # The marker keeps this account out of later runs, so the rows need manual reassignment
            await db.rollback()
            log.error(
                "unclaimed_balance_ledger_move_failed",
                transfer_id=transfer.id,
                amount_cents=amount_cents,
                error=str(e),
                error_type=type(e).__name__,
            )
            return {
                "merchant_account_id": merchant_account_id,
                "outcome": Outcome.LEDGER_FAILED,
                "transfer_id": transfer.id,
                "amount_cents": amount_cents,
                "error": str(e),
            }

        log.info(
            "unclaimed_balance_collected",
            transfer_id=transfer.id,
            amount_cents=amount_cents,
            moved_balances=moved_balances,
        )

        return {
            "merchant_account_id": merchant_account_id,
            "outcome": Outcome.COLLECTED,
            "transfer_id": transfer.id,
            "amount_cents": amount_cents,
            "moved_balances": moved_balances,
        }

    async def _process_candidates(
        self, db: AsyncSession, cutoff: datetime, results: List[Dict[str, Any]]
    ) -> None:
        """Process every candidate, appending one outcome per account to ``results``."""
        platform_account_id = await self._get_platform_merchant_account_id(db)

        async for merchant_account_id in self._candidate_ids(db, cutoff):
            merchant_account = await db.get(MerchantAccount, merchant_account_id)
            if merchant_account is None:
                continue
            try:
                result = await self.process_merchant_account(
                    db, merchant_account, platform_account_id, cutoff
                )
            except Exception as e:
                await db.rollback()
                logger.error(
                    "unclaimed_balance_account_failed",
                    merchant_account_id=merchant_account_id,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                result = {
                    "merchant_account_id": merchant_account_id,
                    "outcome": Outcome.FAILED,
                    "error": str(e),
                }
            metrics.record_account_outcome(result["outcome"], result.get("reason", ""))
            results.append(result)

    async def run(self) -> Dict[str, Any]:
        """
        Scan all candidate merchant accounts and collect inactive balances.

        Returns:
            Dict[str, Any]: Run summary with per-account outcomes

        Raises:
            UnclaimedBalanceCollectionError: If the scan itself fails
        """
        start_time = time.time()
        now = datetime.now(timezone.utc)
        cutoff = now - self.inactive_after

        async with self.session_factory() as db:
            run = UnclaimedBalanceCollectionRun(status="in_progress", started_at=now)
            db.add(run)
            await db.commit()
            run_id = run.id

            with structlog.contextvars.bound_contextvars(unclaimed_balance_run_id=run_id):
                logger.info(
                    "unclaimed_balance_collection_started",
                    cutoff=cutoff.isoformat(),
                    country=self.settings.unclaimed_balance_country,
                )

                results: List[Dict[str, Any]] = []
                try:
                    await self._process_candidates(db, cutoff, results)
                except Exception as e:
                    await db.rollback()
                    logger.error(
                        "unclaimed_balance_collection_failed",
                        error=str(e),
                        accounts_processed=len(results),
                    )

                    # Transfers made before the failure stay on the audit row
                    run = await db.get(UnclaimedBalanceCollectionRun, run_id)
                    self._finish_run(run, "failed", results, error=str(e))
                    await db.commit()
                    metrics.record_run("failed", time.time() - start_time)

                    if isinstance(e, UnclaimedBalanceCollectionError):
                        raise
                    raise UnclaimedBalanceCollectionError(
                        f"Unclaimed balance collection failed: {str(e)}"
                    ) from e

                status = (
                    "completed_with_failures"
                    if any(r["outcome"] in Outcome.UNSUCCESSFUL for r in results)
                    else "completed"
                )
                run = await db.get(UnclaimedBalanceCollectionRun, run_id)
                totals = self._finish_run(run, status, results)
                await db.commit()

                duration = time.time() - start_time
                metrics.record_run(status, duration)

                logger.info(
                    "unclaimed_balance_collection_completed",
                    status=status,
                    duration_seconds=duration,
                    **totals,
                )

        return {
            "run_id": run_id,
            "status": status,
            "cutoff": cutoff.isoformat(),
            **totals,
            "results": results,
        }

    @staticmethod
    def _finish_run(
        run: UnclaimedBalanceCollectionRun,
        status: str,
        results: List[Dict[str, Any]],
        error: Optional[str] = None,
    ) -> Dict[str, int]:
        # Ledger failures count as collected: the money has already left the sub-account
        transferred = [r for r in results if r["outcome"] in Outcome.TRANSFERRED]
        totals = {
            "accounts_scanned": len(results),
            "accounts_collected": len(transferred),
            "accounts_failed": sum(1 for r in results if r["outcome"] in Outcome.UNSUCCESSFUL),
            "collected_cents": sum(r["amount_cents"] for r in transferred),
        }
        run.status = status
        run.accounts_scanned = totals["accounts_scanned"]
        run.accounts_collected = totals["accounts_collected"]
        run.accounts_failed = totals["accounts_failed"]
        run.collected_cents = totals["collected_cents"]
        run.completed_at = datetime.now(timezone.utc)
        # Skipped accounts are only counted, to keep the row small
        details: Dict[str, Any] = {
            "results": [r for r in results if r["outcome"] != Outcome.SKIPPED][:500],
        }
        if error is not None:
            details["error"] = error
        run.details = details
        return totals
