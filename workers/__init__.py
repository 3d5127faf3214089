"""Background workers for scheduled jobs."""
from .unclaimed_balance_worker import (
    run_unclaimed_balance_collection,
    start_unclaimed_balance_worker,
)

__all__ = ["run_unclaimed_balance_collection", "start_unclaimed_balance_worker"]
