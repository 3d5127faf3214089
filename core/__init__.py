"""Core payout logic."""
from .unclaimed_balances import UnclaimedBalanceCollectionError, UnclaimedBalanceCollector

__all__ = [
    "UnclaimedBalanceCollectionError",
    "UnclaimedBalanceCollector",
]
