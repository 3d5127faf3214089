"""Database package for the unclaimed balance collector."""
from .connection import get_db, init_db
from .models import (
    Balance,
    Base,
    MerchantAccount,
    Payment,
    Purchase,
    UnclaimedBalanceCollectionRun,
    User,
)

__all__ = [
    "Base",
    "Balance",
    "MerchantAccount",
    "Payment",
    "Purchase",
    "UnclaimedBalanceCollectionRun",
    "User",
    "get_db",
    "init_db",
]
