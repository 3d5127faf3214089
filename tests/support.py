"""Helpers shared by the test modules."""
from datetime import datetime, timedelta, timezone
from typing import Any

PLATFORM_STRIPE_ACCOUNT_ID = "acct_platform_test"


def ago(**delta: Any) -> datetime:
    return datetime.now(timezone.utc) - timedelta(**delta)


def timestamp_ago(**delta: Any) -> int:
    return int(ago(**delta).timestamp())


def stripe_balance(available: int = 0, pending: int = 0, currency: str = "usd") -> dict[str, Any]:
    """Balance payload shaped like Stripe's, with one entry per list."""
    return {
        "available": [{"amount": available, "currency": currency}],
        "pending": [{"amount": pending, "currency": currency}],
    }
