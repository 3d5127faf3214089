"""Currency and charge processor identifiers used by the payout jobs."""


class Currency:
    """Lowercase ISO 4217 codes, as Stripe expects them."""

    USD = "usd"


class ChargeProcessor:
    """Charge processor identifiers stored on merchant accounts."""

    STRIPE = "stripe"


class StripeAccountType:
    """Connected account types; sellers of a standard account manage their own funds."""

    STANDARD = "standard"
