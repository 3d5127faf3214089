"""External service integrations."""
from .stripe_client import CircuitBreaker, StripeClient, StripeError, StripeErrorType

__all__ = ["CircuitBreaker", "StripeClient", "StripeError", "StripeErrorType"]
