"""Checkout provider adapters."""

from settlement_engine.payments.providers.base import (
    CheckoutProvider,
    PermanentProviderError,
    ProviderError,
    SessionTruth,
    TransientProviderError,
)
from settlement_engine.payments.providers.stripe_provider import (
    StripeCheckoutProvider,
    StripeConfigError,
)
from settlement_engine.payments.providers.stub import StubCheckoutProvider

__all__ = [
    "CheckoutProvider",
    "SessionTruth",
    "ProviderError",
    "TransientProviderError",
    "PermanentProviderError",
    "StripeCheckoutProvider",
    "StripeConfigError",
    "StubCheckoutProvider",
]
