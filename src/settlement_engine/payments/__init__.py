"""Payment settlement package.

This package contains:
- Checkout provider adapters (Stripe, in-memory stub)
- Session verification against provider truth
- The payment ledger and the atomic creditor
- Reconciliation of completed-but-uncredited sessions
- Per-caller request gating
- The Settlement facade tying them together
"""

from settlement_engine.payments.config import (
    RateLimitConfig,
    ReconciliationConfig,
    RetryConfig,
    SettlementConfig,
    VerificationConfig,
)
from settlement_engine.payments.errors import (
    Rejection,
    RejectionKind,
    SettlementError,
    StorageFailure,
)
from settlement_engine.payments.providers import (
    CheckoutProvider,
    PermanentProviderError,
    ProviderError,
    SessionTruth,
    StripeCheckoutProvider,
    StubCheckoutProvider,
    TransientProviderError,
)
from settlement_engine.payments.retry import RetryPolicy
from settlement_engine.payments.services import (
    AtomicCreditor,
    CreditResult,
    PaymentLedger,
    ReconciliationScanner,
    RequestGate,
    ScanReport,
    SessionVerifier,
    SweepResult,
    VerifiedPayment,
)
from settlement_engine.payments.settlement import Settlement, SettlementOutcome

__all__ = [
    # Facade
    "Settlement",
    "SettlementOutcome",
    # Configuration
    "SettlementConfig",
    "VerificationConfig",
    "RetryConfig",
    "RateLimitConfig",
    "ReconciliationConfig",
    # Errors
    "SettlementError",
    "Rejection",
    "RejectionKind",
    "StorageFailure",
    # Providers
    "CheckoutProvider",
    "SessionTruth",
    "ProviderError",
    "TransientProviderError",
    "PermanentProviderError",
    "StripeCheckoutProvider",
    "StubCheckoutProvider",
    "RetryPolicy",
    # Services
    "SessionVerifier",
    "VerifiedPayment",
    "PaymentLedger",
    "AtomicCreditor",
    "CreditResult",
    "ReconciliationScanner",
    "ScanReport",
    "SweepResult",
    "RequestGate",
]
