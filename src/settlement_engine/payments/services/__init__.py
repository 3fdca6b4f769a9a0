"""Settlement services package."""

from settlement_engine.payments.services.creditor import AtomicCreditor, CreditResult
from settlement_engine.payments.services.payment_ledger import (
    PaymentLedger,
    PaymentRecordSnapshot,
    UpsertResult,
)
from settlement_engine.payments.services.reconciliation import (
    Candidate,
    ReconciliationScanner,
    ScanReport,
    SweepResult,
)
from settlement_engine.payments.services.request_gate import (
    CounterStore,
    MemoryCounterStore,
    RedisCounterStore,
    RequestGate,
    client_fingerprint,
)
from settlement_engine.payments.services.verifier import SessionVerifier, VerifiedPayment

__all__ = [
    # Verification
    "SessionVerifier",
    "VerifiedPayment",
    # Ledger
    "PaymentLedger",
    "PaymentRecordSnapshot",
    "UpsertResult",
    # Crediting
    "AtomicCreditor",
    "CreditResult",
    # Reconciliation
    "ReconciliationScanner",
    "Candidate",
    "ScanReport",
    "SweepResult",
    # Request gate
    "RequestGate",
    "CounterStore",
    "MemoryCounterStore",
    "RedisCounterStore",
    "client_fingerprint",
]
