"""Settlement error taxonomy.

Rejections are expected outcomes of validating a session and carry a
`kind`; their `detail` is for server logs only and `public_message` is what
a caller may see. `StorageFailure` means the transaction was rolled back.
"""

from __future__ import annotations

from enum import Enum


class RejectionKind(str, Enum):
    """Why a session was not settled."""

    MALFORMED_INPUT = "malformed_input"
    PROVIDER_UNAVAILABLE = "provider_unavailable"
    PAYMENT_NOT_CAPTURED = "payment_not_captured"
    SESSION_INCOMPLETE = "session_incomplete"
    INVALID_METADATA = "invalid_metadata"
    AMOUNT_OUT_OF_BOUNDS = "amount_out_of_bounds"
    OWNERSHIP_MISMATCH = "ownership_mismatch"
    RATE_LIMITED = "rate_limited"


_PUBLIC_MESSAGES: dict[RejectionKind, str] = {
    RejectionKind.MALFORMED_INPUT: "Invalid session ID format",
    RejectionKind.PROVIDER_UNAVAILABLE: "Payment verification temporarily unavailable",
    RejectionKind.PAYMENT_NOT_CAPTURED: "Payment not completed",
    RejectionKind.SESSION_INCOMPLETE: "Payment session not complete",
    RejectionKind.INVALID_METADATA: "Invalid payment session data",
    RejectionKind.AMOUNT_OUT_OF_BOUNDS: "Invalid payment amount",
    RejectionKind.OWNERSHIP_MISMATCH: "Unauthorized access to payment verification",
    RejectionKind.RATE_LIMITED: "Too many requests. Please try again later.",
}


class SettlementError(Exception):
    """Base class for settlement errors."""


class Rejection(SettlementError):
    """A session failed a settlement check."""

    def __init__(self, kind: RejectionKind, detail: str = "", session_id: str | None = None):
        self.kind = kind
        self.detail = detail or kind.value
        self.session_id = session_id
        super().__init__(f"{kind.value}: {self.detail}")

    @property
    def public_message(self) -> str:
        """Caller-safe message that never includes detail."""
        return _PUBLIC_MESSAGES[self.kind]


class StorageFailure(SettlementError):
    """A ledger or crediting transaction failed and was rolled back."""

    public_message = "Payment verification failed. Please contact support if the issue persists."
