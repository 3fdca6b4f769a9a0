"""Session Verifier - Provider-truth validation of checkout sessions.

A session is settled only if every check passes, in this order:
1. Session id shape
5. Owner id and non-zero integer credit amount in metadata
3. Payment captured
4. Session closed
5. Owner id and positive integer credit amount in metadata
6. Credit amount within configured bounds (and matching charged amount)
7. Owner equals the requester

The verifier never writes. A rejection leaves no trace beyond logs.
"""

from __future__ import annotations

import datetime
import logging
from dataclasses import dataclass

from settlement_engine.payments.config import VerificationConfig
from settlement_engine.payments.errors import Rejection, RejectionKind
from settlement_engine.payments.providers.base import (
    CheckoutProvider,
    PermanentProviderError,
    SessionTruth,
    TransientProviderError,
)
from settlement_engine.payments.retry import RetryPolicy

logger = logging.getLogger(__name__)
audit_logger = logging.getLogger("settlement_engine.audit")

OWNER_KEY = "user_id"
CREDIT_KEY = "paw_dollars"
EXPECTED_AMOUNT_KEY = "expected_amount"


@dataclass(frozen=True)
class VerifiedPayment:
    """A session that passed every check."""

    session_id: str
    user_id: str
    credit_amount: int
    charged_amount: int


def session_suffix(session_id: str) -> str:
    """Last characters of a session id, for request logs."""
    return f"...{session_id[-8:]}" if len(session_id) > 8 else session_id


def _parse_int(value: str | None) -> int | None:
    """Parse a base-10 integer with an optional sign; None if malformed."""
    if value is None:
        return None
    value = value.strip()
    digits = value[1:] if value[:1] in ("-", "+") else value
    if not (digits.isascii() and digits.isdigit()):
        return None
    return int(value)


class SessionVerifier:
    """Validates a checkout session against the provider."""

    def __init__(
        self,
        provider: CheckoutProvider,
        config: VerificationConfig | None = None,
        retry: RetryPolicy | None = None,
    ):
        self.provider = provider
        self.config = config or VerificationConfig()
        self.retry = retry or RetryPolicy()

    def check_shape(self, session_id: object) -> str:
        """Reject anything that cannot be a provider session id."""
        cfg = self.config
        if (
            not isinstance(session_id, str)
            or not session_id.startswith(cfg.session_id_prefix)
            or not cfg.min_session_id_length <= len(session_id) <= cfg.max_session_id_length
        ):
            raise Rejection(RejectionKind.MALFORMED_INPUT, "session id failed shape check")
        return session_id

    def fetch(self, session_id: str) -> SessionTruth:
        """Fetch provider truth with bounded retry."""
        try:
            return self.retry.call(self.provider.fetch_session, session_id)
        except TransientProviderError as e:
            logger.warning(
                "Provider unavailable for session %s after %d attempts: %s",
                session_suffix(session_id),
                self.retry.config.max_attempts,
                e,
            )
            raise Rejection(
                RejectionKind.PROVIDER_UNAVAILABLE, str(e), session_id=session_id
            ) from e
        except PermanentProviderError as e:
            logger.info("Provider rejected session %s: %s", session_suffix(session_id), e)
            raise Rejection(RejectionKind.MALFORMED_INPUT, str(e), session_id=session_id) from e

    def list_recent(
        self,
        email: str,
        since: datetime.datetime,
        *,
        customer_limit: int = 10,
        session_limit: int = 20,
    ) -> list[SessionTruth]:
        """List recent provider sessions for a billing email, with bounded retry.

        The sessions are unchecked; pass each through `evaluate`.

        Raises:
            ProviderError: Listing failed after retries, or was rejected
        """
        return self.retry.call(
            self.provider.list_recent_sessions,
            email,
            since,
            customer_limit=customer_limit,
            session_limit=session_limit,
        )

    def verify(self, session_id: object, requesting_user_id: str | None) -> VerifiedPayment:
        """Run every check against a session id.

        Args:
            session_id: Caller-supplied session id (untrusted)
            requesting_user_id: Authenticated caller, or None for
                unattended reconciliation

        Returns:
            VerifiedPayment

        Raises:
            Rejection: The first failed check
        """
        valid_id = self.check_shape(session_id)
        truth = self.fetch(valid_id)
        return self.evaluate(truth, requesting_user_id)

    def evaluate(self, truth: SessionTruth, requesting_user_id: str | None) -> VerifiedPayment:
        """Apply the post-fetch checks to already-fetched provider truth."""
        sid = truth.session_id

        if not truth.payment_captured:
            raise Rejection(RejectionKind.PAYMENT_NOT_CAPTURED, "payment not paid", session_id=sid)
        if not truth.session_closed:
            raise Rejection(RejectionKind.SESSION_INCOMPLETE, "session not complete", session_id=sid)

        owner = (truth.metadata.get(OWNER_KEY) or "").strip()
        raw_credit = truth.metadata.get(CREDIT_KEY)
        if not owner or raw_credit is None:
            raise Rejection(
                RejectionKind.INVALID_METADATA,
                f"missing {OWNER_KEY} or {CREDIT_KEY}",
                session_id=sid,
            )
        credit = _parse_int(raw_credit)
        # Zero counts as missing; negatives fall through to the bounds check.
        if not credit:
            raise Rejection(
                RejectionKind.INVALID_METADATA,
                f"{CREDIT_KEY}={raw_credit!r} is not a non-zero integer",
                session_id=sid,
            )

        if not self.config.min_credit <= credit <= self.config.max_credit:
            raise Rejection(
                RejectionKind.AMOUNT_OUT_OF_BOUNDS,
                f"credit {credit} outside [{self.config.min_credit}, {self.config.max_credit}]",
                session_id=sid,
            )

        charged = truth.amount_total or 0
        if self.config.check_expected_amount and EXPECTED_AMOUNT_KEY in truth.metadata:
            expected = _parse_int(truth.metadata[EXPECTED_AMOUNT_KEY])
            if expected is None or expected != charged:
                raise Rejection(
                    RejectionKind.INVALID_METADATA,
                    f"expected_amount {truth.metadata[EXPECTED_AMOUNT_KEY]!r} != charged {charged}",
                    session_id=sid,
                )

        if requesting_user_id is not None and owner != requesting_user_id:
            audit_logger.warning(
                "Potential fraud: session %s owned by %s requested by %s",
                sid,
                owner,
                requesting_user_id,
            )
            raise Rejection(
                RejectionKind.OWNERSHIP_MISMATCH,
                f"owner {owner} != requester {requesting_user_id}",
                session_id=sid,
            )

        return VerifiedPayment(
            session_id=sid,
            user_id=owner,
            credit_amount=credit,
            charged_amount=charged,
        )
