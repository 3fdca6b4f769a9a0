"""Settlement Facade - Single integration path for crediting payments.

Every entry point (HTTP verify, HTTP reconcile, CLI sweep) goes through
this facade, so the pipeline order cannot be skipped:

    RequestGate -> SessionVerifier -> PaymentLedger -> AtomicCreditor

Usage:
    settlement = Settlement(session_factory, provider, config)

    # Browser returned from checkout
    outcome = settlement.verify_payment(session_id, user_id, fingerprint=fp)

    # Recover sessions the browser never reported
    report = settlement.find_completed_sessions(user_id, email)
    result = settlement.process_pending(user_id, email)

    # Scheduled job
    result = settlement.sweep()

The facade owns transaction boundaries: the ledger record is committed in
its own transaction before the credit transaction runs, so a failed credit
leaves a pending row for reconciliation to pick up.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from settlement_engine.config import Settings
from settlement_engine.payments.config import SettlementConfig
from settlement_engine.payments.errors import Rejection, RejectionKind, StorageFailure
from settlement_engine.payments.providers.base import CheckoutProvider
from settlement_engine.payments.providers.stripe_provider import StripeCheckoutProvider
from settlement_engine.payments.providers.stub import StubCheckoutProvider
from settlement_engine.payments.retry import RetryPolicy
from settlement_engine.payments.services.creditor import AtomicCreditor, CreditResult
from settlement_engine.payments.services.payment_ledger import PaymentLedger
from settlement_engine.payments.services.reconciliation import (
    ReconciliationScanner,
    ScanReport,
    SweepResult,
)
from settlement_engine.payments.services.request_gate import (
    CounterStore,
    MemoryCounterStore,
    RedisCounterStore,
    RequestGate,
)
from settlement_engine.payments.services.verifier import (
    SessionVerifier,
    VerifiedPayment,
    session_suffix,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SettlementOutcome:
    """Result of settling one session.

    `already_processed=True` is a success: the session had been credited
    before and the balance did not change.
    """

    session_id: str
    user_id: str
    credit_amount: int
    new_balance: int
    already_processed: bool


def build_provider(settings: Settings) -> CheckoutProvider:
    """Provider selected by the PROVIDER setting."""
    if settings.provider == "stub":
        return StubCheckoutProvider()
    if settings.provider == "stripe":
        return StripeCheckoutProvider(api_key=settings.stripe_secret_key)
    raise ValueError(f"Unknown provider: {settings.provider}")


def build_counter_store(settings: Settings) -> CounterStore:
    """Redis when REDIS_URL is set, process memory otherwise."""
    if settings.redis_url:
        return RedisCounterStore.from_url(settings.redis_url)
    return MemoryCounterStore()


class Settlement:
    """Settlement facade."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        provider: CheckoutProvider,
        config: SettlementConfig | None = None,
        *,
        gate: RequestGate | None = None,
        retry: RetryPolicy | None = None,
    ):
        self.session_factory = session_factory
        self.provider = provider
        self.config = config or SettlementConfig()
        self.gate = gate or RequestGate(config=self.config.rate_limit)
        self.verifier = SessionVerifier(
            provider,
            config=self.config.verification,
            retry=retry or RetryPolicy(self.config.retry),
        )
        self.scanner = ReconciliationScanner(
            session_factory,
            self.verifier,
            self.settle,
            config=self.config.reconciliation,
        )

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        session_factory: sessionmaker[Session],
    ) -> Settlement:
        """Wire a facade from application settings."""
        config = SettlementConfig.from_settings(settings)
        gate = RequestGate(store=build_counter_store(settings), config=config.rate_limit)
        return cls(session_factory, build_provider(settings), config, gate=gate)

    def verify_payment(
        self,
        session_id: object,
        user_id: str,
        *,
        fingerprint: str | None = None,
    ) -> SettlementOutcome:
        """Verify a session with the provider and credit it exactly once.

        Args:
            session_id: Caller-supplied session id (untrusted)
            user_id: Authenticated caller
            fingerprint: Client fingerprint for rate limiting; None skips the gate

        Raises:
            Rejection: Rate limited or a verification check failed
            StorageFailure: Ledger or credit transaction rolled back
        """
        if fingerprint is not None:
            self.gate.check(fingerprint)

        try:
            verified = self.verifier.verify(session_id, user_id)
        except Rejection as e:
            log = logger.warning if e.kind is RejectionKind.PROVIDER_UNAVAILABLE else logger.info
            log("Verification rejected for user %s: %s", user_id, e)
            raise

        result = self.settle(verified)
        return SettlementOutcome(
            session_id=verified.session_id,
            user_id=verified.user_id,
            credit_amount=verified.credit_amount,
            new_balance=result.new_balance,
            already_processed=not result.credited,
        )

    def process_session(
        self,
        session_id: object,
        user_id: str,
        *,
        fingerprint: str | None = None,
    ) -> SettlementOutcome:
        """Manually settle one session; same contract as verify_payment."""
        return self.verify_payment(session_id, user_id, fingerprint=fingerprint)

    def find_completed_sessions(
        self,
        user_id: str,
        email: str | None = None,
        *,
        fingerprint: str | None = None,
    ) -> ScanReport:
        if fingerprint is not None:
            self.gate.check(fingerprint)
        return self.scanner.find_completed_sessions(user_id, email)

    def process_pending(
        self,
        user_id: str,
        email: str | None = None,
        *,
        fingerprint: str | None = None,
    ) -> SweepResult:
        if fingerprint is not None:
            self.gate.check(fingerprint)
        return self.scanner.process_pending(user_id, email)

    def sweep(self, limit: int | None = None) -> SweepResult:
        return self.scanner.sweep(limit)

    def get_balance(self, user_id: str) -> int:
        with self.session_factory() as db:
            return AtomicCreditor(db).get_balance(user_id)

    def settle(self, verified: VerifiedPayment) -> CreditResult:
        """Record a verified session and credit it if not yet credited.

        Raises:
            StorageFailure: Either transaction failed and was rolled back
        """
        try:
            with self.session_factory.begin() as db:
                ledger = PaymentLedger(db)
                upsert = ledger.upsert_pending(
                    session_id=verified.session_id,
                    user_id=verified.user_id,
                    charged_amount=verified.charged_amount,
                    credit_amount=verified.credit_amount,
                )
                ledger.mark_verified(verified.session_id)

            with self.session_factory.begin() as db:
                result = AtomicCreditor(db).credit_if_not_credited(
                    verified.session_id,
                    verified.user_id,
                    upsert.record.credit_amount,
                )
        except SQLAlchemyError as e:
            logger.exception(
                "Settlement transaction failed for session %s",
                session_suffix(verified.session_id),
            )
            raise StorageFailure(f"settlement failed for {verified.session_id}") from e

        return result
