"""Reconciliation Scanner - Recovers payments the client never reported.

A purchase can complete at the provider while the browser never calls
verify (closed tab, network failure). The scanner finds such sessions and
drives them through the normal verify -> credit pipeline:

1. Local -> provider: uncredited ledger rows re-checked at the provider
2. Provider -> local: recent provider sessions for the caller's billing
   email that have no credited record

Candidates are de-duplicated by session id (the local pass wins). One
session's failure never aborts the scan; failures accumulate in the result.
"""

from __future__ import annotations

import datetime
import logging
from dataclasses import dataclass, field
from typing import Any, Callable

from sqlalchemy.orm import Session, sessionmaker

from settlement_engine.payments.config import ReconciliationConfig
from settlement_engine.payments.errors import Rejection, RejectionKind, StorageFailure
from settlement_engine.payments.providers.base import ProviderError
from settlement_engine.payments.services.creditor import AtomicCreditor, CreditResult
from settlement_engine.payments.services.payment_ledger import (
    PaymentLedger,
    PaymentRecordSnapshot,
)
from settlement_engine.payments.services.verifier import SessionVerifier, VerifiedPayment

logger = logging.getLogger(__name__)

SOURCE_DATABASE = "database"
SOURCE_PROVIDER = "stripe"

# Sessions a user simply abandoned; not worth reporting as failures.
_UNSETTLED_KINDS = frozenset({RejectionKind.PAYMENT_NOT_CAPTURED, RejectionKind.SESSION_INCOMPLETE})


@dataclass(frozen=True)
class Candidate:
    """A provider-confirmed session that has not been credited."""

    payment: VerifiedPayment
    source: str
    created: int | None = None

    @property
    def session_id(self) -> str:
        return self.payment.session_id


@dataclass
class ScanReport:
    """Result of find_completed_sessions."""

    candidates: list[Candidate] = field(default_factory=list)
    failures: list[dict[str, Any]] = field(default_factory=list)
    skipped: int = 0
    current_balance: int = 0

    @property
    def success(self) -> bool:
        return not self.failures


@dataclass
class SweepResult:
    """Result of process_pending or a global sweep."""

    processed_count: int = 0
    total_credits: int = 0
    already_credited: int = 0
    examined: int = 0
    failures: list[dict[str, Any]] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.failures


def _epoch(value: datetime.datetime | None) -> int | None:
    if value is None:
        return None
    # SQLite hands back naive UTC timestamps.
    if value.tzinfo is None:
        value = value.replace(tzinfo=datetime.timezone.utc)
    return int(value.timestamp())


def _failure(code: str, message: str, session_id: str | None = None) -> dict[str, Any]:
    entry: dict[str, Any] = {"code": code, "message": message}
    if session_id is not None:
        entry["session_id"] = session_id
    return entry


class ReconciliationScanner:
    """Finds and settles completed-but-uncredited sessions.

    Crediting goes through `settle`, the same callable the verify path
    uses, so the scanner never bypasses the ledger or the creditor.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        verifier: SessionVerifier,
        settle: Callable[[VerifiedPayment], CreditResult],
        config: ReconciliationConfig | None = None,
    ):
        self.session_factory = session_factory
        self.verifier = verifier
        self.settle = settle
        self.config = config or ReconciliationConfig()

    def find_completed_sessions(self, user_id: str, email: str | None = None) -> ScanReport:
        """List the caller's confirmed-but-uncredited sessions.

        Args:
            user_id: Authenticated caller
            email: Billing email for the provider -> local pass; skipped if None

        Returns:
            ScanReport with candidates, failures and the current balance
        """
        report = ScanReport()

        with self.session_factory() as db:
            uncredited = PaymentLedger(db).list_uncredited(
                user_id=user_id, limit=self.config.sweep_batch_size
            )

        seen: set[str] = set()
        for record in uncredited:
            candidate = self._check_local(record, user_id, report)
            if candidate is not None:
                report.candidates.append(candidate)
                seen.add(candidate.session_id)

        if email:
            for candidate in self._provider_candidates(user_id, email, report):
                if candidate.session_id not in seen:
                    report.candidates.append(candidate)
                    seen.add(candidate.session_id)

        with self.session_factory() as db:
            report.current_balance = AtomicCreditor(db).get_balance(user_id)

        logger.info(
            "Scan for user %s: %d candidates, %d failures, %d skipped",
            user_id,
            len(report.candidates),
            len(report.failures),
            report.skipped,
        )
        return report

    def process_pending(self, user_id: str, email: str | None = None) -> SweepResult:
        """Credit every confirmed-but-uncredited session of the caller.

        Unconfirmed rows are left untouched.
        """
        report = self.find_completed_sessions(user_id, email)
        result = SweepResult(examined=len(report.candidates), failures=list(report.failures))
        for candidate in report.candidates:
            self._settle_into(candidate.payment, result)
        return result

    def sweep(self, limit: int | None = None) -> SweepResult:
        """Global local -> provider pass over all uncredited rows.

        Intended for a scheduled job; there is no requester, so ownership is
        taken from provider metadata.
        """
        limit = limit or self.config.sweep_batch_size
        with self.session_factory() as db:
            uncredited = PaymentLedger(db).list_uncredited(limit=limit)

        result = SweepResult(examined=len(uncredited))
        scratch = ScanReport()
        for record in uncredited:
            candidate = self._check_local(record, None, scratch)
            if candidate is not None:
                self._settle_into(candidate.payment, result)
        result.failures.extend(scratch.failures)

        logger.info(
            "Sweep examined %d rows: %d credited (%d total), %d already credited, %d failures",
            result.examined,
            result.processed_count,
            result.total_credits,
            result.already_credited,
            len(result.failures),
        )
        return result

    def _check_local(
        self,
        record: PaymentRecordSnapshot,
        requesting_user_id: str | None,
        report: ScanReport,
    ) -> Candidate | None:
        try:
            payment = self.verifier.verify(record.session_id, requesting_user_id)
        except Rejection as e:
            self._note_rejection(e, record.session_id, report)
            return None
        return Candidate(payment=payment, source=SOURCE_DATABASE, created=_epoch(record.created_at))

    def _provider_candidates(
        self, user_id: str, email: str, report: ScanReport
    ) -> list[Candidate]:
        since = datetime.datetime.now(datetime.timezone.utc) - datetime.timedelta(
            days=self.config.lookback_days
        )
        try:
            sessions = self.verifier.list_recent(
                email,
                since,
                customer_limit=self.config.customer_limit,
                session_limit=self.config.sessions_per_customer,
            )
        except ProviderError as e:
            logger.warning("Provider session listing failed for user %s: %s", user_id, e)
            report.failures.append(_failure("PROVIDER_ERROR", f"Failed to list sessions: {e}"))
            return []

        with self.session_factory() as db:
            credited = PaymentLedger(db).credited_session_ids(s.session_id for s in sessions)

        candidates: list[Candidate] = []
        for truth in sessions:
            if truth.session_id in credited:
                continue
            try:
                payment = self.verifier.evaluate(truth, user_id)
            except Rejection as e:
                self._note_rejection(e, truth.session_id, report)
                continue
            candidates.append(Candidate(payment=payment, source=SOURCE_PROVIDER, created=truth.created))
        return candidates

    def _settle_into(self, payment: VerifiedPayment, result: SweepResult) -> None:
        try:
            credit = self.settle(payment)
        except StorageFailure as e:
            result.failures.append(_failure("STORAGE_FAILURE", str(e), payment.session_id))
            return
        if credit.credited:
            result.processed_count += 1
            result.total_credits += payment.credit_amount
        else:
            result.already_credited += 1

    @staticmethod
    def _note_rejection(rejection: Rejection, session_id: str, report: ScanReport) -> None:
        if rejection.kind in _UNSETTLED_KINDS:
            report.skipped += 1
            return
        logger.info("Reconciliation skipped session %s: %s", session_id, rejection.detail)
        report.failures.append(_failure(rejection.kind.name, rejection.detail, session_id))
