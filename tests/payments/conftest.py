"""Settlement test data helpers."""

from __future__ import annotations

from uuid import uuid4

import pytest
from sqlalchemy import func, select
from sqlalchemy.orm import Session, sessionmaker

from settlement_engine.models import CurrencyTransaction, PaymentRecord, Profile
from settlement_engine.payments.providers.base import SessionTruth
from settlement_engine.payments.providers.stub import StubCheckoutProvider
from settlement_engine.payments.services.payment_ledger import PaymentLedger


class SettlementTestData:
    """Test data generator for settlement tests."""

    def __init__(self, provider: StubCheckoutProvider, session_factory: sessionmaker[Session]):
        self.provider = provider
        self.session_factory = session_factory
        self.user_id = f"user-{uuid4().hex[:8]}"
        self.email = f"{self.user_id}@example.com"

    def paid_session(self, paw_dollars: int = 100, **kwargs) -> SessionTruth:
        """A paid, complete session owned by the test user."""
        kwargs.setdefault("email", self.email)
        return self.provider.add_session(self.user_id, paw_dollars, **kwargs)

    def unpaid_session(self, paw_dollars: int = 100, **kwargs) -> SessionTruth:
        """A session the user opened but never paid."""
        kwargs.setdefault("email", self.email)
        return self.provider.add_session(
            self.user_id, paw_dollars, paid=False, complete=False, **kwargs
        )

    def record_pending(self, truth: SessionTruth, credit_amount: int | None = None) -> None:
        """Write a pending ledger row for a session, as checkout creation would."""
        with self.session_factory.begin() as db:
            PaymentLedger(db).upsert_pending(
                session_id=truth.session_id,
                user_id=truth.metadata.get("user_id", self.user_id),
                charged_amount=truth.amount_total or 0,
                credit_amount=credit_amount or int(truth.metadata.get("paw_dollars", "100")),
            )

    def balance(self, user_id: str | None = None) -> int:
        with self.session_factory() as db:
            value = db.execute(
                select(Profile.currency_balance).where(Profile.user_id == (user_id or self.user_id))
            ).scalar()
        return value or 0

    def record(self, session_id: str) -> PaymentRecord | None:
        with self.session_factory() as db:
            return db.execute(
                select(PaymentRecord).where(PaymentRecord.session_id == session_id)
            ).scalar_one_or_none()

    def audit_entries(self, session_id: str) -> int:
        with self.session_factory() as db:
            return db.execute(
                select(func.count())
                .select_from(CurrencyTransaction)
                .where(CurrencyTransaction.reference == session_id)
            ).scalar_one()

    def record_count(self) -> int:
        with self.session_factory() as db:
            return db.execute(select(func.count()).select_from(PaymentRecord)).scalar_one()


@pytest.fixture
def test_data(
    provider: StubCheckoutProvider,
    session_factory: sessionmaker[Session],
) -> SettlementTestData:
    """Provide test data generator."""
    return SettlementTestData(provider, session_factory)
