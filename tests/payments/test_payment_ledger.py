"""Tests for PaymentLedger - one record per checkout session.

Tests verify:
1. Insert-or-fetch keyed by session id (retries produce no duplicates)
2. One-way pending -> completed transition
3. Reconciliation lookups
"""

import pytest
from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from settlement_engine.models import PaymentRecord
from settlement_engine.payments.services.payment_ledger import PaymentLedger


def _upsert(ledger: PaymentLedger, session_id: str, user_id: str = "user-1", credit: int = 100):
    return ledger.upsert_pending(
        session_id=session_id,
        user_id=user_id,
        charged_amount=499,
        credit_amount=credit,
    )


class TestUpsertPending:
    """Insert-or-fetch."""

    def test_creates_pending_record(self, db: Session):
        ledger = PaymentLedger(db)

        result = _upsert(ledger, "cs_test_ledger_0001")

        assert result.is_new is True
        assert result.record.session_id == "cs_test_ledger_0001"
        assert result.record.status == "pending"
        assert result.record.provider_verified is False
        assert result.record.credited is False
        assert result.record.amount_minor_units == 499

    def test_second_upsert_returns_existing(self, db: Session):
        """Same session id returns the first record; new values are ignored."""
        ledger = PaymentLedger(db)
        first = _upsert(ledger, "cs_test_ledger_0002", credit=100)
        db.commit()

        second = _upsert(ledger, "cs_test_ledger_0002", credit=9_999)

        assert second.is_new is False
        assert second.record.payment_record_id == first.record.payment_record_id
        assert second.record.credit_amount == 100
        count = db.execute(
            select(func.count()).select_from(PaymentRecord).where(
                PaymentRecord.session_id == "cs_test_ledger_0002"
            )
        ).scalar_one()
        assert count == 1

    def test_non_positive_credit_refused(self, db: Session):
        with pytest.raises(ValueError):
            _upsert(PaymentLedger(db), "cs_test_ledger_0003", credit=0)


class TestMarkVerified:
    """Provider confirmation."""

    def test_mark_verified_once(self, db: Session):
        ledger = PaymentLedger(db)
        _upsert(ledger, "cs_test_ledger_0010")

        assert ledger.mark_verified("cs_test_ledger_0010") is True
        first = ledger.get("cs_test_ledger_0010")
        assert ledger.mark_verified("cs_test_ledger_0010") is False
        second = ledger.get("cs_test_ledger_0010")

        assert first.status == "completed"
        assert first.provider_verified is True
        assert first.completed_at is not None
        assert second.completed_at == first.completed_at

    def test_mark_verified_unknown_session(self, db: Session):
        assert PaymentLedger(db).mark_verified("cs_test_missing_0001") is False

    def test_get_unknown_session(self, db: Session):
        assert PaymentLedger(db).get("cs_test_missing_0002") is None


class TestReconciliationLookups:
    """Queries used by the reconciliation scanner."""

    def test_list_uncredited_filters(self, db: Session):
        ledger = PaymentLedger(db)
        _upsert(ledger, "cs_test_lookup_0001", user_id="alice")
        _upsert(ledger, "cs_test_lookup_0002", user_id="alice")
        _upsert(ledger, "cs_test_lookup_0003", user_id="bob")
        _upsert(ledger, "cs_test_lookup_0004", user_id="alice")
        db.execute(
            update(PaymentRecord)
            .where(PaymentRecord.session_id == "cs_test_lookup_0002")
            .values(credited=True)
        )
        db.execute(
            update(PaymentRecord)
            .where(PaymentRecord.session_id == "cs_test_lookup_0004")
            .values(status="failed")
        )

        alice = {r.session_id for r in ledger.list_uncredited(user_id="alice")}
        everyone = {r.session_id for r in ledger.list_uncredited()}

        assert alice == {"cs_test_lookup_0001"}
        assert everyone == {"cs_test_lookup_0001", "cs_test_lookup_0003"}

    def test_list_uncredited_limit(self, db: Session):
        ledger = PaymentLedger(db)
        for i in range(5):
            _upsert(ledger, f"cs_test_limit_{i:04d}")
        assert len(ledger.list_uncredited(limit=3)) == 3

    def test_credited_session_ids(self, db: Session):
        ledger = PaymentLedger(db)
        _upsert(ledger, "cs_test_credited_0001")
        _upsert(ledger, "cs_test_credited_0002")
        db.execute(
            update(PaymentRecord)
            .where(PaymentRecord.session_id == "cs_test_credited_0001")
            .values(credited=True)
        )

        credited = ledger.credited_session_ids(
            ["cs_test_credited_0001", "cs_test_credited_0002", "cs_test_unknown_0001"]
        )

        assert credited == {"cs_test_credited_0001"}
        assert ledger.credited_session_ids([]) == set()
