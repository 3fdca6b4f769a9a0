"""Payment Ledger - One durable record per checkout session.

Provides idempotent recording of checkout sessions with:
- Insert-or-fetch keyed by the provider session id
- One-way pending -> completed transition on provider confirmation
- Lookups for reconciliation (uncredited rows, credited ids)

Records are never deleted. The `credited` flag is owned by AtomicCreditor.
"""

from __future__ import annotations

import datetime
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from settlement_engine.database import insert_ignoring_conflict
from settlement_engine.models import PaymentRecord

payment_record = PaymentRecord.__table__

RECONCILABLE_STATUSES = ("pending", "completed")


@dataclass(frozen=True)
class PaymentRecordSnapshot:
    """Read-only view of a payment_record row."""

    payment_record_id: UUID
    session_id: str
    user_id: str
    amount_minor_units: int
    credit_amount: int
    status: str
    provider_verified: bool
    credited: bool
    created_at: datetime.datetime | None = None
    completed_at: datetime.datetime | None = None
    credited_at: datetime.datetime | None = None

    @classmethod
    def from_row(cls, row: Any) -> PaymentRecordSnapshot:
        m = row._mapping
        return cls(**{name: m[name] for name in cls.__dataclass_fields__})


@dataclass(frozen=True)
class UpsertResult:
    """Result of upsert_pending.

    `is_new=False` means the session was already recorded (by an earlier
    attempt or a concurrent caller) and `record` is the existing row.
    """

    record: PaymentRecordSnapshot
    is_new: bool


class PaymentLedger:
    """Ledger of checkout sessions.

    Notes:
    - session_id is unique (DB constraint payment_record_session_unique).
    - Callers own the transaction; nothing here commits.
    """

    def __init__(self, db: Session):
        self.db = db

    def upsert_pending(
        self,
        *,
        session_id: str,
        user_id: str,
        charged_amount: int,
        credit_amount: int,
    ) -> UpsertResult:
        """Record a session as pending, or return the existing record.

        A uniqueness conflict means another caller created the row first;
        that is not an error.
        """
        if credit_amount <= 0:
            raise ValueError("credit_amount must be positive")

        is_new = insert_ignoring_conflict(
            self.db,
            payment_record,
            {
                "session_id": session_id,
                "user_id": user_id,
                "amount_minor_units": charged_amount,
                "credit_amount": credit_amount,
                "status": "pending",
                "provider_verified": False,
                "credited": False,
            },
            ["session_id"],
        )

        record = self.get(session_id)
        if record is None:
            raise RuntimeError("Ledger upsert failed unexpectedly - no record created or found")
        return UpsertResult(record=record, is_new=is_new)

    def mark_verified(self, session_id: str) -> bool:
        """Mark a session as provider-confirmed.

        Only the first call changes the row. Returns True if it did.
        """
        result = self.db.execute(
            update(payment_record)
            .where(
                payment_record.c.session_id == session_id,
                payment_record.c.provider_verified.is_(False),
            )
            .values(
                status="completed",
                provider_verified=True,
                completed_at=datetime.datetime.now(datetime.timezone.utc),
            )
        )
        return result.rowcount == 1

    def get(self, session_id: str) -> PaymentRecordSnapshot | None:
        row = self.db.execute(
            select(payment_record).where(payment_record.c.session_id == session_id)
        ).first()
        return PaymentRecordSnapshot.from_row(row) if row else None

    def list_uncredited(
        self,
        user_id: str | None = None,
        limit: int = 500,
    ) -> list[PaymentRecordSnapshot]:
        """Records not yet credited, oldest first.

        Args:
            user_id: Restrict to one owner; None for a global sweep
            limit: Maximum rows returned
        """
        stmt = (
            select(payment_record)
            .where(
                payment_record.c.credited.is_(False),
                payment_record.c.status.in_(RECONCILABLE_STATUSES),
            )
            .order_by(payment_record.c.created_at, payment_record.c.session_id)
            .limit(limit)
        )
        if user_id is not None:
            stmt = stmt.where(payment_record.c.user_id == user_id)
        return [PaymentRecordSnapshot.from_row(row) for row in self.db.execute(stmt)]

    def credited_session_ids(self, session_ids: Iterable[str]) -> set[str]:
        """Subset of `session_ids` that already have a credited record."""
        ids = list(session_ids)
        if not ids:
            return set()
        rows = self.db.execute(
            select(payment_record.c.session_id).where(
                payment_record.c.session_id.in_(ids),
                payment_record.c.credited.is_(True),
            )
        )
        return {row[0] for row in rows}
