"""Atomic Creditor - Exactly-once balance credit per session.

The `credited` flag flip, the balance increase and the audit entry happen
in one transaction. The flag flip is a compare-and-swap on
`credited = false`, so of any number of concurrent callers exactly one sees
a changed row and performs the credit.
"""

from __future__ import annotations

import datetime
import logging
from dataclasses import dataclass

from sqlalchemy import insert, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from settlement_engine.database import insert_ignoring_conflict
from settlement_engine.models import CurrencyTransaction, PaymentRecord, Profile
from settlement_engine.payments.errors import StorageFailure

logger = logging.getLogger(__name__)

payment_record = PaymentRecord.__table__
profile = Profile.__table__
currency_transaction = CurrencyTransaction.__table__

CREDIT_KIND = "payment_credit"


@dataclass(frozen=True)
class CreditResult:
    """Result of a credit attempt.

    `credited=False` means the session had already been credited; the
    balance is unchanged and `new_balance` is the current balance.
    """

    credited: bool
    new_balance: int

    @property
    def already_processed(self) -> bool:
        return not self.credited


class AtomicCreditor:
    """Credits a verified session's amount to its owner.

    Must be called inside a transaction the caller commits. On StorageFailure
    the caller's transaction must be rolled back.
    """

    def __init__(self, db: Session):
        self.db = db

    def credit_if_not_credited(
        self,
        session_id: str,
        user_id: str,
        credit_amount: int,
    ) -> CreditResult:
        """Credit `credit_amount` to `user_id` unless already credited.

        Raises:
            StorageFailure: No record for the session, or a database error
        """
        try:
            return self._credit(session_id, user_id, credit_amount)
        except SQLAlchemyError as e:
            logger.exception("Credit transaction failed for session %s", session_id)
            raise StorageFailure(f"credit failed for {session_id}") from e

    def get_balance(self, user_id: str) -> int:
        balance = self.db.execute(
            select(profile.c.currency_balance).where(profile.c.user_id == user_id)
        ).scalar()
        return balance or 0

    def _credit(self, session_id: str, user_id: str, credit_amount: int) -> CreditResult:
        now = datetime.datetime.now(datetime.timezone.utc)

        swapped = self.db.execute(
            update(payment_record)
            .where(
                payment_record.c.session_id == session_id,
                payment_record.c.user_id == user_id,
                payment_record.c.credited.is_(False),
            )
            .values(credited=True, credited_at=now)
        ).rowcount

        if swapped != 1:
            existing = self.db.execute(
                select(payment_record.c.user_id, payment_record.c.credited).where(
                    payment_record.c.session_id == session_id
                )
            ).first()
            if existing is None:
                raise StorageFailure(f"no payment record for session {session_id}")
            if existing.user_id != user_id:
                raise StorageFailure(f"payment record for session {session_id} has another owner")
            logger.info("Session %s already credited", session_id)
            return CreditResult(credited=False, new_balance=self.get_balance(user_id))

        self._add_to_balance(user_id, credit_amount, now)
        self.db.execute(
            insert(currency_transaction).values(
                user_id=user_id,
                amount=credit_amount,
                kind=CREDIT_KIND,
                reference=session_id,
                description=f"Purchased {credit_amount} Paw Dollars",
                status="completed",
            )
        )

        new_balance = self.get_balance(user_id)
        logger.info(
            "Credited %d to user %s for session %s (balance %d)",
            credit_amount,
            user_id,
            session_id,
            new_balance,
        )
        return CreditResult(credited=True, new_balance=new_balance)

    def _add_to_balance(self, user_id: str, amount: int, now: datetime.datetime) -> None:
        increment = (
            update(profile)
            .where(profile.c.user_id == user_id)
            .values(currency_balance=profile.c.currency_balance + amount, updated_at=now)
        )
        if self.db.execute(increment).rowcount == 1:
            return
        created = insert_ignoring_conflict(
            self.db,
            profile,
            {"user_id": user_id, "currency_balance": amount, "updated_at": now},
            ["user_id"],
        )
        if not created:
            self.db.execute(increment)
