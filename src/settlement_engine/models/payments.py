"""Payment ledger, balance and audit models."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Integer,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from settlement_engine.models.base import Base, TimestampMixin


class PaymentRecord(Base, TimestampMixin):
    """One row per provider checkout session.

    `credited` only ever flips false -> true, inside the crediting
    transaction. Rows are never deleted.
    """

    __tablename__ = "payment_record"

    payment_record_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    session_id: Mapped[str] = mapped_column(String(200), nullable=False)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    amount_minor_units: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    credit_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    provider_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    credited: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    credited_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("session_id", name="payment_record_session_unique"),
        CheckConstraint("credit_amount > 0", name="payment_record_credit_positive"),
        CheckConstraint(
            "status IN ('pending', 'completed', 'failed')",
            name="payment_record_status_check",
        ),
    )


class Profile(Base):
    """A player's in-game currency balance."""

    __tablename__ = "profile"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    currency_balance: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    __table_args__ = (
        CheckConstraint("currency_balance >= 0", name="profile_balance_non_negative"),
    )


class CurrencyTransaction(Base, TimestampMixin):
    """Audit ledger entry describing a balance grant."""

    __tablename__ = "currency_transaction"

    currency_transaction_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    kind: Mapped[str] = mapped_column(String(32), nullable=False)
    reference: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(String, nullable=False, default="")
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="completed")

    __table_args__ = (
        UniqueConstraint("kind", "reference", name="currency_transaction_reference_unique"),
        CheckConstraint("amount > 0", name="currency_transaction_amount_positive"),
    )
