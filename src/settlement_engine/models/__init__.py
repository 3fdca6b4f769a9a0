"""ORM models."""

from settlement_engine.models.base import Base, TimestampMixin
from settlement_engine.models.payments import CurrencyTransaction, PaymentRecord, Profile

__all__ = [
    "Base",
    "TimestampMixin",
    "PaymentRecord",
    "Profile",
    "CurrencyTransaction",
]
