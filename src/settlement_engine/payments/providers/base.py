"""Base protocol and types for checkout providers.

All provider adapters must implement the CheckoutProvider protocol.
"""

from __future__ import annotations

import datetime
from dataclasses import dataclass, field
from typing import Any, Protocol


@dataclass(frozen=True)
class SessionTruth:
    """The provider's authoritative view of a checkout session.

    Metadata values are kept as the provider returned them (strings for
    Stripe); the verifier parses them.
    """

    session_id: str
    payment_captured: bool
    session_closed: bool
    amount_total: int | None = None  # minor units
    metadata: dict[str, str] = field(default_factory=dict)
    created: int | None = None  # epoch seconds
    customer_email: str | None = None
    customer_id: str | None = None

    @property
    def created_at(self) -> datetime.datetime | None:
        if self.created is None:
            return None
        return datetime.datetime.fromtimestamp(self.created, tz=datetime.timezone.utc)


class ProviderError(Exception):
    """Base class for provider failures."""


class TransientProviderError(ProviderError):
    """Network, rate limit or provider-side failure. Safe to retry."""


class PermanentProviderError(ProviderError):
    """Unknown session, bad credentials or rejected request. Not retried."""


class CheckoutProvider(Protocol):
    """Protocol for checkout provider adapters.

    Adapters translate provider SDK errors into TransientProviderError or
    PermanentProviderError. Retrying is the caller's job.
    """

    provider_name: str

    def fetch_session(self, session_id: str) -> SessionTruth:
        """Fetch a single checkout session.

        Raises:
            TransientProviderError: Provider unreachable or throttled.
            PermanentProviderError: Session unknown or request rejected.
        """
        ...

    def list_recent_sessions(
        self,
        email: str,
        since: datetime.datetime,
        customer_limit: int = 10,
        session_limit: int = 20,
    ) -> list[SessionTruth]:
        """List checkout sessions created since `since` for customers
        whose billing email is `email`.

        Args:
            email: Billing email to match provider customers on.
            since: Lower bound on session creation time.
            customer_limit: Max customers matched.
            session_limit: Max sessions listed per customer.
        """
        ...


def metadata_from(raw: Any) -> dict[str, str]:
    """Normalize provider metadata into a plain str->str dict."""
    if not raw:
        return {}
    if hasattr(raw, "to_dict"):
        raw = raw.to_dict()
    return {str(k): str(v) for k, v in dict(raw).items() if v is not None}
