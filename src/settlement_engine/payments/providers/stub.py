"""Stub checkout provider for local development and testing.

Sessions and customers live in memory. Failures can be queued per session
to exercise retry and unavailability paths.
"""

from __future__ import annotations

import datetime
import time
import uuid
from collections import defaultdict
from typing import Any

from settlement_engine.payments.providers.base import (
    PermanentProviderError,
    ProviderError,
    SessionTruth,
    TransientProviderError,
)


class StubCheckoutProvider:
    """In-memory checkout provider."""

    provider_name = "stub"

    def __init__(self) -> None:
        self._sessions: dict[str, SessionTruth] = {}
        self._customers: dict[str, str] = {}  # customer_id -> email
        self._failures: dict[str, list[ProviderError]] = defaultdict(list)
        self._listing_failures: list[ProviderError] = []
        self.fetch_calls: dict[str, int] = defaultdict(int)
        self.list_calls = 0

    def add_session(
        self,
        user_id: str | None,
        paw_dollars: int | str | None = 100,
        *,
        session_id: str | None = None,
        paid: bool = True,
        complete: bool = True,
        amount_total: int = 499,
        email: str | None = None,
        created: int | None = None,
        extra_metadata: dict[str, Any] | None = None,
    ) -> SessionTruth:
        """Register a checkout session and return its provider view."""
        session_id = session_id or f"cs_test_{uuid.uuid4().hex}"
        metadata: dict[str, str] = {}
        if user_id:
            metadata["user_id"] = user_id
        if paw_dollars is not None:
            metadata["paw_dollars"] = str(paw_dollars)
        for key, value in (extra_metadata or {}).items():
            metadata[key] = str(value)

        truth = SessionTruth(
            session_id=session_id,
            payment_captured=paid,
            session_closed=complete,
            amount_total=amount_total,
            metadata=metadata,
            created=created if created is not None else int(time.time()),
            customer_email=email,
            customer_id=self._customer_for(email) if email else None,
        )
        self._sessions[session_id] = truth
        return truth

    def fail_next(self, session_id: str, times: int = 1, permanent: bool = False) -> None:
        """Make the next `times` fetches of a session fail."""
        error_cls = PermanentProviderError if permanent else TransientProviderError
        for _ in range(times):
            self._failures[session_id].append(error_cls(f"stub failure for {session_id}"))

    def fail_next_listing(self, times: int = 1, permanent: bool = False) -> None:
        """Make the next `times` session listings fail."""
        error_cls = PermanentProviderError if permanent else TransientProviderError
        for _ in range(times):
            self._listing_failures.append(error_cls("stub listing failure"))

    def fetch_session(self, session_id: str) -> SessionTruth:
        self.fetch_calls[session_id] += 1
        if self._failures[session_id]:
            raise self._failures[session_id].pop(0)
        if session_id not in self._sessions:
            raise PermanentProviderError(f"No such checkout.session: {session_id}")
        return self._sessions[session_id]

    def list_recent_sessions(
        self,
        email: str,
        since: datetime.datetime,
        customer_limit: int = 10,
        session_limit: int = 20,
    ) -> list[SessionTruth]:
        self.list_calls += 1
        if self._listing_failures:
            raise self._listing_failures.pop(0)
        customer_ids = [cid for cid, e in self._customers.items() if e == email][:customer_limit]
        since_ts = int(since.timestamp())
        results: list[SessionTruth] = []
        for customer_id in customer_ids:
            owned = [
                s
                for s in self._sessions.values()
                if s.customer_id == customer_id and (s.created or 0) >= since_ts
            ]
            results.extend(owned[:session_limit])
        return results

    def _customer_for(self, email: str) -> str:
        for customer_id, known in self._customers.items():
            if known == email:
                return customer_id
        customer_id = f"cus_stub_{uuid.uuid4().hex[:12]}"
        self._customers[customer_id] = email
        return customer_id
