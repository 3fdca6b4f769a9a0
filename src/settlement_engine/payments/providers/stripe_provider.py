"""Stripe Checkout provider adapter."""

from __future__ import annotations

import datetime
import logging
from typing import Any

import stripe

from settlement_engine.payments.providers.base import (
    PermanentProviderError,
    SessionTruth,
    TransientProviderError,
    metadata_from,
)

logger = logging.getLogger(__name__)


class StripeConfigError(Exception):
    pass


class StripeCheckoutProvider:
    """Reads checkout sessions from Stripe.

    The adapter never writes to Stripe. SDK errors are mapped onto the
    transient/permanent split so the caller's retry policy can decide.
    """

    provider_name = "stripe"

    def __init__(self, api_key: str):
        if not api_key:
            raise StripeConfigError("STRIPE_SECRET_KEY is not set")
        self._api_key = api_key

    def fetch_session(self, session_id: str) -> SessionTruth:
        session = self._call(stripe.checkout.Session.retrieve, session_id)
        return self._to_truth(session)

    def list_recent_sessions(
        self,
        email: str,
        since: datetime.datetime,
        customer_limit: int = 10,
        session_limit: int = 20,
    ) -> list[SessionTruth]:
        customers = self._call(stripe.Customer.list, email=email, limit=customer_limit)
        created_gte = int(since.timestamp())

        sessions: list[SessionTruth] = []
        for customer in customers.data:
            listed = self._call(
                stripe.checkout.Session.list,
                customer=customer.id,
                created={"gte": created_gte},
                limit=session_limit,
            )
            sessions.extend(self._to_truth(s) for s in listed.data)
        return sessions

    def _call(self, fn: Any, *args: Any, **kwargs: Any) -> Any:
        try:
            return fn(*args, api_key=self._api_key, **kwargs)
        except (stripe.APIConnectionError, stripe.RateLimitError) as e:
            logger.warning("Stripe unavailable: %s", e.user_message or type(e).__name__)
            raise TransientProviderError(str(e)) from e
        except stripe.APIError as e:
            logger.warning("Stripe API error: %s", e.user_message or type(e).__name__)
            raise TransientProviderError(str(e)) from e
        except (stripe.InvalidRequestError, stripe.AuthenticationError, stripe.PermissionError) as e:
            logger.warning("Stripe rejected request: %s", type(e).__name__)
            raise PermanentProviderError(str(e)) from e
        except stripe.StripeError as e:
            if e.http_status is not None and e.http_status >= 500:
                raise TransientProviderError(str(e)) from e
            raise PermanentProviderError(str(e)) from e

    @staticmethod
    def _to_truth(session: Any) -> SessionTruth:
        customer = getattr(session, "customer", None)
        if customer is not None and not isinstance(customer, str):
            customer = customer.id
        details = getattr(session, "customer_details", None)
        email = getattr(session, "customer_email", None) or getattr(details, "email", None)
        return SessionTruth(
            session_id=session.id,
            payment_captured=getattr(session, "payment_status", None) == "paid",
            session_closed=getattr(session, "status", None) == "complete",
            amount_total=getattr(session, "amount_total", None),
            metadata=metadata_from(getattr(session, "metadata", None)),
            created=getattr(session, "created", None),
            customer_email=email,
            customer_id=customer,
        )
