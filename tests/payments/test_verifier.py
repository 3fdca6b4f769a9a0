"""Tests for SessionVerifier - provider-truth validation.

Tests verify:
1. Session id shape is checked before any provider call
2. Bounded retry on transient provider errors
3. Each partial or tampered session state is rejected with its own kind
4. Ownership mismatches are rejected and audited
"""

import datetime
import logging

import pytest

from settlement_engine.payments.config import VerificationConfig
from settlement_engine.payments.errors import Rejection, RejectionKind
from settlement_engine.payments.providers.base import PermanentProviderError
from settlement_engine.payments.providers.stub import StubCheckoutProvider
from settlement_engine.payments.retry import RetryPolicy
from settlement_engine.payments.services.verifier import SessionVerifier


@pytest.fixture
def verifier(provider: StubCheckoutProvider, retry_policy: RetryPolicy) -> SessionVerifier:
    return SessionVerifier(provider, VerificationConfig(), retry_policy)


def _kind(verifier: SessionVerifier, session_id, requester="user-1") -> RejectionKind:
    with pytest.raises(Rejection) as exc_info:
        verifier.verify(session_id, requester)
    return exc_info.value.kind


class TestShapeCheck:
    """Session id shape validation."""

    @pytest.mark.parametrize(
        "session_id",
        [
            "",
            "pi_1234567890",
            "cs_short",
            "cs_" + "a" * 198,
            None,
            12345,
            {"id": "cs_test_1234567890"},
        ],
    )
    def test_malformed_ids_rejected_without_provider_call(
        self, verifier: SessionVerifier, provider: StubCheckoutProvider, session_id
    ):
        """Malformed ids never reach the provider."""
        assert _kind(verifier, session_id) == RejectionKind.MALFORMED_INPUT
        assert sum(provider.fetch_calls.values()) == 0

    def test_boundary_lengths_accepted(self, verifier: SessionVerifier, provider: StubCheckoutProvider):
        """Ids of exactly 10 and 200 characters pass the shape check."""
        for session_id in ("cs_1234567", "cs_" + "b" * 197):
            provider.add_session("user-1", 10, session_id=session_id)
            assert verifier.verify(session_id, "user-1").session_id == session_id


class TestProviderTruth:
    """Fetching provider truth."""

    def test_unknown_session_is_malformed_input(self, verifier: SessionVerifier, provider):
        """A well-shaped id the provider does not know is treated as bad input."""
        assert _kind(verifier, "cs_test_does_not_exist") == RejectionKind.MALFORMED_INPUT
        assert provider.fetch_calls["cs_test_does_not_exist"] == 1

    def test_transient_errors_retried_then_unavailable(
        self, verifier: SessionVerifier, provider: StubCheckoutProvider, sleeper
    ):
        """Three transient failures exhaust the retry budget."""
        truth = provider.add_session("user-1", 100)
        provider.fail_next(truth.session_id, times=3)

        assert _kind(verifier, truth.session_id) == RejectionKind.PROVIDER_UNAVAILABLE
        assert provider.fetch_calls[truth.session_id] == 3
        assert sleeper.calls == [2.0, 2.0]

    def test_transient_error_then_success(self, verifier: SessionVerifier, provider: StubCheckoutProvider):
        """A transient failure followed by success verifies normally."""
        truth = provider.add_session("user-1", 100)
        provider.fail_next(truth.session_id, times=2)

        verified = verifier.verify(truth.session_id, "user-1")

        assert verified.credit_amount == 100
        assert provider.fetch_calls[truth.session_id] == 3

    def test_permanent_error_not_retried(self, verifier: SessionVerifier, provider: StubCheckoutProvider):
        """Permanent provider errors fail on the first attempt."""
        truth = provider.add_session("user-1", 100)
        provider.fail_next(truth.session_id, permanent=True)

        assert _kind(verifier, truth.session_id) == RejectionKind.MALFORMED_INPUT
        assert provider.fetch_calls[truth.session_id] == 1


class TestSessionState:
    """Payment and session state checks."""

    def test_unpaid_session_rejected(self, verifier: SessionVerifier, provider: StubCheckoutProvider):
        truth = provider.add_session("user-1", 100, paid=False)
        assert _kind(verifier, truth.session_id) == RejectionKind.PAYMENT_NOT_CAPTURED

    def test_paid_but_open_session_rejected(self, verifier: SessionVerifier, provider: StubCheckoutProvider):
        """Paid but not complete is a partial state and is rejected."""
        truth = provider.add_session("user-1", 100, paid=True, complete=False)
        assert _kind(verifier, truth.session_id) == RejectionKind.SESSION_INCOMPLETE

    def test_payment_checked_before_completion(self, verifier: SessionVerifier, provider):
        """Unpaid and open reports the payment problem first."""
        truth = provider.add_session("user-1", 100, paid=False, complete=False)
        assert _kind(verifier, truth.session_id) == RejectionKind.PAYMENT_NOT_CAPTURED


class TestMetadata:
    """Owner and credit amount metadata."""

    def test_missing_owner_rejected(self, verifier: SessionVerifier, provider: StubCheckoutProvider):
        truth = provider.add_session(None, 100)
        assert _kind(verifier, truth.session_id) == RejectionKind.INVALID_METADATA

    def test_missing_credit_amount_rejected(self, verifier: SessionVerifier, provider: StubCheckoutProvider):
        truth = provider.add_session("user-1", None)
        assert _kind(verifier, truth.session_id) == RejectionKind.INVALID_METADATA

    @pytest.mark.parametrize("raw", ["abc", "0", "-0", "1.5", "", "1e3", "²", "--5", "-"])
    def test_malformed_or_zero_credit_rejected(
        self, verifier: SessionVerifier, provider: StubCheckoutProvider, raw
    ):
        truth = provider.add_session("user-1", raw)
        assert _kind(verifier, truth.session_id) == RejectionKind.INVALID_METADATA

    def test_expected_amount_mismatch_rejected(self, verifier: SessionVerifier, provider):
        """Charged amount must match the amount recorded at checkout creation."""
        truth = provider.add_session(
            "user-1", 100, amount_total=99, extra_metadata={"expected_amount": 499}
        )
        assert _kind(verifier, truth.session_id) == RejectionKind.INVALID_METADATA

    def test_expected_amount_match_accepted(self, verifier: SessionVerifier, provider):
        truth = provider.add_session(
            "user-1", 100, amount_total=499, extra_metadata={"expected_amount": 499}
        )
        verified = verifier.verify(truth.session_id, "user-1")
        assert verified.charged_amount == 499


class TestBounds:
    """Credit amount bounds."""

    def test_ceiling_accepted(self, verifier: SessionVerifier, provider: StubCheckoutProvider):
        truth = provider.add_session("user-1", 50_000)
        assert verifier.verify(truth.session_id, "user-1").credit_amount == 50_000

    def test_above_ceiling_rejected(self, verifier: SessionVerifier, provider: StubCheckoutProvider):
        truth = provider.add_session("user-1", 50_001)
        assert _kind(verifier, truth.session_id) == RejectionKind.AMOUNT_OUT_OF_BOUNDS

    @pytest.mark.parametrize("raw", ["-5", "-1", " -50000 "])
    def test_negative_credit_out_of_bounds(
        self, verifier: SessionVerifier, provider: StubCheckoutProvider, raw
    ):
        """A negative amount parses and is rejected by the floor, not as bad metadata."""
        truth = provider.add_session("user-1", raw)
        assert _kind(verifier, truth.session_id) == RejectionKind.AMOUNT_OUT_OF_BOUNDS

    def test_explicit_plus_sign_accepted(self, verifier: SessionVerifier, provider: StubCheckoutProvider):
        truth = provider.add_session("user-1", "+25")
        assert verifier.verify(truth.session_id, "user-1").credit_amount == 25

    def test_configured_floor(self, provider: StubCheckoutProvider, retry_policy: RetryPolicy):
        verifier = SessionVerifier(provider, VerificationConfig(min_credit=10), retry_policy)
        truth = provider.add_session("user-1", 9)
        assert _kind(verifier, truth.session_id) == RejectionKind.AMOUNT_OUT_OF_BOUNDS

    def test_configured_ceiling(self, provider: StubCheckoutProvider, retry_policy: RetryPolicy):
        """The ceiling is configuration, not a constant."""
        verifier = SessionVerifier(provider, VerificationConfig(max_credit=1_000), retry_policy)
        truth = provider.add_session("user-1", 1_001)
        assert _kind(verifier, truth.session_id) == RejectionKind.AMOUNT_OUT_OF_BOUNDS

    def test_invalid_bounds_config(self):
        with pytest.raises(ValueError):
            VerificationConfig(min_credit=10, max_credit=5)


class TestOwnership:
    """Requester must own the session."""

    def test_other_users_session_rejected_and_audited(
        self, verifier: SessionVerifier, provider: StubCheckoutProvider, caplog
    ):
        truth = provider.add_session("victim", 100)

        with caplog.at_level(logging.WARNING, logger="settlement_engine.audit"):
            assert _kind(verifier, truth.session_id, requester="attacker") == (
                RejectionKind.OWNERSHIP_MISMATCH
            )

        audit = [r for r in caplog.records if r.name == "settlement_engine.audit"]
        assert len(audit) == 1
        assert "attacker" in audit[0].getMessage()

    def test_unattended_verification_takes_owner_from_metadata(
        self, verifier: SessionVerifier, provider: StubCheckoutProvider
    ):
        truth = provider.add_session("user-7", 100)
        assert verifier.verify(truth.session_id, None).user_id == "user-7"

    def test_public_message_hides_detail(self, verifier: SessionVerifier, provider: StubCheckoutProvider):
        truth = provider.add_session("victim", 100)
        with pytest.raises(Rejection) as exc_info:
            verifier.verify(truth.session_id, "attacker")
        assert "victim" not in exc_info.value.public_message
        assert "victim" in exc_info.value.detail


class TestListRecent:
    """Listing recent sessions goes through the same retry policy as fetches."""

    def test_transient_listing_errors_retried(
        self, verifier: SessionVerifier, provider: StubCheckoutProvider, sleeper
    ):
        truth = provider.add_session("user-1", 100, email="buyer@example.com")
        provider.fail_next_listing(times=2)

        sessions = verifier.list_recent(
            "buyer@example.com", datetime.datetime.now(datetime.timezone.utc) - datetime.timedelta(days=1)
        )

        assert [s.session_id for s in sessions] == [truth.session_id]
        assert provider.list_calls == 3
        assert sleeper.calls == [2.0, 2.0]

    def test_permanent_listing_error_raised(
        self, verifier: SessionVerifier, provider: StubCheckoutProvider
    ):
        provider.fail_next_listing(permanent=True)

        with pytest.raises(PermanentProviderError):
            verifier.list_recent("buyer@example.com", datetime.datetime.now(datetime.timezone.utc))
        assert provider.list_calls == 1


class TestEvaluate:
    """evaluate() applies post-fetch checks without fetching."""

    def test_evaluate_does_not_fetch(self, verifier: SessionVerifier, provider: StubCheckoutProvider):
        truth = provider.add_session("user-1", 250, amount_total=999)

        verified = verifier.evaluate(truth, "user-1")

        assert verified.credit_amount == 250
        assert verified.charged_amount == 999
        assert provider.fetch_calls[truth.session_id] == 0
