"""Settlement Configuration Objects.

Explicit configuration for settlement. Nothing here reads the environment;
`SettlementConfig.from_settings` is the single bridge from `Settings`.

Pattern:
    settlement = Settlement(
        session_factory=factory,
        provider=StripeCheckoutProvider(api_key=...),
        config=SettlementConfig(
            verification=VerificationConfig(max_credit=50_000),
            retry=RetryConfig(max_attempts=3, backoff_seconds=2.0),
            rate_limit=RateLimitConfig(window_seconds=60, max_requests=10),
        ),
    )

Rules:
    1. Immutable after creation (frozen dataclasses).
    2. Every bound that gates a credit is explicit.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from settlement_engine.config import Settings


@dataclass(frozen=True)
class VerificationConfig:
    """
    Session verification policy.

    Attributes:
        session_id_prefix: Prefix every provider checkout session id carries.
        min_session_id_length: Shortest acceptable session id.
        max_session_id_length: Longest acceptable session id.
        min_credit: Smallest credit amount a session may grant.
        max_credit: Largest credit amount a session may grant. This is the
            ceiling above which a session is treated as tampered with.
        check_expected_amount: If True and the session metadata carries an
            `expected_amount`, it must equal the provider's charged amount.
    """

    session_id_prefix: str = "cs_"
    min_session_id_length: int = 10
    max_session_id_length: int = 200
    min_credit: int = 1
    max_credit: int = 50_000
    check_expected_amount: bool = True

    def __post_init__(self) -> None:
        """Validate configuration."""
        if self.min_credit < 1:
            raise ValueError("min_credit must be at least 1")
        if self.max_credit < self.min_credit:
            raise ValueError("max_credit must be >= min_credit")
        if self.min_session_id_length < 1:
            raise ValueError("min_session_id_length must be at least 1")
        if self.max_session_id_length < self.min_session_id_length:
            raise ValueError("max_session_id_length must be >= min_session_id_length")


@dataclass(frozen=True)
class RetryConfig:
    """
    Provider retry policy.

    Attributes:
        max_attempts: Total attempts including the first. Default 3.
        backoff_seconds: Fixed wait between attempts. Default 2.0.
    """

    max_attempts: int = 3
    backoff_seconds: float = 2.0

    def __post_init__(self) -> None:
        """Validate configuration."""
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.backoff_seconds < 0:
            raise ValueError("backoff_seconds cannot be negative")


@dataclass(frozen=True)
class RateLimitConfig:
    """
    Request gate configuration.

    Attributes:
        window_seconds: Sliding window length. Default 60.
        max_requests: Requests allowed per fingerprint per window. Default 10.
        key_prefix: Namespace for counter keys in the shared store.
    """

    window_seconds: int = 60
    max_requests: int = 10
    key_prefix: str = "settlement:gate"

    def __post_init__(self) -> None:
        """Validate configuration."""
        if self.window_seconds < 1:
            raise ValueError("window_seconds must be at least 1")
        if self.max_requests < 1:
            raise ValueError("max_requests must be at least 1")


@dataclass(frozen=True)
class ReconciliationConfig:
    """
    Reconciliation configuration.

    Attributes:
        lookback_days: How far back the provider->local pass lists sessions.
            Default 7.
        customer_limit: Max provider customers matched per billing email.
        sessions_per_customer: Max sessions listed per customer.
        sweep_batch_size: Max uncredited rows examined per global sweep.
    """

    lookback_days: int = 7
    customer_limit: int = 10
    sessions_per_customer: int = 20
    sweep_batch_size: int = 500

    def __post_init__(self) -> None:
        """Validate configuration."""
        if self.lookback_days < 1:
            raise ValueError("lookback_days must be at least 1")
        if self.sweep_batch_size < 1 or self.sweep_batch_size > 10_000:
            raise ValueError("sweep_batch_size must be between 1 and 10000")


@dataclass(frozen=True)
class SettlementConfig:
    """
    Complete settlement configuration.

    Attributes:
        verification: Session verification policy.
        retry: Provider retry policy.
        rate_limit: Request gate configuration.
        reconciliation: Reconciliation configuration.
    """

    verification: VerificationConfig = field(default_factory=VerificationConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    reconciliation: ReconciliationConfig = field(default_factory=ReconciliationConfig)

    @classmethod
    def from_settings(cls, settings: Settings) -> SettlementConfig:
        """Build configuration from application settings."""
        return cls(
            verification=VerificationConfig(
                min_credit=settings.min_credit_amount,
                max_credit=settings.max_credit_amount,
            ),
            retry=RetryConfig(
                max_attempts=settings.provider_max_attempts,
                backoff_seconds=settings.provider_backoff_seconds,
            ),
            rate_limit=RateLimitConfig(
                window_seconds=settings.rate_limit_window_seconds,
                max_requests=settings.rate_limit_max_requests,
            ),
            reconciliation=ReconciliationConfig(
                lookback_days=settings.reconcile_lookback_days,
            ),
        )
