"""Configuration management for the settlement engine."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from dotenv import load_dotenv


@dataclass(frozen=True)
class Settings:
    """Application settings loaded from environment."""

    database_url: str
    provider: str
    stripe_secret_key: str
    redis_url: str
    auth_jwt_secret: str
    auth_jwt_audience: str
    rate_limit_window_seconds: int
    rate_limit_max_requests: int
    min_credit_amount: int
    max_credit_amount: int
    provider_max_attempts: int
    provider_backoff_seconds: float
    reconcile_lookback_days: int
    host: str
    port: int
    debug: bool
    log_level: str

    @property
    def HOST(self) -> str:
        """Alias for host."""
        return self.host

    @property
    def PORT(self) -> int:
        """Alias for port."""
        return self.port

    @property
    def DEBUG(self) -> bool:
        """Alias for debug."""
        return self.debug

    @classmethod
    def from_env(cls) -> Settings:
        """Load settings from environment variables."""
        load_dotenv()

        return cls(
            database_url=os.getenv("DATABASE_URL", "sqlite:///./settlement.db"),
            provider=os.getenv("PROVIDER", "stripe").lower(),
            stripe_secret_key=os.getenv("STRIPE_SECRET_KEY", ""),
            redis_url=os.getenv("REDIS_URL", ""),
            auth_jwt_secret=os.getenv("AUTH_JWT_SECRET", ""),
            auth_jwt_audience=os.getenv("AUTH_JWT_AUDIENCE", "authenticated"),
            rate_limit_window_seconds=int(os.getenv("RATE_LIMIT_WINDOW_SECONDS", "60")),
            rate_limit_max_requests=int(os.getenv("RATE_LIMIT_MAX_REQUESTS", "10")),
            min_credit_amount=int(os.getenv("MIN_CREDIT_AMOUNT", "1")),
            max_credit_amount=int(os.getenv("MAX_CREDIT_AMOUNT", "50000")),
            provider_max_attempts=int(os.getenv("PROVIDER_MAX_ATTEMPTS", "3")),
            provider_backoff_seconds=float(os.getenv("PROVIDER_BACKOFF_SECONDS", "2.0")),
            reconcile_lookback_days=int(os.getenv("RECONCILE_LOOKBACK_DAYS", "7")),
            host=os.getenv("HOST", "0.0.0.0"),
            port=int(os.getenv("PORT", "8000")),
            debug=os.getenv("DEBUG", "false").lower() == "true",
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings.from_env()
