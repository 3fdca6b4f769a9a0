"""Integration test fixtures: the HTTP app over a real SQLite database."""

import time
from collections.abc import AsyncGenerator

import jwt
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from settlement_engine.api.app import create_app
from settlement_engine.config import Settings
from settlement_engine.payments.config import RateLimitConfig, SettlementConfig
from settlement_engine.payments.settlement import Settlement
from tests.payments.conftest import test_data  # noqa: F401

JWT_SECRET = "test-jwt-secret-with-enough-bytes-for-hs256"
JWT_AUDIENCE = "authenticated"


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings for the app under test."""
    return Settings(
        database_url=f"sqlite:///{tmp_path / 'api.db'}",
        provider="stub",
        stripe_secret_key="",
        redis_url="",
        auth_jwt_secret=JWT_SECRET,
        auth_jwt_audience=JWT_AUDIENCE,
        rate_limit_window_seconds=60,
        rate_limit_max_requests=10,
        min_credit_amount=1,
        max_credit_amount=50_000,
        provider_max_attempts=3,
        provider_backoff_seconds=2.0,
        reconcile_lookback_days=7,
        host="127.0.0.1",
        port=8000,
        debug=False,
        log_level="INFO",
    )


@pytest.fixture
def api_settlement(session_factory, provider, retry_policy) -> Settlement:
    """Facade wired to the stub provider with a small rate limit."""
    config = SettlementConfig(rate_limit=RateLimitConfig(window_seconds=60, max_requests=10))
    return Settlement(session_factory, provider, config, retry=retry_policy)


@pytest.fixture
def app(settings: Settings, api_settlement: Settlement):
    return create_app(settings=settings, settlement=api_settlement)


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Create async HTTP client for API testing."""
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


def make_token(
    user_id: str | None,
    email: str | None = None,
    *,
    secret: str = JWT_SECRET,
    audience: str = JWT_AUDIENCE,
    expires_in: int = 3600,
) -> str:
    """Mint a bearer token the way the identity provider does."""
    now = int(time.time())
    claims: dict = {"aud": audience, "iat": now, "exp": now + expires_in}
    if user_id is not None:
        claims["sub"] = user_id
    if email is not None:
        claims["email"] = email
    return jwt.encode(claims, secret, algorithm="HS256")


def auth_headers(user_id: str | None, email: str | None = None, **kwargs) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token(user_id, email, **kwargs)}"}
