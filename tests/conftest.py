"""Pytest fixtures for settlement engine tests."""

from __future__ import annotations

from collections.abc import Generator

import pytest
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from settlement_engine.database import build_engine, build_session_factory, create_schema
from settlement_engine.payments.config import RetryConfig, SettlementConfig
from settlement_engine.payments.providers.stub import StubCheckoutProvider
from settlement_engine.payments.retry import RetryPolicy
from settlement_engine.payments.settlement import Settlement


class RecordingSleep:
    """Stands in for time.sleep so retries do not wait."""

    def __init__(self) -> None:
        self.calls: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def engine(tmp_path) -> Generator[Engine, None, None]:
    """File-backed SQLite engine, so concurrent threads see one database."""
    engine = build_engine(f"sqlite:///{tmp_path / 'settlement.db'}")
    create_schema(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine: Engine) -> sessionmaker[Session]:
    """Session factory bound to the test engine."""
    return build_session_factory(engine)


@pytest.fixture
def db(session_factory: sessionmaker[Session]) -> Generator[Session, None, None]:
    """Database session for direct service tests."""
    with session_factory() as session:
        yield session
        session.rollback()


@pytest.fixture
def provider() -> StubCheckoutProvider:
    """In-memory checkout provider."""
    return StubCheckoutProvider()


@pytest.fixture
def sleeper() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def retry_policy(sleeper: RecordingSleep) -> RetryPolicy:
    """Default retry policy (3 attempts, 2s backoff) that never actually sleeps."""
    return RetryPolicy(RetryConfig(max_attempts=3, backoff_seconds=2.0), sleep=sleeper)


@pytest.fixture
def settlement_config() -> SettlementConfig:
    return SettlementConfig()


@pytest.fixture
def settlement(
    session_factory: sessionmaker[Session],
    provider: StubCheckoutProvider,
    settlement_config: SettlementConfig,
    retry_policy: RetryPolicy,
) -> Settlement:
    """Settlement facade over the stub provider and the test database."""
    return Settlement(session_factory, provider, settlement_config, retry=retry_policy)
