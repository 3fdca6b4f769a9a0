"""Bounded retry around provider calls.

Only transient provider errors are retried. Permanent errors and anything
unexpected propagate on the first attempt.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, TypeVar

from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from settlement_engine.payments.config import RetryConfig
from settlement_engine.payments.providers.base import TransientProviderError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryPolicy:
    """Fixed-backoff retry for transient provider failures.

    Attributes:
        config: Attempt count and backoff.
        sleep: Injected for tests so retries do not actually wait.
    """

    config: RetryConfig = field(default_factory=RetryConfig)
    sleep: Callable[[float], None] = time.sleep

    def call(self, fn: Callable[..., T], *args, **kwargs) -> T:
        """Call `fn`, retrying on TransientProviderError.

        Raises:
            TransientProviderError: All attempts failed transiently.
            PermanentProviderError: Raised immediately, never retried.
        """
        retrying = Retrying(
            stop=stop_after_attempt(self.config.max_attempts),
            wait=wait_fixed(self.config.backoff_seconds),
            retry=retry_if_exception_type(TransientProviderError),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            sleep=self.sleep,
            reraise=True,
        )
        return retrying(fn, *args, **kwargs)
