"""Retry helpers with exponential backoff and jitter for remote repository calls.

Usage:
    from utils.retry import RetryPolicy, retry, retry_call

    @retry(RetryPolicy(max_attempts=3, delay=0.5))
    def list_page():
        return agent.list_records(repo, collection, limit=100)

    page = retry_call(agent.list_records, repo, collection, 100, policy=policy)
"""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable
from dataclasses import dataclass
from functools import wraps
from typing import Any

from forum.errors import TransientRemoteError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    """Attempt ceiling and backoff shape.

    Args:
        max_attempts: Total attempts including the first call (default: 3)
        delay: Sleep before the second attempt in seconds (default: 0.5)
        backoff: Multiplier for the delay on each further attempt (default: 2.0)
        max_delay: Cap for a single sleep before jitter (default: 30.0)
        jitter: Extra random fraction of the delay added to each sleep (default: 0.25)

    """

    max_attempts: int = 3
    delay: float = 0.5
    backoff: float = 2.0
    max_delay: float = 30.0
    jitter: float = 0.25

    @classmethod
    def from_config(cls, config: dict | None) -> RetryPolicy:
        cfg = (config or {}).get("retry", {}) or {}
        return cls(
            max_attempts=max(1, int(cfg.get("max_attempts", cls.max_attempts))),
            delay=float(cfg.get("delay", cls.delay)),
            backoff=float(cfg.get("backoff", cls.backoff)),
            max_delay=float(cfg.get("max_delay", cls.max_delay)),
            jitter=float(cfg.get("jitter", cls.jitter)),
        )

    def sleep_for(self, attempt: int) -> float:
        """Seconds to wait after failed attempt number `attempt` (1-based)."""
        base = min(self.max_delay, self.delay * (self.backoff ** (attempt - 1)))
        return base + random.uniform(0, base * self.jitter)


def is_transient(exc: BaseException) -> bool:
    """Default predicate: only rate limits and server-side failures are retried."""
    return isinstance(exc, TransientRemoteError)


def retry_call(
    func: Callable[..., Any],
    *args: Any,
    policy: RetryPolicy | None = None,
    is_retryable: Callable[[BaseException], bool] = is_transient,
    sleep: Callable[[float], None] = time.sleep,
    **kwargs: Any,
) -> Any:
    """Call `func(*args, **kwargs)`, retrying failures that `is_retryable` accepts.

    Non-retryable failures propagate on the first occurrence. A retryable
    failure on the last allowed attempt propagates as-is.
    """
    policy = policy or RetryPolicy()
    name = getattr(func, "__name__", repr(func))
    attempt = 0

    while True:
        attempt += 1
        try:
            return func(*args, **kwargs)
        except Exception as e:
            if not is_retryable(e):
                raise

            if attempt >= policy.max_attempts:
                logger.error(f"Function {name} failed after {policy.max_attempts} attempts. Last error: {e}")
                raise

            wait = policy.sleep_for(attempt)
            logger.warning(f"Attempt {attempt}/{policy.max_attempts} failed for {name}: {e}. Retrying in {wait:.1f}s...")
            sleep(wait)


def retry(
    policy: RetryPolicy | None = None,
    is_retryable: Callable[[BaseException], bool] = is_transient,
) -> Callable:
    """Decorator form of `retry_call`.

    Example:
        @retry(RetryPolicy(max_attempts=5))
        def fetch_follows(actor):
            return agent.get_follows(actor, limit=100)

    """

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs) -> Any:
            return retry_call(func, *args, policy=policy, is_retryable=is_retryable, **kwargs)

        return wrapper

    return decorator
