"""Bounded exponential backoff for remote calls.

``run_with_backoff`` runs a zero-argument callable until it succeeds or the
policy's ``max_elapsed_time`` budget is spent. Only ``TransportError`` is
retried; anything else propagates on the first attempt. The same helper
serves both the GitHub and the JIRA client.

Environment overrides:
  ISSUESYNC_RETRY_TIMEOUT   (max elapsed seconds, default 60)
  ISSUESYNC_RETRY_BASE      (initial delay in seconds, default 0.5)
  ISSUESYNC_RETRY_MAX_SLEEP (cap for a single delay in seconds, default 60)
"""

from __future__ import annotations

import os
import random
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TypeVar

from .errors import RetryExhausted, TransportError
from .logging import get_logger

T = TypeVar("T")

_JITTER = random.SystemRandom()


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


@dataclass
class RetryPolicy:
    max_elapsed_time: float = field(
        default_factory=lambda: _env_float("ISSUESYNC_RETRY_TIMEOUT", 60.0)
    )
    initial_interval: float = field(
        default_factory=lambda: _env_float("ISSUESYNC_RETRY_BASE", 0.5)
    )
    multiplier: float = 2.0
    max_interval: float = field(
        default_factory=lambda: _env_float("ISSUESYNC_RETRY_MAX_SLEEP", 60.0)
    )
    jitter: float = 0.25


def compute_delay(attempt: int, policy: RetryPolicy) -> float:
    """Delay before retry number ``attempt`` (1-based)."""
    backoff = policy.initial_interval * (policy.multiplier ** (attempt - 1))
    if policy.jitter > 0:
        backoff += _JITTER.uniform(0, policy.jitter)
    return max(0.0, min(backoff, policy.max_interval))


def run_with_backoff(
    fn: Callable[[], T],
    *,
    policy: RetryPolicy | None = None,
    operation: str = "request",
) -> T:
    policy = policy or RetryPolicy()
    logger = get_logger()
    start = time.monotonic()
    attempt = 0
    while True:
        attempt += 1
        try:
            return fn()
        except TransportError as exc:
            delay = compute_delay(attempt, policy)
            elapsed = time.monotonic() - start
            if elapsed + delay > policy.max_elapsed_time:
                raise RetryExhausted(
                    f"{operation} failed after {attempt} attempt(s): {exc}",
                    attempts=attempt,
                    status=exc.status,
                    response_text=exc.response_text,
                ) from exc
            logger.warning(
                f"Error performing {operation}; retrying in {round(delay * 1000)}ms: {exc}",
                operation=operation,
                attempt=attempt,
                delay_ms=round(delay * 1000),
            )
            time.sleep(delay)


__all__ = ["RetryPolicy", "compute_delay", "run_with_backoff"]
