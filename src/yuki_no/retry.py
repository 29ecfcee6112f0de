"""Centralized retry / backoff helpers for GitHub REST calls.

``run_with_retries`` wraps a thunk with exponential backoff plus jitter.
Whether an exception is worth retrying, and how long to wait, is decided by
a classifier returning a sleep duration (or ``None`` to give up).

Policy mirrored from the Action's Octokit setup:
  - network errors and 5xx responses: retried
  - primary rate limit: retried once, never when the wait is an hour or more
  - secondary (abuse) rate limit: retried until attempts run out

Environment overrides:
  YUKI_NO_RETRY_ATTEMPTS (default 4, i.e. three retries)
  YUKI_NO_RETRY_BASE (seconds base, default 5)
  YUKI_NO_RETRY_MAX_SLEEP (cap on any single sleep)
"""

from __future__ import annotations

import os
import random
import re
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TypeVar

import requests

from .logging import get_logger

T = TypeVar("T")

HOURLY_LIMIT_SECONDS = 3600
PRIMARY_RATE_LIMIT_RETRIES = 1

TRANSIENT_TOKENS = (
    "rate limit",
    "abuse detection",
    "secondary rate",
)

_RE_RETRY_AFTER = re.compile(r"retry[-\s]after:?\s*(\d+)", re.IGNORECASE)
_RE_SECONDS_HINT = re.compile(r"wait\s*(\d+)\s*seconds", re.IGNORECASE)
_JITTER = random.SystemRandom()


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.environ.get(name, default))
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.environ.get(name, default))
    except ValueError:
        return default


@dataclass
class RetryConfig:
    attempts: int = field(default_factory=lambda: _env_int("YUKI_NO_RETRY_ATTEMPTS", 4))
    base_sleep: float = field(default_factory=lambda: _env_float("YUKI_NO_RETRY_BASE", 5.0))
    sleep: Callable[[float], None] = time.sleep


def extract_explicit_backoff(text: str) -> float | None:
    """Extract an explicit backoff (seconds) from error output.

    Supports patterns like:
      Retry-After: 12
      retry after 12
      wait 30 seconds
    """
    if not text:
        return None
    for pattern in (_RE_RETRY_AFTER, _RE_SECONDS_HINT):
        m = pattern.search(text)
        if m:
            val = float(m.group(1))
            return val if val > 0 else None
    return None


def is_transient(output: str) -> bool:
    out_lower = output.lower()
    return any(tok in out_lower for tok in TRANSIENT_TOKENS)


def is_secondary_rate_limit(output: str) -> bool:
    low = output.lower()
    return "secondary rate" in low or "abuse detection" in low


def compute_sleep(attempt: int, cfg: RetryConfig, explicit: float | None = None) -> float:
    backoff = cfg.base_sleep * (2 ** (attempt - 1)) + _JITTER.uniform(0, 0.25)
    sleep_for = explicit if explicit is not None else backoff
    cap = os.environ.get("YUKI_NO_RETRY_MAX_SLEEP")
    if cap:
        try:
            sleep_for = min(sleep_for, max(0.0, float(cap)))
        except ValueError:  # pragma: no cover
            return sleep_for
    return sleep_for


Classifier = Callable[[Exception, int, RetryConfig], "float | None"]


def classify_network_error(exc: Exception, attempt: int, cfg: RetryConfig) -> float | None:
    if isinstance(exc, (requests.ConnectionError, requests.Timeout)):
        return compute_sleep(attempt, cfg)
    return None


def run_with_retries(
    fn: Callable[[], T],
    *,
    cfg: RetryConfig | None = None,
    classify: Classifier = classify_network_error,
) -> T:
    cfg = cfg or RetryConfig()
    attempts = max(1, cfg.attempts)
    for attempt in range(1, attempts + 1):
        try:
            return fn()
        except Exception as exc:
            if attempt >= attempts:
                raise
            sleep_for = classify(exc, attempt, cfg)
            if sleep_for is None:
                raise
            get_logger().warning(
                f"retry :: transient error, attempt {attempt}/{attempts}, sleeping {sleep_for:.2f}s",
                error=str(exc),
            )
            cfg.sleep(sleep_for)
    raise RuntimeError("retry logic exited unexpectedly")  # pragma: no cover


__all__ = [
    "RetryConfig",
    "run_with_retries",
    "is_transient",
    "is_secondary_rate_limit",
    "extract_explicit_backoff",
    "compute_sleep",
    "classify_network_error",
    "HOURLY_LIMIT_SECONDS",
    "PRIMARY_RATE_LIMIT_RETRIES",
]
