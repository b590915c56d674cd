from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, FrozenSet, Optional, TypeVar

import requests

T = TypeVar("T")

TRANSIENT_HTTP_STATUS: FrozenSet[int] = frozenset({429, 500, 502, 503, 504})


@dataclass(frozen=True)
class RetryConfig:
    """Backoff settings for calls to the sheet, webhook and posts API.

    Delays grow geometrically without jitter, so a run with the same
    failures always waits the same amount of time.
    """

    max_attempts: int = 3
    base_delay_s: float = 0.5
    max_delay_s: float = 8.0
    multiplier: float = 2.0

    def delay_after(self, failed_attempt: int) -> float:
        return min(self.max_delay_s, self.base_delay_s * (self.multiplier ** (failed_attempt - 1)))


class RetryableHttpStatus(Exception):
    def __init__(self, status_code: int, body: str = "") -> None:
        super().__init__(f"retryable http status: {status_code}")
        self.status_code = status_code
        self.body = body


def is_transient_error(exc: Exception) -> bool:
    """Timeouts, connection errors and 429/5xx responses."""
    if isinstance(exc, RetryableHttpStatus):
        return True
    return isinstance(exc, (requests.Timeout, requests.ConnectionError))


def is_rate_limited(exc: Exception) -> bool:
    # A 429 means the request was not processed, so even a POST is safe to repeat.
    return isinstance(exc, RetryableHttpStatus) and exc.status_code == 429


def retry_call(
    fn: Callable[[], T],
    *,
    cfg: RetryConfig,
    should_retry: Callable[[Exception], bool],
    on_retry: Optional[Callable[[int, Exception, float], None]] = None,
) -> T:
    """Run `fn`, repeating it while `should_retry` accepts the raised error.

    `on_retry(attempt, exc, delay_s)` is told about each failed attempt
    (1-based) before the pause. The last error propagates unchanged once
    `cfg.max_attempts` calls have failed.
    """

    if cfg.max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")

    for attempt in range(1, cfg.max_attempts + 1):
        try:
            return fn()
        except Exception as exc:
            if attempt == cfg.max_attempts or not should_retry(exc):
                raise
            delay_s = cfg.delay_after(attempt)
            if on_retry is not None:
                on_retry(attempt, exc, delay_s)
            time.sleep(delay_s)

    raise AssertionError("unreachable")
