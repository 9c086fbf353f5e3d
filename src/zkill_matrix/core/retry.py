"""
zkill-matrix Retry Logic

Resilient HTTP request handling with exponential backoff for transient
ESI failures:
- Retries on 429 (rate limited) and 502/503/504 gateway errors
- Retries on network errors (httpx.RequestError)
- Waits for the Retry-After hint when ESI sends one, capped at max_wait
- Never retries other client errors (404 for a deleted character, etc.)
"""

from __future__ import annotations

from typing import Optional

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)
from tenacity.wait import wait_base

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_MIN_WAIT = 0.5  # seconds
DEFAULT_MAX_WAIT = 10.0  # seconds

# HTTP status codes that should trigger retry
RETRYABLE_STATUS_CODES = {
    429,  # Too Many Requests (rate limited)
    502,  # Bad Gateway
    503,  # Service Unavailable
    504,  # Gateway Timeout
}


class RetryableESIError(Exception):
    """
    Exception for retryable ESI errors.

    Raised for HTTP errors that should trigger retry logic. Preserves the
    status code and Retry-After hint for logging.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        retry_after: Optional[int] = None,
    ) -> None:
        self.message: str = message
        self.status_code: Optional[int] = status_code
        self.retry_after: Optional[int] = retry_after
        super().__init__(self.message)


def parse_retry_after(headers: httpx.Headers) -> Optional[int]:
    """
    Parse Retry-After header from an HTTP response.

    Only the delay-seconds form is handled.
    """
    try:
        value = headers.get("retry-after")
        if value:
            return int(value)
    except (ValueError, TypeError):
        pass
    return None


class wait_retry_after(wait_base):
    """
    Wait for the server's Retry-After hint when it sent one.

    The hint is capped at max_wait; attempts without a hint use the
    fallback strategy.
    """

    def __init__(self, fallback: wait_base, max_wait: float = DEFAULT_MAX_WAIT) -> None:
        self.fallback = fallback
        self.max_wait = max_wait

    def __call__(self, retry_state: RetryCallState) -> float:
        outcome = retry_state.outcome
        exc = outcome.exception() if outcome is not None and outcome.failed else None
        if isinstance(exc, RetryableESIError) and exc.retry_after is not None:
            return max(0.0, min(float(exc.retry_after), self.max_wait))
        return self.fallback(retry_state)


def esi_retrying(
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    min_wait: float = DEFAULT_MIN_WAIT,
    max_wait: float = DEFAULT_MAX_WAIT,
) -> AsyncRetrying:
    """
    Build a tenacity retry controller for one ESI request.

    Usage:
        async for attempt in esi_retrying():
            with attempt:
                return await do_request()
    """
    return AsyncRetrying(
        retry=retry_if_exception_type((RetryableESIError, httpx.RequestError)),
        stop=stop_after_attempt(max_attempts),
        wait=wait_retry_after(
            wait_exponential(multiplier=min_wait, min=min_wait, max=max_wait), max_wait
        ),
        reraise=True,
    )
