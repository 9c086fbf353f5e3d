"""
zkill-matrix Async ESI Client

Async HTTP client for EVE Online's public ESI endpoints using httpx.
Only unauthenticated GETs are needed to resolve names for killmail ids.
"""

from __future__ import annotations

import json
from typing import Any, Optional, Union

import httpx

from .constants import ESI_BASE_URL, ESI_DATASOURCE
from .logging import get_logger
from .retry import (
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_MAX_WAIT,
    DEFAULT_MIN_WAIT,
    RETRYABLE_STATUS_CODES,
    RetryableESIError,
    esi_retrying,
    parse_retry_after,
)

logger = get_logger(__name__)


class AsyncESIError(Exception):
    """Exception raised for async ESI API errors."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
    ) -> None:
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Convert error to JSON-serializable dict."""
        result: dict[str, Any] = {"error": "esi_error", "message": self.message}
        if self.status_code:
            result["status_code"] = self.status_code
        return result


class AsyncESIClient:
    """
    Async HTTP client for ESI API requests.

    Must be used as an async context manager so the connection pool is
    closed on exit.

    Usage:
        async with AsyncESIClient(user_agent="bot/1.0 (me@example.com)") as client:
            system = await client.get("/universe/systems/30000142/")
    """

    def __init__(
        self,
        user_agent: str,
        base_url: str = ESI_BASE_URL,
        timeout: float = 30.0,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        min_wait: float = DEFAULT_MIN_WAIT,
        max_wait: float = DEFAULT_MAX_WAIT,
    ) -> None:
        """
        Initialize async ESI client.

        Args:
            user_agent: User-Agent header (ESI asks for a contact address)
            base_url: ESI base URL including version segment
            timeout: Request timeout in seconds
            max_attempts: Attempts per request for retryable failures (1 disables retry)
            min_wait: Minimum backoff between attempts in seconds
            max_wait: Maximum backoff between attempts in seconds
        """
        self.user_agent = user_agent
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.datasource = ESI_DATASOURCE
        self.max_attempts = max_attempts
        self.min_wait = min_wait
        self.max_wait = max_wait
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self) -> AsyncESIClient:
        """Enter async context and create httpx client."""
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout),
            headers={
                "Accept": "application/json",
                "User-Agent": self.user_agent,
            },
        )
        return self

    async def __aexit__(
        self,
        exc_type: Optional[type],
        exc_val: Optional[BaseException],
        exc_tb: Optional[Any],
    ) -> None:
        """Exit async context and close httpx client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    def build_url(self, endpoint: str) -> str:
        """Build the absolute URL for an endpoint path."""
        if not endpoint.startswith("/"):
            endpoint = "/" + endpoint
        return f"{self.base_url}{endpoint}"

    async def get(self, endpoint: str) -> Union[dict, list, int, float, None]:
        """
        Make GET request to ESI API, retrying transient failures.

        Args:
            endpoint: API endpoint path (e.g., "/characters/95000001/")

        Returns:
            Parsed JSON response

        Raises:
            AsyncESIError: On HTTP errors or request failures
        """
        try:
            async for attempt in esi_retrying(self.max_attempts, self.min_wait, self.max_wait):
                with attempt:
                    return await self._get_once(endpoint)
        except RetryableESIError as e:
            raise AsyncESIError(e.message, status_code=e.status_code) from e
        except httpx.RequestError as e:
            raise AsyncESIError(f"Network error: {e}") from e
        return None

    async def _get_once(self, endpoint: str) -> Union[dict, list, int, float, None]:
        """Execute GET request without retry."""
        if not self._client:
            raise AsyncESIError("Client not initialized. Use 'async with' context manager.")

        response = await self._client.get(
            self.build_url(endpoint), params={"datasource": self.datasource}
        )

        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            try:
                message = e.response.json().get("error", str(e))
            except (json.JSONDecodeError, ValueError, AttributeError):
                message = e.response.text or str(e)

            if e.response.status_code in RETRYABLE_STATUS_CODES:
                logger.debug("ESI %s returned %d, retrying", endpoint, e.response.status_code)
                raise RetryableESIError(
                    message,
                    status_code=e.response.status_code,
                    retry_after=parse_retry_after(e.response.headers),
                ) from e

            raise AsyncESIError(message, status_code=e.response.status_code) from e

        try:
            return response.json()
        except ValueError as e:
            raise AsyncESIError(f"Invalid JSON from {endpoint}: {e}") from e
