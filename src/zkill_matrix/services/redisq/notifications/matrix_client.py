"""
Matrix Client-Server API HTTP Client.

Uploads media and sends room events to a Matrix homeserver. Sends are not
retried: delivery is best-effort and at-most-once.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from urllib.parse import quote

import httpx

from ....core.logging import get_logger

logger = get_logger(__name__)


class MatrixError(Exception):
    """Raised when the homeserver rejects a request or cannot be reached."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


@dataclass
class SendResult:
    """Result of a room event send attempt."""

    success: bool
    status_code: int | None = None
    event_id: str | None = None
    error: str | None = None

    @property
    def is_rate_limited(self) -> bool:
        """Check if this result indicates rate limiting."""
        return self.status_code == 429


@dataclass
class MatrixClient:
    """
    HTTP client for a Matrix homeserver.

    Authenticates every request with the bot's access token.
    """

    homeserver_url: str
    access_token: str
    user_agent: str | None = None
    timeout: float = 30.0

    # Metrics
    _total_sent: int = 0
    _total_failed: int = 0
    _last_success: datetime | None = None
    _last_failure: datetime | None = None

    # HTTP client
    _client: httpx.AsyncClient | None = field(default=None, repr=False)

    def __post_init__(self) -> None:
        self.homeserver_url = self.homeserver_url.rstrip("/")

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            headers = {"Authorization": f"Bearer {self.access_token}"}
            if self.user_agent:
                headers["User-Agent"] = self.user_agent
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(self.timeout), headers=headers)
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def upload_content(self, data: bytes, content_type: str, filename: str) -> str:
        """
        Upload media to the homeserver content repository.

        Args:
            data: Raw file bytes
            content_type: MIME type (e.g., image/png)
            filename: Suggested file name

        Returns:
            mxc:// content URI

        Raises:
            MatrixError: On HTTP or network failure
        """
        client = await self._get_client()
        url = f"{self.homeserver_url}/_matrix/media/v3/upload"

        try:
            response = await client.post(
                url,
                params={"filename": filename},
                content=data,
                headers={"Content-Type": content_type},
            )
        except httpx.RequestError as e:
            raise MatrixError(f"Upload request error: {e}") from e

        if response.status_code != 200:
            raise MatrixError(
                f"Upload failed: HTTP {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )

        try:
            content_uri = response.json()["content_uri"]
        except (ValueError, KeyError, TypeError) as e:
            raise MatrixError(f"Upload response missing content_uri: {e!r}") from e

        logger.debug("Uploaded %s (%d bytes) as %s", filename, len(data), content_uri)
        return content_uri

    async def send_event(
        self, room_id: str, event_type: str, content: dict[str, Any]
    ) -> SendResult:
        """
        Send an event to a room.

        Args:
            room_id: Target room (e.g., !abc:matrix.org)
            event_type: Event type (e.g., m.room.message)
            content: Event content

        Returns:
            SendResult with success status and event id
        """
        client = await self._get_client()
        txn_id = uuid.uuid4().hex
        url = (
            f"{self.homeserver_url}/_matrix/client/v3/rooms/{quote(room_id, safe='')}"
            f"/send/{quote(event_type, safe='')}/{txn_id}"
        )

        try:
            response = await client.put(url, json=content)
        except httpx.RequestError as e:
            self._record_failure()
            return SendResult(success=False, error=f"Request error: {e}")

        if response.status_code == 200:
            self._total_sent += 1
            self._last_success = datetime.now()
            try:
                event_id = response.json().get("event_id")
            except ValueError:
                event_id = None
            return SendResult(success=True, status_code=200, event_id=event_id)

        self._record_failure()
        return SendResult(
            success=False,
            status_code=response.status_code,
            error=f"HTTP {response.status_code}: {response.text[:200]}",
        )

    def _record_failure(self) -> None:
        """Record a failed send attempt."""
        self._total_failed += 1
        self._last_failure = datetime.now()

    def get_metrics(self) -> dict[str, Any]:
        """Get client metrics for status reporting."""
        return {
            "total_sent": self._total_sent,
            "total_failed": self._total_failed,
            "last_success": self._last_success.isoformat() if self._last_success else None,
            "last_failure": self._last_failure.isoformat() if self._last_failure else None,
        }
