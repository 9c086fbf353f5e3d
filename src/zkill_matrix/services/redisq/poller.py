"""
RedisQ Poller Service.

Long-polls zKillboard's RedisQ endpoint and runs each kill through the
relevance → formatting → delivery pipeline, one kill at a time.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

import httpx

from ...core.constants import (
    BACKOFF_BASE_SECONDS,
    BACKOFF_MAX_SECONDS,
    IDLE_DELAY_SECONDS,
    REDISQ_URL,
)
from ...core.logging import get_logger
from ..health import HealthCategory
from .models import KillmailParseError, KillPackage

if TYPE_CHECKING:
    from ..health import HealthMonitor
    from .entity_filter import RelevanceFilter
    from .notifications.formatter import MessageFormatter
    from .notifications.sender import NotificationSender

logger = get_logger(__name__)

# Upstream bad gateway means RedisQ itself is in trouble; restart cleanly
FATAL_STATUS_CODES = {502}


class FeedErrorKind(str, Enum):
    """How the poll loop reacts to a failed poll."""

    TRANSIENT = "transient"  # Log, back off, poll again
    FATAL = "fatal"  # Stop and let the process supervisor restart us


class FeedError(Exception):
    """A failed RedisQ poll, classified where it happened."""

    def __init__(
        self,
        message: str,
        kind: FeedErrorKind = FeedErrorKind.TRANSIENT,
        status_code: int | None = None,
    ) -> None:
        self.message = message
        self.kind = kind
        self.status_code = status_code
        super().__init__(self.message)

    @property
    def is_fatal(self) -> bool:
        return self.kind == FeedErrorKind.FATAL


class PollerExit(str, Enum):
    """Why run() returned."""

    STOPPED = "stopped"
    FATAL = "fatal"


def _caused_by(exc: BaseException, exc_type: type[BaseException]) -> bool:
    """Walk the cause/context chain looking for exc_type."""
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        if isinstance(current, exc_type):
            return True
        seen.add(id(current))
        current = current.__cause__ or current.__context__
    return False


def classify_request_error(exc: httpx.RequestError) -> FeedError:
    """
    Classify a transport failure.

    Connection resets and servers that hang up without responding are
    fatal; everything else is transient.
    """
    if isinstance(exc, httpx.RemoteProtocolError):
        return FeedError(f"Server closed connection: {exc}", FeedErrorKind.FATAL)
    if _caused_by(exc, ConnectionResetError):
        return FeedError(f"Connection reset: {exc}", FeedErrorKind.FATAL)
    return FeedError(f"Network error: {exc!r}", FeedErrorKind.TRANSIENT)


def classify_status(status_code: int) -> FeedError:
    """Classify a non-success HTTP status from RedisQ."""
    kind = FeedErrorKind.FATAL if status_code in FATAL_STATUS_CODES else FeedErrorKind.TRANSIENT
    return FeedError(f"HTTP error! status: {status_code}", kind, status_code=status_code)


@dataclass
class BackoffPolicy:
    """
    Bounded exponential backoff between failed polls.

    A base of 0 retries immediately.
    """

    base_seconds: float = BACKOFF_BASE_SECONDS
    max_seconds: float = BACKOFF_MAX_SECONDS

    def delay(self, consecutive_errors: int) -> float:
        """Seconds to wait after the n-th consecutive error."""
        if consecutive_errors <= 0 or self.base_seconds <= 0:
            return 0.0
        return min(self.max_seconds, self.base_seconds * 2 ** (consecutive_errors - 1))


@dataclass
class PollerStats:
    """Counters for one poller run."""

    polls: int = 0
    kills_received: int = 0
    kills_malformed: int = 0
    kills_relevant: int = 0
    kills_delivered: int = 0
    kills_dropped: int = 0
    errors: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "polls": self.polls,
            "kills_received": self.kills_received,
            "kills_malformed": self.kills_malformed,
            "kills_relevant": self.kills_relevant,
            "kills_delivered": self.kills_delivered,
            "kills_dropped": self.kills_dropped,
            "errors": self.errors,
        }


@dataclass
class KillmailPoller:
    """
    RedisQ polling service for real-time killmails.

    Each kill is filtered, formatted and delivered before the next poll is
    issued, so ingestion never outruns delivery.
    """

    queue_id: str
    relevance: RelevanceFilter
    formatter: MessageFormatter
    sender: NotificationSender
    health: HealthMonitor
    user_agent: str = "zkill-matrix/1.0"
    redisq_url: str = REDISQ_URL
    idle_delay_seconds: float = IDLE_DELAY_SECONDS
    backoff: BackoffPolicy = field(default_factory=BackoffPolicy)

    # Injected for tests; created in run() when absent
    client: httpx.AsyncClient | None = field(default=None, repr=False)
    sleep: Callable[[float], Awaitable[Any]] = field(default=asyncio.sleep, repr=False)

    # Runtime state
    stats: PollerStats = field(default_factory=PollerStats)
    _running: bool = False
    _consecutive_errors: int = 0
    _waiter: asyncio.Future[Any] | None = field(default=None, repr=False)

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def consecutive_errors(self) -> int:
        return self._consecutive_errors

    def stop(self) -> None:
        """
        Ask the loop to exit.

        A held long-poll or a pending delay is cancelled at once; a kill
        already being processed is finished first.
        """
        self._running = False
        if self._waiter is not None and not self._waiter.done():
            self._waiter.cancel()

    async def _interruptible(self, awaitable: Awaitable[Any]) -> Any:
        """Await something stop() may cancel."""
        self._waiter = asyncio.ensure_future(awaitable)
        try:
            return await self._waiter
        finally:
            self._waiter = None

    def _create_client(self) -> httpx.AsyncClient:
        # follow_redirects required: /listen.php redirects to /object.php as of Aug 2025
        return httpx.AsyncClient(
            timeout=httpx.Timeout(
                connect=10.0,
                read=60.0,  # Long timeout for RedisQ long-poll
                write=10.0,
                pool=10.0,
            ),
            headers={
                "User-Agent": self.user_agent,
                "Accept": "application/json",
            },
            follow_redirects=True,
        )

    async def run(self) -> PollerExit:
        """
        Poll until stopped or a fatal feed error occurs.

        Returns:
            PollerExit.FATAL when the caller should exit non-zero
        """
        owns_client = self.client is None
        if self.client is None:
            self.client = self._create_client()

        logger.info("Starting RedisQ polling...")
        logger.info("Using queue ID: %s", self.queue_id)

        self._running = True
        try:
            return await self._poll_loop()
        finally:
            self._running = False
            if owns_client and self.client is not None:
                await self.client.aclose()
                self.client = None
            logger.info("RedisQ poller stopped (%s)", self.stats.to_dict())

    async def _poll_loop(self) -> PollerExit:
        while self._running:
            try:
                exit_reason = await self._poll_cycle()
            except asyncio.CancelledError:
                if self._running:
                    raise
                logger.info("Shutdown requested, abandoning in-flight poll")
                break
            if exit_reason is not None:
                return exit_reason

        return PollerExit.STOPPED

    async def _poll_cycle(self) -> PollerExit | None:
        """One poll plus whatever follows it; returns an exit reason to stop."""
        try:
            package = await self._interruptible(self.poll_once())
        except httpx.ReadTimeout:
            # Normal for long-poll, just retry
            logger.debug("RedisQ long-poll timed out, polling again")
            return None
        except FeedError as e:
            self.stats.errors += 1
            if e.is_fatal:
                logger.critical("Fatal connection error detected: %s. Stopping.", e.message)
                return PollerExit.FATAL

            self._consecutive_errors += 1
            delay = self.backoff.delay(self._consecutive_errors)
            logger.warning(
                "Error polling RedisQ (consecutive=%d): %s; retrying in %.1fs",
                self._consecutive_errors,
                e.message,
                delay,
            )
            if delay > 0:
                await self._interruptible(self.sleep(delay))
            return None

        self._consecutive_errors = 0

        if package is None:
            # Small delay to prevent hammering the API
            if self._running:
                await self._interruptible(self.sleep(self.idle_delay_seconds))
            return None

        try:
            await self.process_package(package)
        except Exception as e:
            self.stats.kills_dropped += 1
            logger.error("Error processing kill package: %s", e, exc_info=True)
        return None

    async def poll_once(self) -> dict[str, Any] | None:
        """
        Execute a single poll to RedisQ.

        Returns:
            The 'package' object, or None if no kill was waiting

        Raises:
            FeedError: Classified connectivity failure
            httpx.ReadTimeout: The long-poll timed out
        """
        if self.client is None:
            raise FeedError("Poller client not initialized")

        try:
            response = await self.client.get(self.redisq_url, params={"queueID": self.queue_id})
        except httpx.ReadTimeout:
            raise
        except httpx.RequestError as e:
            raise classify_request_error(e) from e

        if not response.is_success:
            raise classify_status(response.status_code)

        try:
            data = response.json()
        except ValueError as e:
            raise FeedError(f"Invalid JSON from RedisQ: {e}") from e

        if not isinstance(data, dict):
            raise FeedError("Unexpected RedisQ response shape")

        self.stats.polls += 1
        self.health.touch(HealthCategory.POLL)

        package = data.get("package")
        return package if isinstance(package, dict) else None

    async def process_package(self, package: dict[str, Any]) -> bool:
        """
        Run one kill through relevance, formatting and delivery.

        Returns:
            True if a notification was delivered
        """
        try:
            kill = KillPackage.from_redisq_package(package)
        except KillmailParseError as e:
            self.stats.kills_malformed += 1
            logger.warning("Invalid kill package received: %s", e)
            return False

        self.stats.kills_received += 1
        killmail = kill.killmail

        verdict = self.relevance.evaluate(killmail)
        if not verdict.is_relevant:
            logger.debug("Kill %d not relevant", killmail.killmail_id)
            return False

        self.stats.kills_relevant += 1
        logger.info("Relevant kill %d (reason=%s)", killmail.killmail_id, verdict.reason.value)

        notification = await self.formatter.format(killmail, verdict, kill.zkb)
        if notification is None:
            self.stats.kills_dropped += 1
            return False

        if not await self.sender.send(notification):
            self.stats.kills_dropped += 1
            return False

        self.stats.kills_delivered += 1
        return True
