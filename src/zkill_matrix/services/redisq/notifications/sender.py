"""
Notification Delivery.

Posts formatted kill notifications to the configured Matrix room.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from ....core.logging import get_logger
from ...health import HealthCategory

if TYPE_CHECKING:
    from ...health import HealthMonitor
    from .formatter import Notification
    from .matrix_client import MatrixClient

logger = get_logger(__name__)

ROOM_MESSAGE_EVENT = "m.room.message"


class NotificationSender:
    """
    Delivers notifications to a single room.

    Failures are logged and the notification is dropped; there is no retry
    queue.
    """

    def __init__(self, client: MatrixClient, room_id: str, health: HealthMonitor) -> None:
        self._client = client
        self._room_id = room_id
        self._health = health

    @property
    def room_id(self) -> str:
        return self._room_id

    async def send(self, notification: Notification) -> bool:
        """
        Send a notification.

        Returns:
            True if the homeserver accepted the event
        """
        result = await self._client.send_event(
            self._room_id, ROOM_MESSAGE_EVENT, notification.to_content()
        )

        if not result.success:
            logger.error("Error posting to Matrix room %s: %s", self._room_id, result.error)
            return False

        self._health.touch(HealthCategory.DELIVERY)
        logger.debug("Posted event %s to %s", result.event_id, self._room_id)
        return True
