"""
Matrix Notifications for Killmails.

Formats relevant kills and posts them to a Matrix room.
"""

from .formatter import MessageFormatter, Notification
from .matrix_client import MatrixClient, MatrixError, SendResult
from .sender import NotificationSender

__all__ = [
    "MatrixClient",
    "MatrixError",
    "MessageFormatter",
    "Notification",
    "NotificationSender",
    "SendResult",
]
