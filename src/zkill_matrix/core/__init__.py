"""
zkill-matrix Core Module

Shared infrastructure: settings, logging, constants, and the ESI client.
"""

from .async_client import AsyncESIClient, AsyncESIError
from .config import BotSettings, MatrixSettings, SettingsError, load_settings
from .logging import configure_logging, get_logger

__all__ = [
    "AsyncESIClient",
    "AsyncESIError",
    "BotSettings",
    "MatrixSettings",
    "SettingsError",
    "configure_logging",
    "get_logger",
    "load_settings",
]
