#!/usr/bin/env python3
"""
zkill-matrix Entry Point

Wires settings, the health endpoint and the RedisQ pipeline together.
Run with: python -m zkill_matrix [--config config.json]

Exit status 1 means a fatal feed error or bad configuration; the process
supervisor is expected to restart the bot.
"""

from __future__ import annotations

import argparse
import asyncio
import signal
import sys
from typing import Optional

import httpx

from . import __version__
from .core.async_client import AsyncESIClient
from .core.config import BotSettings, SettingsError, load_settings
from .core.logging import configure_logging, get_logger
from .services.health import HealthMonitor
from .services.health_server import HealthServer
from .services.redisq.entity_filter import RelevanceFilter
from .services.redisq.name_resolver import NameResolver
from .services.redisq.notifications.formatter import MessageFormatter
from .services.redisq.notifications.matrix_client import MatrixClient
from .services.redisq.notifications.sender import NotificationSender
from .services.redisq.poller import BackoffPolicy, KillmailPoller, PollerExit

logger = get_logger(__name__)


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="zkill-matrix",
        description="Post zKillboard kills involving watched entities to a Matrix room",
    )
    parser.add_argument(
        "--config",
        "-c",
        default=None,
        help="Path to JSON config file (default: $ZKILL_CONFIG or ./config.json)",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser.parse_args(argv)


SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)


def _install_signal_handlers(poller: KillmailPoller) -> None:
    """Stop the poller on SIGINT/SIGTERM; stop() also cancels a held long-poll."""
    loop = asyncio.get_running_loop()
    for sig in SHUTDOWN_SIGNALS:
        try:
            loop.add_signal_handler(sig, poller.stop)
        except (NotImplementedError, RuntimeError):
            # Not supported on this platform/loop; Ctrl-C still raises KeyboardInterrupt
            pass


def _remove_signal_handlers() -> None:
    loop = asyncio.get_running_loop()
    for sig in SHUTDOWN_SIGNALS:
        try:
            loop.remove_signal_handler(sig)
        except (NotImplementedError, RuntimeError):
            pass


async def run_bot(settings: BotSettings) -> int:
    """
    Build the pipeline and poll until stopped.

    Returns:
        Process exit status
    """
    health = HealthMonitor()
    health_server = HealthServer(health, settings.health_host, settings.health_port)
    matrix = MatrixClient(
        homeserver_url=settings.matrix.base_url,
        access_token=settings.matrix.access_token,
        user_agent=settings.user_agent,
    )

    try:
        health_server.start()
    except OSError as e:
        logger.error("Cannot start health endpoint on port %d: %s", settings.health_port, e)
        return 1

    try:
        async with AsyncESIClient(
            user_agent=settings.user_agent, base_url=settings.esi_base_url
        ) as esi, httpx.AsyncClient(
            timeout=httpx.Timeout(30.0),
            headers={"User-Agent": settings.user_agent},
            follow_redirects=True,
        ) as http:
            resolver = NameResolver(esi, health)
            poller = KillmailPoller(
                queue_id=settings.queue_id,
                relevance=RelevanceFilter(settings.watched_ids),
                formatter=MessageFormatter(resolver, matrix, http),
                sender=NotificationSender(matrix, settings.matrix.room_id, health),
                health=health,
                user_agent=settings.user_agent,
                redisq_url=settings.redisq_url,
                idle_delay_seconds=settings.idle_delay_seconds,
                backoff=BackoffPolicy(
                    base_seconds=settings.backoff_base_seconds,
                    max_seconds=settings.backoff_max_seconds,
                ),
            )
            _install_signal_handlers(poller)
            try:
                result = await poller.run()
            finally:
                _remove_signal_handlers()
            logger.info("Name cache: %s", resolver.stats())
    finally:
        health_server.stop()
        await matrix.close()

    return 1 if result == PollerExit.FATAL else 0


def main(argv: Optional[list[str]] = None) -> int:
    args = parse_args(argv)

    try:
        settings = load_settings(args.config)
    except SettingsError as e:
        print(str(e), file=sys.stderr)
        return 1

    configure_logging(settings.log_level_int, settings.log_json)

    logger.info("Starting zKillboard RedisQ listener...")
    if settings.watchlist:
        logger.info("Watching %d entities", len(settings.watchlist))
    else:
        logger.info("Watching all killmails")

    try:
        return asyncio.run(run_bot(settings))
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 0


if __name__ == "__main__":
    sys.exit(main())
