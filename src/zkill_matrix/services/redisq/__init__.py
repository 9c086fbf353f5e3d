"""
RedisQ Real-Time Kill Notification Service.

Streams killmails from zKillboard's RedisQ service, filters them against the
watchlist, and posts relevant kills to Matrix.
"""

from __future__ import annotations

__all__ = [
    # Models
    "Attacker",
    "Killmail",
    "KillPackage",
    "ValueEnvelope",
    "Victim",
    # Filtering
    "MatchReason",
    "RelevanceFilter",
    "RelevanceVerdict",
    # Name resolution
    "EntityKind",
    "NameResolver",
    "ReferenceRecord",
    # Poller
    "BackoffPolicy",
    "FeedError",
    "FeedErrorKind",
    "KillmailPoller",
    "PollerExit",
]


def __getattr__(name: str):
    """Lazy import components to avoid circular imports."""
    if name in ("Attacker", "Killmail", "KillPackage", "ValueEnvelope", "Victim"):
        from . import models

        return getattr(models, name)

    if name in ("MatchReason", "RelevanceFilter", "RelevanceVerdict"):
        from . import entity_filter

        return getattr(entity_filter, name)

    if name in ("EntityKind", "NameResolver", "ReferenceRecord"):
        from . import name_resolver

        return getattr(name_resolver, name)

    if name in ("BackoffPolicy", "FeedError", "FeedErrorKind", "KillmailPoller", "PollerExit"):
        from . import poller

        return getattr(poller, name)

    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
