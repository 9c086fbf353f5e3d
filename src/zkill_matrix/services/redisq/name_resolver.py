"""
Name Resolution for Killmail Notifications.

Resolves EVE Online ids to ESI records for display:
- Character, corporation and alliance ids → names
- Ship type ids → type names
- Solar system ids → system names

Successful lookups are cached for the life of the process. Failures return
a placeholder and are not cached, so the next reference tries again.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from ...core.async_client import AsyncESIError
from ...core.logging import get_logger
from ..health import HealthCategory

if TYPE_CHECKING:
    from ...core.async_client import AsyncESIClient
    from ..health import HealthMonitor

logger = get_logger(__name__)


class EntityKind(str, Enum):
    """Kinds of ids that appear in a killmail."""

    CHARACTER = "character"
    SHIP = "ship"
    SYSTEM = "system"
    CORPORATION = "corporation"
    ALLIANCE = "alliance"


# ESI endpoint per kind
ENDPOINTS: dict[EntityKind, str] = {
    EntityKind.CHARACTER: "/characters/{id}/",
    EntityKind.SHIP: "/universe/types/{id}/",
    EntityKind.SYSTEM: "/universe/systems/{id}/",
    EntityKind.CORPORATION: "/corporations/{id}/",
    EntityKind.ALLIANCE: "/alliances/{id}/",
}

# Display name used when an id is absent or cannot be resolved
PLACEHOLDER_NAMES: dict[EntityKind, str] = {
    EntityKind.CHARACTER: "Unknown",
    EntityKind.SHIP: "Unknown Ship",
    EntityKind.SYSTEM: "Unknown System",
    EntityKind.CORPORATION: "Unknown",
    EntityKind.ALLIANCE: "Unknown",
}


@dataclass(frozen=True)
class ReferenceRecord:
    """A resolved (or placeholder) ESI record."""

    kind: EntityKind
    entity_id: int | None
    name: str
    data: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)
    is_placeholder: bool = False

    @classmethod
    def placeholder(cls, kind: EntityKind, entity_id: int | None = None) -> ReferenceRecord:
        return cls(
            kind=kind,
            entity_id=entity_id,
            name=PLACEHOLDER_NAMES[kind],
            is_placeholder=True,
        )


@dataclass
class CacheStats:
    """Lookup counters for one entity kind."""

    size: int = 0
    hits: int = 0
    misses: int = 0
    failures: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "size": self.size,
            "hits": self.hits,
            "misses": self.misses,
            "failures": self.failures,
        }


class NameResolver:
    """
    Memoized ESI lookups, one cache per entity kind.

    Concurrent lookups of the same uncached id share a single in-flight
    request. Entries are never evicted.
    """

    def __init__(self, client: AsyncESIClient, health: HealthMonitor) -> None:
        """
        Initialize resolver.

        Args:
            client: Open ESI client used for cache misses
            health: Receives an externalCall touch on every successful fetch
        """
        self._client = client
        self._health = health
        self._caches: dict[EntityKind, dict[int, ReferenceRecord]] = {
            kind: {} for kind in EntityKind
        }
        self._inflight: dict[tuple[EntityKind, int], asyncio.Task[ReferenceRecord]] = {}
        self._stats: dict[EntityKind, CacheStats] = {kind: CacheStats() for kind in EntityKind}

    async def lookup(self, kind: EntityKind | str, entity_id: int | None) -> ReferenceRecord:
        """
        Resolve an id to its ESI record.

        Args:
            kind: Entity kind
            entity_id: EVE id, or None for entities ESI omits (NPCs)

        Returns:
            Cached or freshly fetched record; a placeholder on failure
        """
        kind = EntityKind(kind)
        if not entity_id:
            return ReferenceRecord.placeholder(kind)

        cached = self._caches[kind].get(entity_id)
        if cached is not None:
            self._stats[kind].hits += 1
            return cached

        key = (kind, entity_id)
        task = self._inflight.get(key)
        if task is None:
            self._stats[kind].misses += 1
            task = asyncio.ensure_future(self._fetch(kind, entity_id))
            self._inflight[key] = task
            task.add_done_callback(lambda _t: self._inflight.pop(key, None))
        else:
            logger.debug("Joining in-flight %s lookup for %d", kind.value, entity_id)

        return await task

    async def _fetch(self, kind: EntityKind, entity_id: int) -> ReferenceRecord:
        """Fetch from ESI, caching only successful results."""
        endpoint = ENDPOINTS[kind].format(id=entity_id)
        try:
            data = await self._client.get(endpoint)
        except AsyncESIError as e:
            self._stats[kind].failures += 1
            logger.warning("ESI error (%s): %s", endpoint, e.message)
            return ReferenceRecord.placeholder(kind, entity_id)

        if not isinstance(data, dict) or not isinstance(data.get("name"), str):
            self._stats[kind].failures += 1
            logger.warning("ESI returned no name for %s", endpoint)
            return ReferenceRecord.placeholder(kind, entity_id)

        self._health.touch(HealthCategory.EXTERNAL_CALL)

        record = ReferenceRecord(kind=kind, entity_id=entity_id, name=data["name"], data=data)
        self._caches[kind][entity_id] = record
        self._stats[kind].size = len(self._caches[kind])
        return record

    async def character(self, entity_id: int | None) -> ReferenceRecord:
        return await self.lookup(EntityKind.CHARACTER, entity_id)

    async def ship(self, entity_id: int | None) -> ReferenceRecord:
        return await self.lookup(EntityKind.SHIP, entity_id)

    async def system(self, entity_id: int | None) -> ReferenceRecord:
        return await self.lookup(EntityKind.SYSTEM, entity_id)

    async def corporation(self, entity_id: int | None) -> ReferenceRecord:
        return await self.lookup(EntityKind.CORPORATION, entity_id)

    async def alliance(self, entity_id: int | None) -> ReferenceRecord:
        return await self.lookup(EntityKind.ALLIANCE, entity_id)

    def is_cached(self, kind: EntityKind | str, entity_id: int) -> bool:
        return entity_id in self._caches[EntityKind(kind)]

    def stats(self) -> dict[str, dict[str, int]]:
        """Per-kind cache counters for status reporting."""
        return {kind.value: stats.to_dict() for kind, stats in self._stats.items()}
