"""
RedisQ Data Models.

Immutable killmail records parsed from RedisQ packages, plus the zKillboard
value envelope that accompanies each kill.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


class KillmailParseError(ValueError):
    """Raised when a RedisQ package does not contain a usable killmail."""


def _optional_id(value: Any) -> int | None:
    """ESI omits ids for NPCs; treat missing and zero as absent."""
    if value in (None, 0, ""):
        return None
    return int(value)


def parse_kill_time(value: str) -> datetime:
    """
    Parse an ESI timestamp.

    ESI returns ISO format with a Z suffix: 2024-01-15T12:34:56Z
    """
    dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


@dataclass(frozen=True)
class Victim:
    """The pilot (or structure) that was destroyed."""

    character_id: int | None
    corporation_id: int | None
    alliance_id: int | None
    ship_type_id: int | None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Victim:
        return cls(
            character_id=_optional_id(data.get("character_id")),
            corporation_id=_optional_id(data.get("corporation_id")),
            alliance_id=_optional_id(data.get("alliance_id")),
            ship_type_id=_optional_id(data.get("ship_type_id")),
        )


@dataclass(frozen=True)
class Attacker:
    """One participant on the killing side."""

    character_id: int | None
    corporation_id: int | None
    alliance_id: int | None
    ship_type_id: int | None
    damage_done: int = 0
    final_blow: bool = False

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Attacker:
        return cls(
            character_id=_optional_id(data.get("character_id")),
            corporation_id=_optional_id(data.get("corporation_id")),
            alliance_id=_optional_id(data.get("alliance_id")),
            ship_type_id=_optional_id(data.get("ship_type_id")),
            damage_done=int(data.get("damage_done") or 0),
            final_blow=bool(data.get("final_blow", False)),
        )


@dataclass(frozen=True)
class Killmail:
    """
    A single combat-death event.

    Attackers keep the order ESI reports them in; tie-breaks when picking
    the top-damage attacker or the dominant ship depend on it.
    """

    killmail_id: int
    killmail_time: datetime
    solar_system_id: int | None
    victim: Victim
    attackers: tuple[Attacker, ...] = ()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Killmail:
        """
        Create Killmail from the ESI-shaped dict in a RedisQ package.

        Raises:
            KillmailParseError: If required fields are missing or malformed
        """
        try:
            return cls(
                killmail_id=int(data["killmail_id"]),
                killmail_time=parse_kill_time(data["killmail_time"]),
                solar_system_id=_optional_id(data.get("solar_system_id")),
                victim=Victim.from_dict(data.get("victim") or {}),
                attackers=tuple(Attacker.from_dict(a) for a in data.get("attackers") or []),
            )
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise KillmailParseError(f"Malformed killmail: {e!r}") from e


@dataclass(frozen=True)
class ValueEnvelope:
    """zKillboard metadata attached to a kill (estimated value and flags)."""

    total_value: float = 0.0
    hash: str = ""
    points: int = 0
    npc: bool = False
    solo: bool = False
    awox: bool = False

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> ValueEnvelope:
        if not data:
            return cls()
        return cls(
            total_value=float(data.get("totalValue") or 0.0),
            hash=data.get("hash", ""),
            points=int(data.get("points") or 0),
            npc=bool(data.get("npc", False)),
            solo=bool(data.get("solo", False)),
            awox=bool(data.get("awox", False)),
        )


@dataclass(frozen=True)
class KillPackage:
    """A killmail with its value envelope, as delivered by RedisQ."""

    killmail: Killmail
    zkb: ValueEnvelope = field(default_factory=ValueEnvelope)

    @classmethod
    def from_redisq_package(cls, package: dict[str, Any]) -> KillPackage:
        """
        Create KillPackage from the 'package' object of a RedisQ response.

        Raises:
            KillmailParseError: If the package has no killmail object
        """
        killmail = package.get("killmail")
        if not isinstance(killmail, dict):
            raise KillmailParseError("Package has no killmail object")
        try:
            zkb = ValueEnvelope.from_dict(package.get("zkb"))
        except (TypeError, ValueError) as e:
            raise KillmailParseError(f"Malformed zkb envelope: {e!r}") from e
        return cls(killmail=Killmail.from_dict(killmail), zkb=zkb)
