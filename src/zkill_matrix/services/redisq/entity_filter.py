"""
Entity-Aware Kill Filtering.

Decides whether a kill involves a watched corporation or alliance, and on
which side.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import Killmail


class MatchReason(str, Enum):
    """Why a kill was considered relevant."""

    ALL = "all"  # Empty watchlist: everything matches
    VICTIM = "victim"  # Watched entity lost a ship
    ATTACKER = "attacker"  # Watched entity got the kill
    NONE = "none"


@dataclass(frozen=True)
class RelevanceVerdict:
    """Result of checking a kill against the watchlist."""

    is_relevant: bool
    reason: MatchReason

    @property
    def is_kill(self) -> bool:
        """From the watched side's perspective: True for a kill, False for a loss."""
        return self.reason == MatchReason.ATTACKER

    def to_dict(self) -> dict:
        """Convert to JSON-serializable dict."""
        return {"is_relevant": self.is_relevant, "reason": self.reason.value}


def _involves(
    watchlist: frozenset[int], corporation_id: int | None, alliance_id: int | None
) -> bool:
    if corporation_id is not None and corporation_id in watchlist:
        return True
    return alliance_id is not None and alliance_id in watchlist


def evaluate(killmail: Killmail, watchlist: frozenset[int]) -> RelevanceVerdict:
    """
    Check a kill against watched entity ids.

    First match wins: empty watchlist, then victim, then any attacker.

    Args:
        killmail: The kill to check
        watchlist: Watched corporation/alliance ids (empty = all kills)

    Returns:
        RelevanceVerdict with the matching reason
    """
    if not watchlist:
        return RelevanceVerdict(True, MatchReason.ALL)

    victim = killmail.victim
    if _involves(watchlist, victim.corporation_id, victim.alliance_id):
        return RelevanceVerdict(True, MatchReason.VICTIM)

    if any(_involves(watchlist, a.corporation_id, a.alliance_id) for a in killmail.attackers):
        return RelevanceVerdict(True, MatchReason.ATTACKER)

    return RelevanceVerdict(False, MatchReason.NONE)


class RelevanceFilter:
    """
    Holds the startup watchlist and evaluates kills against it.

    The watchlist is frozen at construction; there is no refresh.
    """

    def __init__(self, watched_ids: Iterable[int] = ()) -> None:
        self._watchlist = frozenset(int(i) for i in watched_ids)

    @property
    def watchlist(self) -> frozenset[int]:
        return self._watchlist

    @property
    def is_active(self) -> bool:
        """True when a watchlist restricts which kills are relevant."""
        return bool(self._watchlist)

    def evaluate(self, killmail: Killmail) -> RelevanceVerdict:
        return evaluate(killmail, self._watchlist)
