"""
Matrix Message Formatter.

Formats kill notifications as Matrix m.text events carrying a Markdown-style
plain body and an HTML card.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from html import escape
from typing import TYPE_CHECKING, Any

import httpx

from ....core.constants import (
    IMAGE_SERVER_URL,
    KILL_COLOR,
    KILL_EMOJI,
    LOSS_COLOR,
    LOSS_EMOJI,
    ZKILLBOARD_URL,
)
from ....core.logging import get_logger
from .matrix_client import MatrixError

if TYPE_CHECKING:
    from ..entity_filter import RelevanceVerdict
    from ..models import Attacker, Killmail, ValueEnvelope
    from ..name_resolver import NameResolver
    from .matrix_client import MatrixClient

logger = get_logger(__name__)

HTML_FORMAT = "org.matrix.custom.html"
ICON_SIZE = 128


@dataclass(frozen=True)
class Notification:
    """Content of an m.room.message event."""

    body: str
    formatted_body: str
    msgtype: str = "m.text"
    format: str = HTML_FORMAT

    def to_content(self) -> dict[str, Any]:
        return {
            "msgtype": self.msgtype,
            "body": self.body,
            "format": self.format,
            "formatted_body": self.formatted_body,
        }


# =============================================================================
# Attacker selection
# =============================================================================


def find_final_blow(attackers: Sequence[Attacker]) -> Attacker | None:
    """The first attacker flagged with the final blow, if any."""
    return next((a for a in attackers if a.final_blow), None)


def find_top_damage(attackers: Sequence[Attacker]) -> Attacker | None:
    """
    The attacker with the strictly greatest damage.

    Ties go to whoever appears first in the attacker list.
    """
    top: Attacker | None = None
    for attacker in attackers:
        if top is None or attacker.damage_done > top.damage_done:
            top = attacker
    return top


def most_used_ship(attackers: Sequence[Attacker]) -> tuple[int | None, int] | None:
    """
    The most common attacker ship type and how many attackers flew it.

    Ties go to the ship type encountered first.
    """
    counts: dict[int | None, int] = {}
    for attacker in attackers:
        counts[attacker.ship_type_id] = counts.get(attacker.ship_type_id, 0) + 1

    best: tuple[int | None, int] | None = None
    for ship_type_id, count in counts.items():
        if best is None or count > best[1]:
            best = (ship_type_id, count)
    return best


# =============================================================================
# Value formatting
# =============================================================================


def format_isk(value: float) -> str:
    """
    Format ISK with grouped digits and no fractional part.

    Args:
        value: ISK amount

    Returns:
        Formatted string (e.g., "1,234,567")
    """
    return f"{value:,.0f}"


def format_kill_time(kill_time: datetime) -> str:
    """Format kill time as DD-MM-YYYY HH:mm in UTC."""
    if kill_time.tzinfo is None:
        kill_time = kill_time.replace(tzinfo=timezone.utc)
    return kill_time.astimezone(timezone.utc).strftime("%d-%m-%Y %H:%M")


def _zkill_link(kind: str, entity_id: int | None) -> str | None:
    if entity_id is None:
        return None
    return f"{ZKILLBOARD_URL}/{kind}/{entity_id}/"


def _md_link(text: str, url: str | None) -> str:
    return f"[{text}]({url})" if url else text


def _html_link(text: str, url: str | None) -> str:
    return f'<a href="{escape(url)}">{escape(text)}</a>' if url else escape(text)


# =============================================================================
# Formatter
# =============================================================================


class MessageFormatter:
    """
    Builds kill notifications.

    Names come from the NameResolver; the victim ship icon is copied from
    the EVE image server into the Matrix media repository so clients can
    render it inline.
    """

    def __init__(
        self,
        resolver: NameResolver,
        matrix: MatrixClient,
        http: httpx.AsyncClient,
        image_server_url: str = IMAGE_SERVER_URL,
    ) -> None:
        self._resolver = resolver
        self._matrix = matrix
        self._http = http
        self._image_server_url = image_server_url.rstrip("/")

    async def format(
        self,
        killmail: Killmail,
        verdict: RelevanceVerdict,
        zkb: ValueEnvelope,
    ) -> Notification | None:
        """
        Format a kill as a Matrix message.

        Args:
            killmail: The kill
            verdict: Relevance verdict (decides KILL vs LOSS)
            zkb: zKillboard value envelope

        Returns:
            Notification, or None if the kill cannot be formatted
        """
        try:
            return await self._format(killmail, verdict, zkb)
        except Exception as e:
            logger.error(
                "Error formatting Matrix message for kill %d: %s",
                killmail.killmail_id,
                e,
                exc_info=True,
            )
            return None

    async def _format(
        self,
        killmail: Killmail,
        verdict: RelevanceVerdict,
        zkb: ValueEnvelope,
    ) -> Notification | None:
        attackers = killmail.attackers
        if not attackers:
            logger.warning("Kill %d has no attackers, skipping", killmail.killmail_id)
            return None

        final_blow = find_final_blow(attackers)
        if final_blow is None:
            logger.warning("Kill %d has no final blow attacker, skipping", killmail.killmail_id)
            return None

        top_damage = find_top_damage(attackers)
        dominant = most_used_ship(attackers)
        if top_damage is None or dominant is None:
            return None
        dominant_ship_id, dominant_count = dominant

        victim = killmail.victim
        resolver = self._resolver
        (
            victim_char,
            victim_corp,
            victim_alliance,
            ship,
            system,
            final_blow_char,
            top_damage_char,
            attacker_ship,
        ) = await asyncio.gather(
            resolver.character(victim.character_id),
            resolver.corporation(victim.corporation_id),
            resolver.alliance(victim.alliance_id),
            resolver.ship(victim.ship_type_id),
            resolver.system(killmail.solar_system_id),
            resolver.character(final_blow.character_id),
            resolver.character(top_damage.character_id),
            resolver.ship(dominant_ship_id),
        )

        image_uri = await self._upload_ship_icon(victim.ship_type_id, ship.name)

        is_kill = verdict.is_kill
        time_text = format_kill_time(killmail.killmail_time)
        value_text = f"{format_isk(zkb.total_value)} ISK"
        status_text = "KILL" if is_kill else "LOSS"
        kill_url = _zkill_link("kill", killmail.killmail_id)
        victim_url = _zkill_link("character", victim.character_id)

        affiliations = [(victim_corp.name, _zkill_link("corporation", victim.corporation_id))]
        if victim.alliance_id and not victim_alliance.is_placeholder:
            affiliations.append(
                (victim_alliance.name, _zkill_link("alliance", victim.alliance_id))
            )

        md_affiliation = " ".join(_md_link(name, url) for name, url in affiliations)
        body = (
            f"**{status_text}** _{time_text}_ {_md_link('zKill', kill_url)}\n"
            f"{_md_link(victim_char.name, victim_url)} {md_affiliation}\n"
            f"{ship.name} in {system.name}\n\n"
            f"**Final Blow**: {final_blow_char.name}\n"
            f"**Top Damage**: {top_damage_char.name}\n"
            f"**Attacker Ship**: {attacker_ship.name} ({dominant_count})\n\n"
            f"Estimated value: {value_text}"
        )

        color = KILL_COLOR if is_kill else LOSS_COLOR
        emoji = KILL_EMOJI if is_kill else LOSS_EMOJI
        html_affiliation = " ".join(_html_link(name, url) for name, url in affiliations)
        image_html = (
            f'<img src="{escape(image_uri)}" alt="{escape(ship.name)}" '
            f'width="64" height="64" style="border-radius: 5px;"/>'
            if image_uri
            else ""
        )
        formatted_body = (
            f'<div style="background-color: {color}20; padding: 10px; border-radius: 5px; '
            f'margin: 5px 0; border-left: 4px solid {color};">'
            f'<div style="display: flex; align-items: center; gap: 10px;">'
            f"{image_html}"
            f'<div style="flex: 1;">'
            f'<div style="margin-bottom: 5px;">'
            f'<span style="background-color: {color}; color: white; padding: 2px 8px; '
            f'border-radius: 12px; font-size: 0.8em; font-weight: bold;">'
            f"{emoji} {status_text}</span> "
            f'<span style="font-size: 0.9em; color: #666;">'
            f"<em>{time_text}</em> • {_html_link('zKill', kill_url)}</span>"
            f"</div>"
            f'<div style="font-weight: bold; margin: 5px 0;">'
            f"{_html_link(victim_char.name, victim_url)} "
            f'<span style="color: #666;">{html_affiliation}</span>'
            f"</div>"
            f"<div>{escape(ship.name)} in {escape(system.name)}</div>"
            f"</div></div>"
            f'<div style="margin-top: 10px; padding: 10px; background-color: white; '
            f'border-radius: 5px;">'
            f"<div><strong>Final Blow:</strong> {escape(final_blow_char.name)}</div>"
            f"<div><strong>Top Damage:</strong> {escape(top_damage_char.name)}</div>"
            f"<div><strong>Attacker Ship:</strong> {escape(attacker_ship.name)} "
            f"({dominant_count})</div>"
            f'<div style="margin-top: 10px; color: #666;">Estimated value: {value_text}</div>'
            f"</div></div>"
        )

        return Notification(body=body, formatted_body=formatted_body)

    async def _upload_ship_icon(self, ship_type_id: int | None, ship_name: str) -> str | None:
        """
        Copy the ship icon into the Matrix media repository.

        Returns:
            mxc:// URI, or None if the icon could not be fetched or uploaded
        """
        if ship_type_id is None:
            return None

        url = f"{self._image_server_url}/types/{ship_type_id}/icon"
        try:
            response = await self._http.get(url, params={"size": ICON_SIZE})
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning("Failed to fetch ship icon %d: %s", ship_type_id, e)
            return None

        content_type = response.headers.get("content-type", "image/png").split(";")[0]
        try:
            return await self._matrix.upload_content(
                response.content, content_type, f"{ship_name}.png"
            )
        except MatrixError as e:
            logger.warning("Failed to upload ship icon %d: %s", ship_type_id, e.message)
            return None
