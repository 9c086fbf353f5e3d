"""
Tests for Matrix kill message formatting.
"""

from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
import pytest_asyncio

from zkill_matrix.core.async_client import AsyncESIError
from zkill_matrix.services.redisq.entity_filter import MatchReason, RelevanceVerdict
from zkill_matrix.services.redisq.models import Attacker, Killmail, ValueEnvelope
from zkill_matrix.services.redisq.name_resolver import NameResolver
from zkill_matrix.services.redisq.notifications.formatter import (
    MessageFormatter,
    find_final_blow,
    find_top_damage,
    format_isk,
    format_kill_time,
    most_used_ship,
)
from zkill_matrix.services.redisq.notifications.matrix_client import MatrixError

IMAGE_SERVER = "https://images.test"
ICON_URL = f"{IMAGE_SERVER}/types/587/icon?size=128"

NAMES = {
    "/characters/95000001/": "Victim Pilot",
    "/corporations/99000001/": "Watched Corp",
    "/alliances/98000001/": "Watched Alliance",
    "/universe/types/587/": "Rifter",
    "/universe/systems/30000142/": "Jita",
    "/characters/95000011/": "Closer <b>",
    "/universe/types/17738/": "Machariel",
}

LOSS = RelevanceVerdict(True, MatchReason.VICTIM)
KILL = RelevanceVerdict(True, MatchReason.ATTACKER)
ZKB = ValueEnvelope(total_value=15234567.89)


def attacker(damage: int = 0, ship: int | None = None, final_blow: bool = False, char=None):
    return Attacker(
        character_id=char,
        corporation_id=None,
        alliance_id=None,
        ship_type_id=ship,
        damage_done=damage,
        final_blow=final_blow,
    )


@pytest.fixture
def esi():
    async def get(endpoint):
        if endpoint in NAMES:
            return {"name": NAMES[endpoint]}
        raise AsyncESIError("not found", status_code=404)

    client = MagicMock()
    client.get = AsyncMock(side_effect=get)
    return client


@pytest.fixture
def matrix():
    client = MagicMock()
    client.upload_content = AsyncMock(return_value="mxc://matrix.test/icon")
    return client


@pytest_asyncio.fixture
async def http_client():
    async with httpx.AsyncClient() as client:
        yield client


@pytest.fixture
def message_formatter(esi, matrix, http_client, health):
    return MessageFormatter(
        NameResolver(esi, health), matrix, http_client, image_server_url=IMAGE_SERVER
    )


@pytest.fixture
def killmail(killmail_data) -> Killmail:
    return Killmail.from_dict(killmail_data)


class TestAttackerSelection:
    def test_final_blow(self):
        attackers = [attacker(1), attacker(2, final_blow=True), attacker(3, final_blow=True)]

        assert find_final_blow(attackers) is attackers[1]

    def test_no_final_blow(self):
        assert find_final_blow([attacker(1)]) is None

    def test_top_damage(self):
        attackers = [attacker(10), attacker(50), attacker(30)]

        assert find_top_damage(attackers).damage_done == 50

    def test_top_damage_tie_goes_to_first(self):
        attackers = [attacker(50, char=1), attacker(50, char=2)]

        assert find_top_damage(attackers).character_id == 1

    def test_most_used_ship(self):
        attackers = [attacker(ship=11), attacker(ship=22), attacker(ship=11)]

        assert most_used_ship(attackers) == (11, 2)

    def test_most_used_ship_tie_goes_to_first_seen(self):
        attackers = [attacker(ship=22), attacker(ship=11), attacker(ship=11), attacker(ship=22)]

        assert most_used_ship(attackers) == (22, 2)

    def test_empty(self):
        assert find_top_damage([]) is None
        assert most_used_ship([]) is None


class TestValueFormatting:
    @pytest.mark.parametrize(
        "value,expected",
        [
            (0, "0"),
            (999.4, "999"),
            (1234567, "1,234,567"),
            (15234567.89, "15,234,568"),
        ],
    )
    def test_format_isk(self, value, expected):
        assert format_isk(value) == expected

    def test_format_kill_time(self):
        kill_time = datetime(2024, 1, 5, 7, 8, 9, tzinfo=timezone.utc)

        assert format_kill_time(kill_time) == "05-01-2024 07:08"


class TestMessageFormatter:
    @pytest.mark.asyncio
    async def test_loss_message(self, httpx_mock, message_formatter, killmail, matrix):
        httpx_mock.add_response(url=ICON_URL, content=b"PNG", headers={"Content-Type": "image/png"})

        notification = await message_formatter.format(killmail, LOSS, ZKB)

        body = notification.body
        assert body.startswith(
            "**LOSS** _15-01-2024 12:34_ [zKill](https://zkillboard.com/kill/123456789/)"
        )
        assert "[Victim Pilot](https://zkillboard.com/character/95000001/)" in body
        assert "[Watched Corp](https://zkillboard.com/corporation/99000001/)" in body
        assert "[Watched Alliance](https://zkillboard.com/alliance/98000001/)" in body
        assert "Rifter in Jita" in body
        assert "**Final Blow**: Closer <b>" in body
        assert "**Top Damage**: Closer <b>" in body
        assert "**Attacker Ship**: Machariel (2)" in body
        assert body.endswith("Estimated value: 15,234,568 ISK")

        matrix.upload_content.assert_awaited_once_with(b"PNG", "image/png", "Rifter.png")
        assert 'src="mxc://matrix.test/icon"' in notification.formatted_body
        assert notification.to_content()["format"] == "org.matrix.custom.html"

    @pytest.mark.asyncio
    async def test_kill_colors(self, httpx_mock, message_formatter, killmail):
        httpx_mock.add_response(url=ICON_URL, content=b"PNG")

        notification = await message_formatter.format(killmail, KILL, ZKB)

        assert notification.body.startswith("**KILL**")
        assert "#4CAF50" in notification.formatted_body
        assert "#F44336" not in notification.formatted_body

    @pytest.mark.asyncio
    async def test_html_escapes_names(self, httpx_mock, message_formatter, killmail):
        httpx_mock.add_response(url=ICON_URL, content=b"PNG")

        notification = await message_formatter.format(killmail, LOSS, ZKB)

        assert "Closer &lt;b&gt;" in notification.formatted_body
        assert "Closer <b>" not in notification.formatted_body

    @pytest.mark.asyncio
    async def test_alliance_omitted_when_absent(
        self, httpx_mock, message_formatter, killmail_data
    ):
        httpx_mock.add_response(url=ICON_URL, content=b"PNG")
        del killmail_data["victim"]["alliance_id"]

        notification = await message_formatter.format(
            Killmail.from_dict(killmail_data), LOSS, ZKB
        )

        assert "alliance" not in notification.body
        assert "Unknown" not in notification.body

    @pytest.mark.asyncio
    async def test_unresolvable_names_use_placeholders(
        self, httpx_mock, message_formatter, killmail_data
    ):
        killmail_data["victim"]["ship_type_id"] = 999
        killmail_data["solar_system_id"] = 31000001
        httpx_mock.add_response(url=f"{IMAGE_SERVER}/types/999/icon?size=128", content=b"PNG")

        notification = await message_formatter.format(
            Killmail.from_dict(killmail_data), LOSS, ZKB
        )

        assert "Unknown Ship in Unknown System" in notification.body

    @pytest.mark.asyncio
    async def test_icon_fetch_failure_degrades(
        self, httpx_mock, message_formatter, killmail, matrix
    ):
        httpx_mock.add_response(url=ICON_URL, status_code=404)

        notification = await message_formatter.format(killmail, LOSS, ZKB)

        assert notification is not None
        assert "<img" not in notification.formatted_body
        matrix.upload_content.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_icon_upload_failure_degrades(
        self, httpx_mock, message_formatter, killmail, matrix
    ):
        httpx_mock.add_response(url=ICON_URL, content=b"PNG")
        matrix.upload_content.side_effect = MatrixError("Upload failed", status_code=500)

        notification = await message_formatter.format(killmail, LOSS, ZKB)

        assert notification is not None
        assert "<img" not in notification.formatted_body

    @pytest.mark.asyncio
    async def test_no_attackers_returns_none(self, message_formatter, killmail_data, esi):
        killmail_data["attackers"] = []

        assert await message_formatter.format(Killmail.from_dict(killmail_data), LOSS, ZKB) is None
        esi.get.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_no_final_blow_returns_none(self, message_formatter, killmail_data):
        for entry in killmail_data["attackers"]:
            entry["final_blow"] = False

        assert await message_formatter.format(Killmail.from_dict(killmail_data), LOSS, ZKB) is None

    @pytest.mark.asyncio
    async def test_unexpected_error_returns_none(self, message_formatter, killmail, esi, caplog):
        esi.get.side_effect = RuntimeError("resolver exploded")

        assert await message_formatter.format(killmail, LOSS, ZKB) is None
        assert "Error formatting Matrix message for kill 123456789" in caplog.text
