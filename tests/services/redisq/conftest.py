"""
Shared fixtures for RedisQ pipeline tests.
"""

from __future__ import annotations

import copy
from typing import Any

import pytest
import pytest_asyncio

from zkill_matrix.core.async_client import AsyncESIClient
from zkill_matrix.services.health import HealthMonitor

ESI_BASE = "https://esi.test/latest"
USER_AGENT = "zkill-matrix-tests (tests@example.com)"

WATCHED_CORP = 99000001
WATCHED_ALLIANCE = 98000001

SAMPLE_KILLMAIL: dict[str, Any] = {
    "killmail_id": 123456789,
    "killmail_time": "2024-01-15T12:34:56Z",
    "solar_system_id": 30000142,
    "victim": {
        "character_id": 95000001,
        "corporation_id": WATCHED_CORP,
        "alliance_id": WATCHED_ALLIANCE,
        "ship_type_id": 587,
    },
    "attackers": [
        {
            "character_id": 95000010,
            "corporation_id": 98500001,
            "ship_type_id": 17738,
            "damage_done": 10,
            "final_blow": False,
        },
        {
            "character_id": 95000011,
            "corporation_id": 98500001,
            "ship_type_id": 24690,
            "damage_done": 50,
            "final_blow": True,
        },
        {
            "character_id": 95000012,
            "corporation_id": 98500002,
            "ship_type_id": 17738,
            "damage_done": 30,
            "final_blow": False,
        },
    ],
}

SAMPLE_ZKB: dict[str, Any] = {
    "locationID": 40009077,
    "hash": "abc123",
    "fittedValue": 10000000.0,
    "totalValue": 15234567.89,
    "points": 1,
    "npc": False,
    "solo": False,
    "awox": False,
}


def esi_url(endpoint: str) -> str:
    return f"{ESI_BASE}{endpoint}?datasource=tranquility"


@pytest.fixture
def killmail_data() -> dict[str, Any]:
    return copy.deepcopy(SAMPLE_KILLMAIL)


@pytest.fixture
def package_data(killmail_data) -> dict[str, Any]:
    """A RedisQ 'package' object."""
    return {
        "killID": killmail_data["killmail_id"],
        "killmail": killmail_data,
        "zkb": dict(SAMPLE_ZKB),
    }


@pytest.fixture
def health(fake_clock) -> HealthMonitor:
    return HealthMonitor(clock=fake_clock)


@pytest_asyncio.fixture
async def esi_client():
    """ESI client with retries disabled so failed lookups hit the network once."""
    async with AsyncESIClient(
        user_agent=USER_AGENT, base_url=ESI_BASE, max_attempts=1, min_wait=0, max_wait=0
    ) as client:
        yield client
