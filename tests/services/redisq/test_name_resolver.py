"""
Tests for memoized ESI name resolution.
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from zkill_matrix.core.async_client import AsyncESIError
from zkill_matrix.services.health import HealthCategory
from zkill_matrix.services.redisq.name_resolver import EntityKind, NameResolver, ReferenceRecord

ESI_BASE = "https://esi.test/latest"


def esi_url(endpoint: str) -> str:
    return f"{ESI_BASE}{endpoint}?datasource=tranquility"


class TestLookup:
    @pytest.mark.asyncio
    async def test_fetches_and_caches(self, httpx_mock, esi_client, health):
        httpx_mock.add_response(
            url=esi_url("/characters/95000001/"), json={"name": "Test Pilot", "birthday": "x"}
        )
        resolver = NameResolver(esi_client, health)

        first = await resolver.character(95000001)
        second = await resolver.character(95000001)

        assert first.name == "Test Pilot"
        assert first.data["birthday"] == "x"
        assert second is first
        assert len(httpx_mock.get_requests()) == 1
        assert resolver.is_cached(EntityKind.CHARACTER, 95000001)
        assert resolver.stats()["character"] == {"size": 1, "hits": 1, "misses": 1, "failures": 0}

    @pytest.mark.asyncio
    async def test_endpoints_per_kind(self, httpx_mock, esi_client, health):
        httpx_mock.add_response(url=esi_url("/universe/types/587/"), json={"name": "Rifter"})
        httpx_mock.add_response(url=esi_url("/universe/systems/30000142/"), json={"name": "Jita"})
        httpx_mock.add_response(url=esi_url("/corporations/99000001/"), json={"name": "Corp"})
        httpx_mock.add_response(url=esi_url("/alliances/98000001/"), json={"name": "Alliance"})
        resolver = NameResolver(esi_client, health)

        assert (await resolver.ship(587)).name == "Rifter"
        assert (await resolver.system(30000142)).name == "Jita"
        assert (await resolver.corporation(99000001)).name == "Corp"
        assert (await resolver.alliance(98000001)).name == "Alliance"

    @pytest.mark.asyncio
    async def test_caches_are_per_kind(self, httpx_mock, esi_client, health):
        """The same numeric id in two kinds is two separate lookups."""
        httpx_mock.add_response(url=esi_url("/corporations/1000/"), json={"name": "Corp"})
        httpx_mock.add_response(url=esi_url("/alliances/1000/"), json={"name": "Alliance"})
        resolver = NameResolver(esi_client, health)

        assert (await resolver.corporation(1000)).name == "Corp"
        assert (await resolver.alliance(1000)).name == "Alliance"

    @pytest.mark.asyncio
    async def test_missing_id_returns_placeholder_without_request(self, esi_client, health):
        resolver = NameResolver(esi_client, health)

        record = await resolver.character(None)

        assert record.is_placeholder
        assert record.name == "Unknown"
        assert (await resolver.ship(None)).name == "Unknown Ship"
        assert (await resolver.system(0)).name == "Unknown System"

    @pytest.mark.asyncio
    async def test_failure_returns_placeholder_and_is_not_cached(
        self, httpx_mock, esi_client, health
    ):
        url = esi_url("/characters/95000002/")
        httpx_mock.add_response(url=url, status_code=404, json={"error": "not found"})
        httpx_mock.add_response(url=url, json={"name": "Late Pilot"})
        resolver = NameResolver(esi_client, health)

        failed = await resolver.character(95000002)
        assert failed == ReferenceRecord.placeholder(EntityKind.CHARACTER, 95000002)
        assert not resolver.is_cached(EntityKind.CHARACTER, 95000002)

        retried = await resolver.character(95000002)
        assert retried.name == "Late Pilot"
        assert len(httpx_mock.get_requests()) == 2

    @pytest.mark.asyncio
    async def test_failure_logged(self, httpx_mock, esi_client, health, caplog):
        httpx_mock.add_response(
            url=esi_url("/universe/types/1/"), status_code=404, json={"error": "Type not found"}
        )
        resolver = NameResolver(esi_client, health)

        await resolver.ship(1)

        assert "ESI error (/universe/types/1/): Type not found" in caplog.text

    @pytest.mark.asyncio
    async def test_response_without_name_is_failure(self, httpx_mock, esi_client, health):
        httpx_mock.add_response(url=esi_url("/universe/systems/1/"), json={"system_id": 1})
        resolver = NameResolver(esi_client, health)

        record = await resolver.system(1)

        assert record.is_placeholder
        assert resolver.stats()["system"]["failures"] == 1


class TestHealthReporting:
    @pytest.mark.asyncio
    async def test_success_touches_external_call(
        self, httpx_mock, esi_client, health, fake_clock
    ):
        httpx_mock.add_response(url=esi_url("/characters/1/"), json={"name": "Pilot"})
        resolver = NameResolver(esi_client, health)
        fake_clock.advance(100.0)

        await resolver.character(1)

        assert health.age(HealthCategory.EXTERNAL_CALL) == 0.0

    @pytest.mark.asyncio
    async def test_cache_hit_does_not_touch(self, httpx_mock, esi_client, health, fake_clock):
        httpx_mock.add_response(url=esi_url("/characters/1/"), json={"name": "Pilot"})
        resolver = NameResolver(esi_client, health)
        await resolver.character(1)
        fake_clock.advance(100.0)

        await resolver.character(1)

        assert health.age(HealthCategory.EXTERNAL_CALL) == 100.0

    @pytest.mark.asyncio
    async def test_failure_does_not_touch(self, httpx_mock, esi_client, health, fake_clock):
        httpx_mock.add_response(url=esi_url("/characters/1/"), status_code=404, json={})
        resolver = NameResolver(esi_client, health)
        fake_clock.advance(100.0)

        await resolver.character(1)

        assert health.age(HealthCategory.EXTERNAL_CALL) == 100.0


class TestSingleFlight:
    @pytest.mark.asyncio
    async def test_concurrent_lookups_share_one_request(self, health):
        release = asyncio.Event()

        async def slow_get(endpoint):
            await release.wait()
            return {"name": "Shared Pilot"}

        client = MagicMock()
        client.get = AsyncMock(side_effect=slow_get)
        resolver = NameResolver(client, health)

        lookups = [asyncio.ensure_future(resolver.character(7)) for _ in range(5)]
        await asyncio.sleep(0)
        release.set()
        records = await asyncio.gather(*lookups)

        assert {r.name for r in records} == {"Shared Pilot"}
        client.get.assert_awaited_once_with("/characters/7/")
        assert resolver.stats()["character"]["misses"] == 1

    @pytest.mark.asyncio
    async def test_concurrent_failure_shared_then_retried(self, health):
        client = MagicMock()
        client.get = AsyncMock(side_effect=[AsyncESIError("down", 503), {"name": "Pilot"}])
        resolver = NameResolver(client, health)

        first, second = await asyncio.gather(resolver.character(7), resolver.character(7))
        assert first.is_placeholder and second.is_placeholder
        assert client.get.await_count == 1

        third = await resolver.character(7)
        assert third.name == "Pilot"
        assert client.get.await_count == 2
