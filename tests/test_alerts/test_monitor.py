"""Tests for the periodic alert monitor."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from rabbitwatch.alerts.collaborators import ServerInfo
from rabbitwatch.alerts.config import AlertConfig
from rabbitwatch.alerts.monitor import AlertMonitor


@pytest.fixture
def servers(directory):
    directory.add_server(ServerInfo(id="srv-2", name="staging", workspace_id="ws-1"))
    directory.add_server(ServerInfo(id="srv-3", name="qa", workspace_id="ws-1"))
    return directory


@pytest.fixture
def service():
    service = MagicMock()
    service.run_check = AsyncMock(return_value=MagicMock())
    service.drain = AsyncMock()
    return service


class TestRunOnce:
    @pytest.mark.asyncio
    async def test_checks_every_server(self, service, servers):
        monitor = AlertMonitor(service, servers)

        stats = await monitor.run_once()

        assert stats == {"checked": 3, "failed": 0, "skipped": False}
        checked = {call.args[0].id for call in service.run_check.await_args_list}
        assert checked == {"srv-1", "srv-2", "srv-3"}

    @pytest.mark.asyncio
    async def test_one_failure_does_not_stop_others(self, service, servers):
        async def run_check(server, vhost=None):
            if server.id == "srv-2":
                raise RuntimeError("boom")
            if server.id == "srv-3":
                return None
            return MagicMock()

        service.run_check.side_effect = run_check
        monitor = AlertMonitor(service, servers)

        stats = await monitor.run_once()

        assert stats == {"checked": 1, "failed": 2, "skipped": False}

    @pytest.mark.asyncio
    async def test_overlapping_cycle_skipped(self, service, servers):
        release = asyncio.Event()

        async def slow_check(server, vhost=None):
            await release.wait()
            return MagicMock()

        service.run_check.side_effect = slow_check
        monitor = AlertMonitor(service, servers)

        first = asyncio.create_task(monitor.run_once())
        await asyncio.sleep(0)
        second = await monitor.run_once()
        release.set()

        assert second["skipped"] is True
        assert (await first)["checked"] == 3

    @pytest.mark.asyncio
    async def test_concurrency_bounded(self, service, servers):
        in_flight = 0
        peak = 0

        async def tracked_check(server, vhost=None):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return MagicMock()

        service.run_check.side_effect = tracked_check
        monitor = AlertMonitor(service, servers, AlertConfig(check_concurrency=2))

        await monitor.run_once()

        assert peak == 2


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_start_and_stop(self, service, servers):
        monitor = AlertMonitor(service, servers)

        monitor.start_background()
        await asyncio.sleep(0.01)
        assert monitor.is_running is True

        # stop lands during the interval sleep after the first cycle
        await monitor.stop()

        assert monitor.is_running is False
        assert service.run_check.await_count == 3
        service.drain.assert_awaited_once()
