"""Tests for the polling scheduler.

Intervals are shrunk to a few milliseconds so the tests exercise the
real event loop instead of a mocked clock.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from opsdesk.services.polling import PollingScheduler, PollState

INTERVAL = 0.02


class TestLifecycle:
    def test_interval_must_be_positive(self):
        with pytest.raises(ValueError):
            PollingScheduler(AsyncMock(), interval=0)

    def test_starts_idle(self):
        scheduler = PollingScheduler(AsyncMock(), interval=INTERVAL)
        assert scheduler.state == PollState.IDLE
        assert not scheduler.is_polling

    @pytest.mark.asyncio
    async def test_enable_is_idempotent(self):
        scheduler = PollingScheduler(AsyncMock(), interval=INTERVAL)
        assert scheduler.enable() is True
        assert scheduler.enable() is False
        assert scheduler.state == PollState.POLLING
        await scheduler.disable()
        assert scheduler.state == PollState.IDLE

    @pytest.mark.asyncio
    async def test_disable_when_idle_is_noop(self):
        scheduler = PollingScheduler(AsyncMock(), interval=INTERVAL)
        await scheduler.disable()
        assert not scheduler.is_polling


class TestTicks:
    @pytest.mark.asyncio
    async def test_refresh_called_every_interval(self):
        refresh = AsyncMock()
        async with PollingScheduler(refresh, interval=INTERVAL):
            await asyncio.sleep(INTERVAL * 5.5)
        assert refresh.await_count >= 3

    @pytest.mark.asyncio
    async def test_no_refresh_before_first_interval(self):
        refresh = AsyncMock()
        scheduler = PollingScheduler(refresh, interval=10.0)
        scheduler.enable()
        await asyncio.sleep(0.01)
        await scheduler.disable()
        refresh.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_no_refresh_after_disable(self):
        refresh = AsyncMock()
        scheduler = PollingScheduler(refresh, interval=INTERVAL)
        scheduler.enable()
        await asyncio.sleep(INTERVAL * 2.5)
        await scheduler.disable()
        calls = refresh.await_count
        await asyncio.sleep(INTERVAL * 3)
        assert refresh.await_count == calls

    @pytest.mark.asyncio
    async def test_disable_during_refresh_cancels_it(self):
        started = asyncio.Event()
        finished = []

        async def slow_refresh():
            started.set()
            await asyncio.sleep(1)
            finished.append(True)

        scheduler = PollingScheduler(slow_refresh, interval=INTERVAL)
        scheduler.enable()
        await asyncio.wait_for(started.wait(), timeout=1)
        await scheduler.disable()
        assert finished == []

    @pytest.mark.asyncio
    async def test_failed_tick_does_not_stop_polling(self):
        calls = []

        async def flaky_refresh():
            calls.append(True)
            if len(calls) == 1:
                raise RuntimeError("backend down")

        refresh = AsyncMock(side_effect=flaky_refresh)
        scheduler = PollingScheduler(refresh, interval=INTERVAL)
        scheduler.enable()
        await asyncio.sleep(INTERVAL * 4.5)
        assert scheduler.is_polling
        await scheduler.disable()
        assert scheduler.failures == 1
        assert refresh.await_count >= 2

    @pytest.mark.asyncio
    async def test_each_tick_reads_current_state(self):
        state = {"page": 1}
        seen = []

        async def refresh():
            seen.append(state["page"])

        scheduler = PollingScheduler(refresh, interval=INTERVAL)
        scheduler.enable()
        await asyncio.sleep(INTERVAL * 1.5)
        state["page"] = 2
        await asyncio.sleep(INTERVAL * 2)
        await scheduler.disable()
        assert seen[0] == 1
        assert seen[-1] == 2

    @pytest.mark.asyncio
    async def test_tick_reports_outcome(self):
        scheduler = PollingScheduler(AsyncMock(side_effect=RuntimeError("boom")), interval=INTERVAL)
        assert await scheduler.tick() is False
        assert scheduler.ticks == 1
        assert scheduler.failures == 1
