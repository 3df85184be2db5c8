"""Tests for Ticker."""

import asyncio

import pytest

from options_tutor.scheduling.ticker import Ticker


def instant_sleep(calls: list):
    async def sleep(seconds: float) -> None:
        calls.append(seconds)
        await asyncio.sleep(0)
    return sleep


class TestTicker:
    def test_rejects_non_positive_interval(self):
        with pytest.raises(ValueError):
            Ticker(0, lambda: None)

    async def test_ticks_until_stopped(self):
        sleeps = []
        hits = []

        async def callback():
            hits.append(1)

        ticker = Ticker(60, callback, sleep=instant_sleep(sleeps))
        ticker.start()
        assert ticker.running
        for _ in range(10):
            await asyncio.sleep(0)
        await ticker.stop()

        assert not ticker.running
        assert len(hits) >= 3
        assert ticker.ticks == len(hits)
        assert set(sleeps) == {60}

    async def test_failing_callback_keeps_ticking(self):
        async def callback():
            raise RuntimeError("boom")

        ticker = Ticker(1, callback, sleep=instant_sleep([]))
        ticker.start()
        for _ in range(10):
            await asyncio.sleep(0)
        await ticker.stop()
        assert ticker.ticks >= 2

    async def test_start_twice_keeps_one_task(self):
        async def callback():
            pass

        ticker = Ticker(1, callback, sleep=instant_sleep([]))
        ticker.start()
        task = ticker._task
        ticker.start()
        assert ticker._task is task
        await ticker.stop()

    async def test_stop_without_start(self):
        ticker = Ticker(1, lambda: None)
        await ticker.stop()
        assert not ticker.running
