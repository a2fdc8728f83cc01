"""
Unit tests for the cancellable deadline timer
"""

import asyncio

import pytest

from crowdguard.services.validation.deadline import DeadlineTimer


class TestDeadlineTimer:
    """Test deadline timer firing and cancellation"""

    @pytest.mark.asyncio
    async def test_fires_after_delay(self):
        fired = asyncio.Event()
        timer = DeadlineTimer(0.05, fired.set).start()

        assert timer.active
        assert 0.0 < timer.remaining() <= 0.05

        await asyncio.wait_for(fired.wait(), 1.0)
        assert timer.fired
        assert not timer.active
        assert timer.remaining() == 0.0

    @pytest.mark.asyncio
    async def test_does_not_fire_early(self):
        calls = []
        loop = asyncio.get_running_loop()
        timer = DeadlineTimer(0.2, lambda: calls.append(loop.time())).start()

        await asyncio.sleep(0.1)
        assert calls == []

        await asyncio.sleep(0.2)
        assert len(calls) == 1
        assert calls[0] >= timer.deadline

    @pytest.mark.asyncio
    async def test_cancel_suppresses_callback(self):
        calls = []
        timer = DeadlineTimer(0.02, lambda: calls.append(1)).start()

        assert timer.cancel() is True
        assert timer.cancelled
        assert timer.cancel() is False

        await asyncio.sleep(0.05)
        assert calls == []
        assert not timer.fired

    @pytest.mark.asyncio
    async def test_cancel_after_fire_returns_false(self):
        fired = asyncio.Event()
        timer = DeadlineTimer(0.0, fired.set).start()
        await asyncio.wait_for(fired.wait(), 1.0)

        assert timer.cancel() is False

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self):
        calls = []
        timer = DeadlineTimer(0.01, lambda: calls.append(1))
        timer.start()
        deadline = timer.deadline
        timer.start()

        assert timer.deadline == deadline
        await asyncio.sleep(0.05)
        assert calls == [1]

    @pytest.mark.asyncio
    async def test_callback_errors_are_contained(self):
        def explode():
            raise RuntimeError("boom")

        timer = DeadlineTimer(0.0, explode).start()
        await asyncio.sleep(0.01)
        assert timer.fired

    @pytest.mark.asyncio
    async def test_negative_delay_clamped(self):
        timer = DeadlineTimer(-5, lambda: None)
        assert timer.delay_seconds == 0.0
