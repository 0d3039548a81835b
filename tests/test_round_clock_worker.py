"""Tests for the background round clock worker."""

from __future__ import annotations

import asyncio
from typing import List
from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import THIRTY_MINUTES_MS, FakeClock, utc, wait_until
from raffleapp.round_clock import RoundClock, RoundClockWorker, RoundTick
from raffleapp.utils.time_utils import to_epoch_ms


def _clock_with_fake_sleep(start) -> tuple:
    fake = FakeClock(to_epoch_ms(start))

    async def fake_sleep(seconds: float) -> None:
        fake.advance(int(seconds * 1000))
        await asyncio.sleep(0)

    return fake, RoundClock(THIRTY_MINUTES_MS, clock=fake, sleep=fake_sleep)


@pytest.mark.asyncio
async def test_worker_lifecycle_is_idempotent() -> None:
    _, clock = _clock_with_fake_sleep(utc(2024, 1, 1, 10, 0, 0))
    worker = RoundClockWorker(clock)

    await worker.stop()
    await worker.start()
    first_task = worker._worker_task  # type: ignore[attr-defined]
    await worker.start()
    assert worker._worker_task is first_task  # type: ignore[attr-defined]
    assert worker.running

    await worker.stop()
    await worker.stop()
    assert worker._worker_task is None  # type: ignore[attr-defined]
    assert not worker.running

    await worker.start()
    assert worker.running
    await worker.stop()


@pytest.mark.asyncio
async def test_worker_signals_round_end_exactly_once() -> None:
    fake, clock = _clock_with_fake_sleep(utc(2024, 1, 1, 10, 29, 55))
    ticks: List[RoundTick] = []
    on_round_end = MagicMock()
    worker = RoundClockWorker(clock, on_tick=ticks.append, on_round_end=on_round_end)

    await worker.start()
    await wait_until(lambda: len(ticks) >= 12)
    await worker.stop()

    assert len(ticks) >= 12
    expected_round = to_epoch_ms(utc(2024, 1, 1, 10, 30, 0)) // THIRTY_MINUTES_MS
    on_round_end.assert_called_once_with(expected_round)


@pytest.mark.asyncio
async def test_worker_awaits_coroutine_callbacks() -> None:
    _, clock = _clock_with_fake_sleep(utc(2024, 1, 1, 10, 59, 59))
    on_round_end = AsyncMock()
    worker = RoundClockWorker(clock)
    worker.add_round_end_listener(on_round_end)

    await worker.start()
    await wait_until(lambda: on_round_end.await_count >= 1)
    await worker.stop()

    on_round_end.assert_awaited_once()


@pytest.mark.asyncio
async def test_failing_callback_does_not_stop_sampling() -> None:
    _, clock = _clock_with_fake_sleep(utc(2024, 1, 1, 10, 10, 0))
    seen: List[RoundTick] = []

    def broken(_tick: RoundTick) -> None:
        raise RuntimeError("observer failure")

    worker = RoundClockWorker(clock, on_tick=broken)
    worker.add_tick_listener(seen.append)

    await worker.start()
    await wait_until(lambda: len(seen) >= 5)
    await worker.stop()

    assert len(seen) >= 5
