"""Wall-clock derived round boundaries and the periodic round sampler.

Every client computes the same boundaries from the same arithmetic: a round
ends at each multiple of the round duration since the Unix epoch, so no
coordination is needed to agree on when a round closes.
"""

from __future__ import annotations

import asyncio
import datetime as dt
import logging
from dataclasses import dataclass, replace
from typing import Any, AsyncIterator, Awaitable, Callable, Optional

from raffleapp.metrics import ROUND_END_COUNTER
from raffleapp.utils.time_utils import from_epoch_ms, now_ms

logger = logging.getLogger(__name__)

ROUND_END_THRESHOLD_MS = 1000

Clock = Callable[[], int]
Sleep = Callable[[float], Awaitable[Any]]
TickCallback = Callable[["RoundTick"], Any]
RoundEndCallback = Callable[[int], Any]


def next_round_boundary(now: int, duration_ms: int) -> int:
    """Return the smallest multiple of ``duration_ms`` strictly after ``now``."""

    if duration_ms <= 0:
        raise ValueError("Round duration must be positive")
    return (now // duration_ms + 1) * duration_ms


@dataclass(frozen=True)
class RoundTick:
    round_id: int
    end_timestamp_ms: int
    remaining_ms: int
    minutes_left: int
    seconds_left: int
    progress: float
    # Set on the one tick that reports the end of that round.
    ended_round_id: Optional[int] = None

    @property
    def round_ended(self) -> bool:
        return self.ended_round_id is not None

    @property
    def ends_at(self) -> dt.datetime:
        return from_epoch_ms(self.end_timestamp_ms)


class RoundClock:
    """Samples the current round from wall-clock time.

    :meth:`sample` is pure. :meth:`observe` additionally remembers which
    rounds have already been reported as ended, so each boundary is signalled
    exactly once no matter how many times sampling is stopped and restarted.
    A boundary that was jumped over between two samples (for example after a
    late wake-up) is still reported, on the first sample of the next round.
    """

    def __init__(
        self,
        duration_ms: int,
        *,
        round_end_threshold_ms: int = ROUND_END_THRESHOLD_MS,
        tick_interval: float = 1.0,
        clock: Clock = now_ms,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        if duration_ms <= 0:
            raise ValueError("Round duration must be positive")
        self._duration_ms = int(duration_ms)
        self._threshold_ms = max(0, int(round_end_threshold_ms))
        self._tick_interval = max(float(tick_interval), 0.0)
        self._clock = clock
        self._sleep = sleep
        self._last_round_id: Optional[int] = None
        self._last_ended_round_id: Optional[int] = None

    @property
    def duration_ms(self) -> int:
        return self._duration_ms

    @property
    def tick_interval(self) -> float:
        return self._tick_interval

    def end_timestamp(self, now: Optional[int] = None) -> int:
        current = self._clock() if now is None else now
        return next_round_boundary(current, self._duration_ms)

    def sample(self, now: Optional[int] = None) -> RoundTick:
        current = self._clock() if now is None else now
        end = next_round_boundary(current, self._duration_ms)
        remaining = end - current
        total_seconds = remaining // 1000
        progress = min(100.0, max(0.0, remaining / self._duration_ms * 100.0))
        return RoundTick(
            round_id=end // self._duration_ms,
            end_timestamp_ms=end,
            remaining_ms=remaining,
            minutes_left=total_seconds // 60,
            seconds_left=total_seconds % 60,
            progress=progress,
        )

    def observe(self, now: Optional[int] = None) -> RoundTick:
        tick = self.sample(now)
        ended: Optional[int] = None

        previous = self._last_round_id
        if (
            previous is not None
            and tick.round_id > previous
            and self._last_ended_round_id != previous
        ):
            ended = previous
        elif (
            tick.remaining_ms <= self._threshold_ms
            and self._last_ended_round_id != tick.round_id
        ):
            ended = tick.round_id

        if previous is None or tick.round_id > previous:
            self._last_round_id = tick.round_id
        if ended is not None:
            self._last_ended_round_id = ended
            tick = replace(tick, ended_round_id=ended)
        return tick

    async def ticks(self) -> AsyncIterator[RoundTick]:
        """Yield an observed tick every ``tick_interval`` seconds, forever."""

        while True:
            yield self.observe()
            await self._sleep(self._tick_interval)


class RoundClockWorker:
    """Background task driving a :class:`RoundClock` and its observers."""

    def __init__(
        self,
        clock: RoundClock,
        *,
        on_tick: Optional[TickCallback] = None,
        on_round_end: Optional[RoundEndCallback] = None,
    ) -> None:
        self._clock = clock
        self._tick_callbacks: list[TickCallback] = []
        self._round_end_callbacks: list[RoundEndCallback] = []
        if on_tick is not None:
            self._tick_callbacks.append(on_tick)
        if on_round_end is not None:
            self._round_end_callbacks.append(on_round_end)
        self._worker_task: Optional[asyncio.Task[None]] = None
        self._logger = logging.getLogger(__name__)

    def add_tick_listener(self, callback: TickCallback) -> None:
        self._tick_callbacks.append(callback)

    def add_round_end_listener(self, callback: RoundEndCallback) -> None:
        self._round_end_callbacks.append(callback)

    @property
    def running(self) -> bool:
        return self._worker_task is not None and not self._worker_task.done()

    async def start(self) -> None:
        """Start sampling; a no-op when already running."""

        if self.running:
            return

        loop = asyncio.get_running_loop()
        self._worker_task = loop.create_task(self._worker_loop(), name="round-clock")
        self._logger.info(
            "Round clock started",
            extra={"duration_ms": self._clock.duration_ms},
        )

    async def stop(self) -> None:
        """Stop sampling; safe to call any number of times."""

        if self._worker_task is None:
            return

        task = self._worker_task
        self._worker_task = None
        if not task.done():
            task.cancel()
            try:
                await asyncio.wait_for(task, timeout=5.0)
            except asyncio.TimeoutError:
                self._logger.warning("Round clock stop timed out")
            except asyncio.CancelledError:
                pass
        self._logger.info("Round clock stopped")

    async def _worker_loop(self) -> None:
        try:
            async for tick in self._clock.ticks():
                for callback in list(self._tick_callbacks):
                    await self._invoke(callback, tick, stage="tick")
                if tick.ended_round_id is not None:
                    ROUND_END_COUNTER.inc()
                    self._logger.info(
                        "Round ended",
                        extra={
                            "round_id": tick.ended_round_id,
                            "stage": "round_end",
                        },
                    )
                    for callback in list(self._round_end_callbacks):
                        await self._invoke(
                            callback, tick.ended_round_id, stage="round_end"
                        )
        except asyncio.CancelledError:
            self._logger.debug("Round clock loop cancelled")
            raise

    async def _invoke(self, callback: Callable[[Any], Any], arg: Any, *, stage: str) -> None:
        try:
            result: Any = callback(arg)
            if asyncio.iscoroutine(result):
                await result
        except asyncio.CancelledError:
            raise
        except Exception:
            self._logger.exception(
                "Error running round clock callback",
                extra={"stage": stage},
            )


__all__ = [
    "ROUND_END_THRESHOLD_MS",
    "RoundClock",
    "RoundClockWorker",
    "RoundTick",
    "next_round_boundary",
]
