from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Callable
from dataclasses import dataclass


@dataclass(slots=True)
class TickStats:
    late: int = 0
    samples: int = 0
    sum_jitter_ms: float = 0.0
    max_jitter_ms: float = 0.0

    def record(self, dt_s: float, period_s: float) -> None:
        jitter_ms = abs(dt_s - period_s) * 1000.0
        self.samples += 1
        self.sum_jitter_ms += jitter_ms
        self.max_jitter_ms = max(self.max_jitter_ms, jitter_ms)

    @property
    def avg_jitter_ms(self) -> float:
        return self.sum_jitter_ms / self.samples if self.samples else math.nan


class TickScheduler:
    """Fixed-rate driver for a synchronous tick callback.

    The callback runs inline on the event loop, so two ticks can never overlap.
    When a tick overruns, the missed slots are dropped rather than replayed.
    """

    def __init__(self, period_s: float, on_tick: Callable[[], None], logger: logging.Logger, stats_every_s: float = 5.0):
        self._period_s = float(period_s)
        self._on_tick = on_tick
        self._logger = logger
        self._stats_every_s = float(stats_every_s)
        self._task: asyncio.Task | None = None
        self.tick_count = 0

    @property
    def period_s(self) -> float:
        return self._period_s

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self._run(), name="tick-scheduler")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        finally:
            self._task = None

    def _fire(self) -> None:
        try:
            self._on_tick()
        except Exception as exc:
            self._logger.exception("[TICK] tick failed: %s", exc)
        self.tick_count += 1

    def _report(self, stats: TickStats) -> None:
        self._logger.debug(
            "[TICK] period=%.1fms avg_jitter=%.2fms max_jitter=%.2fms late=%d",
            self._period_s * 1000.0,
            stats.avg_jitter_ms,
            stats.max_jitter_ms,
            stats.late,
        )

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time()
        last_fire: float | None = None
        stats = TickStats()
        report_at = deadline + self._stats_every_s

        while True:
            fired_at = loop.time()
            if last_fire is not None:
                stats.record(fired_at - last_fire, self._period_s)
            if fired_at - deadline > self._period_s:
                stats.late += 1
            last_fire = fired_at

            self._fire()

            if fired_at >= report_at:
                self._report(stats)
                stats = TickStats()
                report_at = fired_at + self._stats_every_s

            deadline += self._period_s
            delay = deadline - loop.time()
            if delay <= 0:
                # Overran: drop the missed slots and re-anchor on now.
                deadline = loop.time()
                delay = 0
            await asyncio.sleep(delay)
