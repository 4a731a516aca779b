from __future__ import annotations

import asyncio
import time

from eurozbot.domain.models import StatusCategory, StatusSeverity
from eurozbot.obs.events import EventSink
from eurozbot.services.task_scheduler import Clock, SleepFn

STARTING_NEXT_CYCLE = "Starting next cycle..."


def format_remaining(seconds: float) -> str:
    whole = max(0, int(seconds))
    minutes, secs = divmod(whole, 60)
    return f"{minutes}m {secs}s"


class CountdownReporter:
    """Projects the time left until the next cycle onto the status sink.

    Read-only with respect to scheduling: it is told a deadline and reports
    on it, nothing more.
    """

    def __init__(
        self,
        sink: EventSink,
        *,
        clock: Clock = time.monotonic,
        sleep_fn: SleepFn = asyncio.sleep,
        interval_seconds: float = 1.0,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be > 0")
        self._sink = sink
        self._clock = clock
        self._sleep_fn = sleep_fn
        self._interval = interval_seconds
        self._deadline: float | None = None
        self._task: asyncio.Task[None] | None = None

    @property
    def deadline(self) -> float | None:
        return self._deadline

    @property
    def active(self) -> bool:
        return self._task is not None and not self._task.done()

    def remaining(self) -> float | None:
        if self._deadline is None:
            return None
        return self._deadline - self._clock()

    def start(self, deadline: float) -> None:
        self.stop()
        self._deadline = deadline
        self._task = asyncio.create_task(self._tick_loop(deadline), name="countdown")

    def stop(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None
        self._deadline = None

    async def _tick_loop(self, deadline: float) -> None:
        while True:
            remaining = deadline - self._clock()
            if remaining <= 0:
                self._sink.status(
                    StatusCategory.COUNTDOWN, StatusSeverity.INFO, STARTING_NEXT_CYCLE
                )
                return
            self._sink.status(
                StatusCategory.COUNTDOWN,
                StatusSeverity.INFO,
                f"Next cycle in: {format_remaining(remaining)}",
            )
            await self._sleep_fn(min(self._interval, remaining))
