from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)

Clock = Callable[[], float]
SleepFn = Callable[[float], Awaitable[None]]


class ScheduledTask:
    """Handle for a callback due at a monotonic deadline.

    ``cancel()`` only has an effect before the callback fires; once it has
    started, the callback owns its own lifetime.
    """

    def __init__(self, *, deadline: float, name: str) -> None:
        self.deadline = deadline
        self.name = name
        self._fired = False
        self._task: asyncio.Task[None] | None = None

    @property
    def fired(self) -> bool:
        return self._fired

    @property
    def cancelled(self) -> bool:
        return self._task is not None and self._task.cancelled()

    @property
    def done(self) -> bool:
        return self._task is not None and self._task.done()

    def cancel(self) -> bool:
        if self._task is None or self._fired or self._task.done():
            return False
        self._task.cancel()
        return True

    async def wait(self) -> None:
        if self._task is None:
            return
        with contextlib.suppress(asyncio.CancelledError):
            await self._task


class TaskScheduler:
    def __init__(self, *, clock: Clock = time.monotonic, sleep_fn: SleepFn = asyncio.sleep) -> None:
        self._clock = clock
        self._sleep_fn = sleep_fn

    def now(self) -> float:
        return self._clock()

    async def sleep(self, seconds: float) -> None:
        if seconds > 0:
            await self._sleep_fn(seconds)

    def call_at(
        self,
        deadline: float,
        callback: Callable[[], Awaitable[None]],
        *,
        name: str = "scheduled-task",
    ) -> ScheduledTask:
        handle = ScheduledTask(deadline=deadline, name=name)

        async def _runner() -> None:
            remaining = deadline - self._clock()
            if remaining > 0:
                await self._sleep_fn(remaining)
            handle._fired = True
            try:
                await callback()
            except Exception:
                logger.exception("scheduled_task_failed", extra={"extra": {"task": name}})

        handle._task = asyncio.create_task(_runner(), name=name)
        return handle

    def call_later(
        self,
        delay_seconds: float,
        callback: Callable[[], Awaitable[None]],
        *,
        name: str = "scheduled-task",
    ) -> ScheduledTask:
        return self.call_at(self._clock() + max(0.0, delay_seconds), callback, name=name)

    def call_soon(
        self,
        callback: Callable[[], Awaitable[None]],
        *,
        name: str = "scheduled-task",
    ) -> ScheduledTask:
        return self.call_at(self._clock(), callback, name=name)
