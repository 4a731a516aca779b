from __future__ import annotations

import asyncio
import dataclasses
import logging
from collections.abc import Callable
from dataclasses import dataclass

from eurozbot.domain.models import CycleResult, StatusCategory, StatusSeverity
from eurozbot.obs.events import EventSink
from eurozbot.observability import get_instrumentation
from eurozbot.services.countdown import CountdownReporter
from eurozbot.services.cycle_orchestrator import CycleOrchestrator
from eurozbot.services.task_scheduler import ScheduledTask, TaskScheduler
from eurozbot.services.timing_policy import TimingPolicy

logger = logging.getLogger(__name__)


@dataclass
class SchedulerState:
    running: bool = False
    next_cycle_deadline: float | None = None
    pending_cycle: ScheduledTask | None = None
    generation: int = 0
    cycle_in_progress: bool = False
    cycles_completed: int = 0


class _CycleControl:
    def __init__(self, scheduler: AutomationScheduler, generation: int) -> None:
        self._scheduler = scheduler
        self._generation = generation
        self.deadline: float | None = None

    def is_active(self) -> bool:
        return self._scheduler._is_current(self._generation)

    async def pause(self, seconds: float) -> bool:
        return await self._scheduler._pause(seconds, self._generation)

    def arm_next_cycle(self, delay_seconds: float) -> float:
        if not self.is_active():
            return self._scheduler._tasks.now() + delay_seconds
        self.deadline = self._scheduler._arm(delay_seconds)
        return self.deadline


class AutomationScheduler:
    """Start/stop control around the cycle orchestrator.

    Exactly one cycle runs at a time. Each ``start()`` opens a new session
    (generation); a cycle that belongs to an older session may finish its
    in-flight transaction but never re-arms or continues into the new one.
    """

    def __init__(
        self,
        orchestrator: CycleOrchestrator,
        timing: TimingPolicy,
        *,
        sink: EventSink,
        task_scheduler: TaskScheduler | None = None,
        countdown: CountdownReporter | None = None,
        on_cycle_complete: Callable[[CycleResult], None] | None = None,
    ) -> None:
        self._orchestrator = orchestrator
        self._timing = timing
        self._sink = sink
        self._tasks = task_scheduler or TaskScheduler()
        self._countdown = countdown
        self._on_cycle_complete = on_cycle_complete
        self._state = SchedulerState()
        self._cycle_lock = asyncio.Lock()
        self._pauses: set[asyncio.Future[None]] = set()
        self._handles: list[ScheduledTask] = []
        self._stopped = asyncio.Event()
        self._stopped.set()

    def is_running(self) -> bool:
        return self._state.running

    @property
    def state(self) -> SchedulerState:
        return dataclasses.replace(self._state)

    def start(self) -> bool:
        if self._state.running:
            logger.info("automation_start_ignored", extra={"extra": {"reason": "already_running"}})
            return False
        self._state.generation += 1
        self._state.running = True
        self._state.next_cycle_deadline = None
        self._stopped.clear()
        self._sink.status(StatusCategory.AUTOMATION, StatusSeverity.SUCCESS, "Automation started")
        self._sink.log("Automation started")
        logger.info("automation_started", extra={"extra": {"generation": self._state.generation}})
        self._schedule(self._state.generation, None)
        return True

    def stop(self) -> bool:
        if not self._state.running:
            return False
        self._state.running = False
        pending = self._state.pending_cycle
        if pending is not None:
            pending.cancel()
        self._state.pending_cycle = None
        self._state.next_cycle_deadline = None
        if self._countdown is not None:
            self._countdown.stop()
        for sleeper in list(self._pauses):
            sleeper.cancel()
        self._stopped.set()
        self._sink.status(StatusCategory.AUTOMATION, StatusSeverity.INFO, "Automation stopped")
        self._sink.log("Automation stopped by user")
        logger.info(
            "automation_stopped",
            extra={
                "extra": {
                    "generation": self._state.generation,
                    "cycle_in_progress": self._state.cycle_in_progress,
                }
            },
        )
        return True

    async def wait_stopped(self) -> None:
        await self._stopped.wait()

    async def wait_idle(self) -> None:
        """Wait until no cycle is pending or executing."""
        while self._handles:
            handle = self._handles.pop(0)
            await handle.wait()

    async def shutdown(self) -> None:
        self.stop()
        await self.wait_idle()
        logger.info("automation_shutdown", extra={"extra": self._counts()})

    def _is_current(self, generation: int) -> bool:
        return self._state.running and self._state.generation == generation

    def _schedule(self, generation: int, deadline: float | None) -> None:
        name = f"automation-cycle-{generation}"
        if deadline is None or deadline <= self._tasks.now():
            handle = self._tasks.call_soon(lambda: self._fire(generation), name=name)
        else:
            handle = self._tasks.call_at(deadline, lambda: self._fire(generation), name=name)
        self._state.pending_cycle = handle
        self._handles = [h for h in self._handles if not h.done]
        self._handles.append(handle)

    async def _fire(self, generation: int) -> None:
        async with self._cycle_lock:
            if not self._is_current(generation):
                return
            self._state.pending_cycle = None
            self._state.cycle_in_progress = True
            control = _CycleControl(self, generation)
            result: CycleResult | None = None
            try:
                result = await self._orchestrator.run_cycle(control)
            except Exception:
                logger.exception(
                    "automation_cycle_crashed", extra={"extra": {"generation": generation}}
                )
                get_instrumentation().counter("automation_cycle_crashes_total")
                self._sink.log("Cycle failed unexpectedly, continuing")
            finally:
                self._state.cycle_in_progress = False
            if result is not None:
                self._state.cycles_completed += 1
                if self._on_cycle_complete is not None:
                    try:
                        self._on_cycle_complete(result)
                    except Exception:
                        logger.exception(
                            "automation_cycle_hook_failed",
                            extra={"extra": {"generation": generation}},
                        )
            if self._is_current(generation):
                self._rearm(generation, control)

    def _rearm(self, generation: int, control: _CycleControl) -> None:
        deadline = control.deadline
        if deadline is None:
            # the cycle ended before its wrap phase armed a deadline
            deadline = self._arm(self._timing.cycle_delay())
        self._schedule(generation, deadline)
        logger.info(
            "automation_cycle_rearmed",
            extra={"extra": {"deadline": deadline, "immediate": deadline <= self._tasks.now()}},
        )

    def _arm(self, delay_seconds: float) -> float:
        deadline = self._tasks.now() + delay_seconds
        self._state.next_cycle_deadline = deadline
        if self._countdown is not None:
            self._countdown.start(deadline)
        return deadline

    async def _pause(self, seconds: float, generation: int) -> bool:
        if not self._is_current(generation):
            return False
        sleeper = asyncio.ensure_future(self._tasks.sleep(seconds))
        self._pauses.add(sleeper)
        try:
            await asyncio.wait({sleeper})
        finally:
            self._pauses.discard(sleeper)
            if not sleeper.done():
                sleeper.cancel()
        if sleeper.cancelled():
            return False
        sleeper.result()
        return self._is_current(generation)

    def _counts(self) -> dict[str, object]:
        return {
            "generation": self._state.generation,
            "cycles_completed": self._state.cycles_completed,
        }
