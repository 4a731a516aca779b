from __future__ import annotations

import logging
import uuid
from decimal import Decimal
from typing import Protocol

from eurozbot.adapters.token_gateway import TokenGateway
from eurozbot.domain.amounts import format_amount
from eurozbot.domain.models import CycleResult, TokenKind, TxAction, TxHandle, WrapOutcome
from eurozbot.logging_context import with_cycle_context, with_logging_context
from eurozbot.obs.events import EventSink
from eurozbot.observability import get_instrumentation
from eurozbot.services.action_policy import ActionPolicy
from eurozbot.services.error_classifier import describe_error
from eurozbot.services.timing_policy import TimingPolicy

logger = logging.getLogger(__name__)


class CycleControl(Protocol):
    """What a running cycle may ask of the scheduler that owns it."""

    def is_active(self) -> bool: ...

    async def pause(self, seconds: float) -> bool:
        """Wait ``seconds``; return False if the automation was stopped meanwhile."""
        ...

    def arm_next_cycle(self, delay_seconds: float) -> float:
        """Fix the next cycle's deadline ``delay_seconds`` from now and return it."""
        ...


class CycleOrchestrator:
    """Runs one automation cycle: mint check, allowance check, arm, wraps.

    Each step is awaited to completion before the next starts. A failing
    step is logged and treated as not having happened; the cycle moves on.
    """

    def __init__(
        self,
        gateway: TokenGateway,
        *,
        owner: str,
        action_policy: ActionPolicy,
        timing_policy: TimingPolicy,
        sink: EventSink,
        wraps_per_cycle: int = 3,
    ) -> None:
        if wraps_per_cycle < 1:
            raise ValueError("wraps_per_cycle must be >= 1")
        self._gateway = gateway
        self._owner = owner
        self._actions = action_policy
        self._timing = timing_policy
        self._sink = sink
        self._wraps_per_cycle = wraps_per_cycle

    async def run_cycle(self, control: CycleControl, cycle_id: str | None = None) -> CycleResult:
        result = CycleResult(cycle_id=cycle_id or uuid.uuid4().hex[:12])
        instrumentation = get_instrumentation()
        with with_cycle_context(result.cycle_id), instrumentation.trace(
            "automation_cycle", attrs={"cycle_id": result.cycle_id}
        ):
            self._sink.log("--- Starting automation cycle ---")
            await self._run_steps(control, result)
            self._sink.log("--- Cycle complete ---")
            logger.info("automation_cycle_completed", extra={"extra": result.as_log_fields()})
            instrumentation.counter(
                "automation_cycles_total", attrs={"stopped_early": result.stopped_early}
            )
            instrumentation.counter("automation_wraps_total", result.wraps_sent)
        return result

    async def _run_steps(self, control: CycleControl, result: CycleResult) -> None:
        result.minted = await self._mint_step()
        if result.minted and not await self._pause(control):
            result.stopped_early = True
            return
        if not control.is_active():
            result.stopped_early = True
            return

        result.approved = await self._approve_step()
        if result.approved and not await self._pause(control):
            result.stopped_early = True
            return
        if not control.is_active():
            result.stopped_early = True
            return

        # deadline is measured from the start of the wrap phase
        delay = self._timing.cycle_delay()
        control.arm_next_cycle(delay)
        self._sink.log(f"Timer started: next cycle in ~{int(delay // 60)} minutes from first wrap")

        total = self._wraps_per_cycle
        for attempt in range(1, total + 1):
            if not control.is_active():
                result.stopped_early = True
                return
            self._sink.log(f"Sending wrap {attempt}/{total}...")
            result.record_wrap(await self._wrap_step())
            if attempt < total and not await self._pause(control, " before next wrap"):
                result.stopped_early = True
                return

    async def _pause(self, control: CycleControl, suffix: str = "") -> bool:
        seconds = self._timing.action_pause()
        self._sink.log(f"Waiting {seconds:.1f}s{suffix}...")
        return await control.pause(seconds)

    async def _mint_step(self) -> bool:
        try:
            balance = await self._gateway.get_balance(TokenKind.EUROZ, self._owner)
            self._sink.log(f"Current EUROZ balance: {format_amount(balance)}")
            if not self._actions.should_mint(balance):
                return False
            threshold = format_amount(self._actions.config.mint_threshold)
            self._sink.log(f"Balance < {threshold}, minting...")
            handle = await self._gateway.submit_mint(self._owner)
            await self._confirm(handle, "Mint")
            self._sink.log("Mint confirmed")
            return True
        except Exception as exc:
            self._step_failed(TxAction.MINT, exc)
            return False

    async def _approve_step(self) -> bool:
        try:
            spender = self._gateway.wrapper_address
            allowance = await self._gateway.get_allowance(self._owner, spender)
            self._sink.log(f"Current allowance: {format_amount(allowance)} EUROZ")
            if not self._actions.should_approve(allowance):
                self._sink.log("Allowance sufficient, skipping approve")
                return False
            amount = self._actions.approve_amount()
            self._sink.log(f"Allowance low, approving {amount} EUROZ...")
            handle = await self._gateway.submit_approve(spender, Decimal(amount))
            await self._confirm(handle, "Approve")
            self._sink.log(f"Approved {amount} EUROZ")
            return True
        except Exception as exc:
            self._step_failed(TxAction.APPROVE, exc)
            return False

    async def _wrap_step(self) -> WrapOutcome:
        try:
            balance = await self._gateway.get_balance(TokenKind.EUROZ, self._owner)
            decision = self._actions.decide_wrap(balance)
            if decision is None:
                self._sink.log(
                    f"Insufficient balance ({format_amount(balance)} EUROZ), skipping wrap"
                )
                return WrapOutcome.SKIPPED
            amount = format_amount(decision.amount)
            if decision.capped_to_balance:
                self._sink.log(f"Adjusting amount to available balance: {amount} EUROZ")
            self._sink.log(f"Wrapping {amount} EUROZ (balance: {format_amount(balance)})...")
            handle = await self._gateway.submit_wrap(self._owner, decision.amount)
            await self._confirm(handle, "Wrap")
            self._sink.log(f"Wrapped {amount} EUROZ")
            return WrapOutcome.SENT
        except Exception as exc:
            self._step_failed(TxAction.WRAP, exc)
            return WrapOutcome.FAILED

    async def _confirm(self, handle: TxHandle, label: str) -> None:
        with with_logging_context(tx_hash=handle.tx_hash, action=handle.action.value):
            self._sink.log(f"{label} tx sent: {handle.tx_hash}")
            await self._gateway.await_confirmation(handle)

    def _step_failed(self, action: TxAction, exc: Exception) -> None:
        described = describe_error(exc)
        self._sink.log(f"{action.value.capitalize()} error: {described.reason}")
        logger.warning(
            "automation_step_failed",
            extra={
                "extra": {
                    "action": action.value,
                    "category": described.category.value,
                    "reason": described.reason,
                    "tx_hash": getattr(exc, "tx_hash", None),
                }
            },
        )
        get_instrumentation().counter(
            "automation_step_failures_total",
            attrs={"action": action.value, "category": described.category.value},
        )
