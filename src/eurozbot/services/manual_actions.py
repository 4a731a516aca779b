from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from decimal import Decimal

from eurozbot.adapters.token_gateway import TokenGateway
from eurozbot.domain.amounts import TOKEN_DECIMALS, format_amount, parse_user_amount
from eurozbot.domain.errors import ValidationError
from eurozbot.domain.models import (
    BalanceSnapshot,
    StatusCategory,
    StatusSeverity,
    TokenKind,
    TxAction,
    TxHandle,
    TxReceipt,
)
from eurozbot.obs.events import EventSink
from eurozbot.observability import get_instrumentation
from eurozbot.services.error_classifier import describe_error

logger = logging.getLogger(__name__)


class ManualActionService:
    """One-shot mint/approve/wrap triggered by the operator.

    Failures are reported on the status sink and returned as ``None``; there
    is no automatic retry.
    """

    def __init__(
        self,
        gateway: TokenGateway,
        *,
        owner: str,
        sink: EventSink,
        explorer_link: Callable[[str], str],
        decimals: int = TOKEN_DECIMALS,
        mint_amount: Decimal = Decimal("10"),
    ) -> None:
        self._gateway = gateway
        self._owner = owner
        self._sink = sink
        self._explorer_link = explorer_link
        self._decimals = decimals
        self._mint_amount = mint_amount

    async def balances(self) -> BalanceSnapshot:
        euroz = await self._gateway.get_balance(TokenKind.EUROZ, self._owner)
        ceuroz: Decimal | None
        try:
            ceuroz = await self._gateway.get_balance(TokenKind.CEUROZ, self._owner)
        except Exception as exc:
            # confidential balances are not readable as plain uint256
            logger.info(
                "ceuroz_balance_unavailable",
                extra={"extra": {"reason": describe_error(exc).reason}},
            )
            ceuroz = None
        return BalanceSnapshot(address=self._owner, euroz=euroz, ceuroz=ceuroz)

    async def mint(self) -> TxReceipt | None:
        return await self._run(
            StatusCategory.MINT,
            TxAction.MINT,
            waiting="Waiting for transaction confirmation...",
            sent="Transaction sent! Waiting for confirmation...",
            success=f"Successfully minted {format_amount(self._mint_amount)} EUROZ!",
            submit=lambda: self._gateway.submit_mint(self._owner),
            refresh_balances=True,
        )

    async def approve(self, amount_text: str | None) -> TxReceipt | None:
        amount = self._parse_amount(amount_text)
        if amount is None:
            return None
        spender = self._gateway.wrapper_address
        return await self._run(
            StatusCategory.WRAP,
            TxAction.APPROVE,
            waiting="Waiting for approval transaction...",
            sent="Approval sent! Waiting for confirmation...",
            success="Approved!",
            submit=lambda: self._gateway.submit_approve(spender, amount),
        )

    async def wrap(self, amount_text: str | None) -> TxReceipt | None:
        amount = self._parse_amount(amount_text)
        if amount is None:
            return None
        return await self._run(
            StatusCategory.WRAP,
            TxAction.WRAP,
            waiting="Waiting for wrap transaction...",
            sent="Wrap sent! Waiting for confirmation...",
            success=f"Successfully wrapped {format_amount(amount)} EUROZ to cEUROZ!",
            submit=lambda: self._gateway.submit_wrap(self._owner, amount),
            refresh_balances=True,
        )

    def _parse_amount(self, amount_text: str | None) -> Decimal | None:
        try:
            return parse_user_amount(amount_text, self._decimals)
        except ValidationError as exc:
            self._sink.status(StatusCategory.WRAP, StatusSeverity.ERROR, str(exc))
            return None

    async def _run(
        self,
        category: StatusCategory,
        action: TxAction,
        *,
        waiting: str,
        sent: str,
        success: str,
        submit: Callable[[], Awaitable[TxHandle]],
        refresh_balances: bool = False,
    ) -> TxReceipt | None:
        self._sink.status(category, StatusSeverity.INFO, waiting)
        tx_hash: str | None = None
        try:
            handle = await submit()
            tx_hash = handle.tx_hash
            link = self._explorer_link(tx_hash)
            self._sink.status(category, StatusSeverity.INFO, f"{sent} {link}")
            receipt = await self._gateway.await_confirmation(handle)
        except Exception as exc:
            described = describe_error(exc)
            self._sink.status(category, StatusSeverity.ERROR, described.reason)
            logger.warning(
                "manual_action_failed",
                extra={
                    "extra": {
                        "action": action.value,
                        "category": described.category.value,
                        "reason": described.reason,
                        "tx_hash": tx_hash,
                    }
                },
            )
            get_instrumentation().counter(
                "manual_action_failures_total", attrs={"action": action.value}
            )
            return None
        self._sink.status(category, StatusSeverity.SUCCESS, f"{success} {link}")
        logger.info(
            "manual_action_confirmed",
            extra={"extra": {"action": action.value, "tx_hash": receipt.tx_hash}},
        )
        if refresh_balances:
            await self._report_balances()
        return receipt

    async def _report_balances(self) -> None:
        try:
            snapshot = await self.balances()
        except Exception as exc:
            # the action is already confirmed
            logger.warning(
                "balance_refresh_failed",
                extra={"extra": {"reason": describe_error(exc).reason}},
            )
            return
        self._sink.status(
            StatusCategory.WALLET,
            StatusSeverity.INFO,
            snapshot.describe().replace("\n", ", "),
        )
