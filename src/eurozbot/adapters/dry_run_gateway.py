from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass, field
from decimal import Decimal

from eurozbot.domain.amounts import to_base_units
from eurozbot.domain.errors import ContractRevertedError
from eurozbot.domain.models import TokenKind, TxAction, TxHandle, TxReceipt

logger = logging.getLogger(__name__)

DRY_RUN_ADDRESS = "0x000000000000000000000000000000000000dEaD"
DRY_RUN_WRAPPER_ADDRESS = "0xCD25e0e4972e075C371948c7137Bcd498C1F4e89"


@dataclass
class _PendingTx:
    action: TxAction
    to: str
    amount: Decimal


@dataclass
class DryRunTokenGateway:
    """In-process simulation of the EUROZ token and its wrapper.

    Transactions take effect on confirmation, mirroring how balances only
    move once a block includes them. Reverts follow the real contracts:
    wrapping more than the balance or the allowance fails.
    """

    mint_amount: Decimal = Decimal("10")
    euroz: dict[str, Decimal] = field(default_factory=dict)
    ceuroz: dict[str, Decimal] = field(default_factory=dict)
    allowances: dict[tuple[str, str], Decimal] = field(default_factory=dict)
    paused: bool = False
    decimals: int = 6
    wrapper: str = DRY_RUN_WRAPPER_ADDRESS
    sender: str = DRY_RUN_ADDRESS
    submitted: list[TxHandle] = field(default_factory=list)
    _pending: dict[str, _PendingTx] = field(default_factory=dict, init=False, repr=False)
    _nonce: int = field(default=0, init=False, repr=False)

    @property
    def wrapper_address(self) -> str:
        return self.wrapper

    async def get_balance(self, token: TokenKind, owner: str) -> Decimal:
        ledger = self.euroz if token is TokenKind.EUROZ else self.ceuroz
        return ledger.get(owner, Decimal("0"))

    async def get_allowance(self, owner: str, spender: str) -> Decimal:
        return self.allowances.get((owner, spender), Decimal("0"))

    async def submit_mint(self, to: str) -> TxHandle:
        return self._submit(_PendingTx(TxAction.MINT, to, self.mint_amount))

    async def submit_approve(self, spender: str, amount: Decimal) -> TxHandle:
        to_base_units(amount, self.decimals)
        return self._submit(_PendingTx(TxAction.APPROVE, spender, amount))

    async def submit_wrap(self, to: str, amount: Decimal) -> TxHandle:
        to_base_units(amount, self.decimals)
        return self._submit(_PendingTx(TxAction.WRAP, to, amount))

    async def await_confirmation(self, handle: TxHandle) -> TxReceipt:
        pending = self._pending.pop(handle.tx_hash)
        if self.paused:
            raise ContractRevertedError("execution reverted: EnforcedPause()", tx_hash=handle.tx_hash)
        if pending.action is TxAction.MINT:
            self.euroz[pending.to] = self.euroz.get(pending.to, Decimal("0")) + pending.amount
        elif pending.action is TxAction.APPROVE:
            self.allowances[(self.sender, pending.to)] = pending.amount
        else:
            self._apply_wrap(pending, handle.tx_hash)
        logger.debug(
            "dry_run_tx_confirmed",
            extra={"extra": {"tx_hash": handle.tx_hash, "action": pending.action.value}},
        )
        return TxReceipt(tx_hash=handle.tx_hash, status=1, block_number=self._nonce)

    def _apply_wrap(self, pending: _PendingTx, tx_hash: str) -> None:
        key = (self.sender, self.wrapper)
        allowance = self.allowances.get(key, Decimal("0"))
        balance = self.euroz.get(self.sender, Decimal("0"))
        if allowance < pending.amount:
            raise ContractRevertedError(
                "execution reverted: ERC20InsufficientAllowance", tx_hash=tx_hash
            )
        if balance < pending.amount:
            raise ContractRevertedError("execution reverted: ERC20InsufficientBalance", tx_hash=tx_hash)
        self.allowances[key] = allowance - pending.amount
        self.euroz[self.sender] = balance - pending.amount
        self.ceuroz[pending.to] = self.ceuroz.get(pending.to, Decimal("0")) + pending.amount

    def _submit(self, pending: _PendingTx) -> TxHandle:
        self._nonce += 1
        digest = hashlib.sha256(f"{pending.action}:{self._nonce}".encode()).hexdigest()
        handle = TxHandle(tx_hash=f"0x{digest}", action=pending.action)
        self._pending[handle.tx_hash] = pending
        self.submitted.append(handle)
        return handle
