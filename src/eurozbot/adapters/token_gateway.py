from __future__ import annotations

from decimal import Decimal
from typing import Protocol

from eurozbot.domain.models import TokenKind, TxHandle, TxReceipt


class TokenGateway(Protocol):
    """Remote EUROZ/cEUROZ operations as seen by the client.

    Amounts are token units (not base units) with at most the token's
    decimals of precision; implementations convert at the wire.
    """

    @property
    def wrapper_address(self) -> str: ...

    async def get_balance(self, token: TokenKind, owner: str) -> Decimal: ...

    async def get_allowance(self, owner: str, spender: str) -> Decimal: ...

    async def submit_mint(self, to: str) -> TxHandle: ...

    async def submit_approve(self, spender: str, amount: Decimal) -> TxHandle: ...

    async def submit_wrap(self, to: str, amount: Decimal) -> TxHandle: ...

    async def await_confirmation(self, handle: TxHandle) -> TxReceipt: ...
