from __future__ import annotations

import logging
from collections.abc import Mapping
from decimal import Decimal
from typing import Any

import aiohttp
from web3 import AsyncHTTPProvider, AsyncWeb3, Web3

from eurozbot.adapters.wallet import WalletSession
from eurozbot.config import Settings
from eurozbot.domain.amounts import from_base_units, to_base_units
from eurozbot.domain.errors import ContractRevertedError, WalletError
from eurozbot.domain.models import TokenKind, TxAction, TxHandle, TxReceipt
from eurozbot.observability import get_instrumentation
from eurozbot.services.error_classifier import as_wallet_error

logger = logging.getLogger(__name__)


def _fn(name: str, inputs: list[tuple[str, str]], outputs: list[str], mutability: str) -> dict:
    return {
        "type": "function",
        "name": name,
        "stateMutability": mutability,
        "inputs": [{"name": arg, "type": kind} for arg, kind in inputs],
        "outputs": [{"name": "", "type": kind} for kind in outputs],
    }


EUROZ_ABI = [
    _fn("mint", [("to", "address")], [], "nonpayable"),
    _fn("balanceOf", [("account", "address")], ["uint256"], "view"),
    _fn("approve", [("spender", "address"), ("amount", "uint256")], ["bool"], "nonpayable"),
    _fn("allowance", [("owner", "address"), ("spender", "address")], ["uint256"], "view"),
    _fn("decimals", [], ["uint8"], "view"),
]

CEUROZ_ABI = [
    _fn("wrap", [("to", "address"), ("amount", "uint256")], [], "nonpayable"),
    _fn("balanceOf", [("account", "address")], ["uint256"], "view"),
    _fn("decimals", [], ["uint8"], "view"),
]


def build_web3(settings: Settings) -> AsyncWeb3:
    provider = AsyncHTTPProvider(
        settings.rpc_url,
        request_kwargs={"timeout": aiohttp.ClientTimeout(total=settings.rpc_timeout_seconds)},
    )
    return AsyncWeb3(provider)


def receipt_from_mapping(tx_hash: str, receipt: Mapping[str, Any]) -> TxReceipt:
    status = receipt.get("status")
    block_number = receipt.get("blockNumber")
    gas_used = receipt.get("gasUsed")
    return TxReceipt(
        tx_hash=tx_hash,
        status=int(status) if status is not None else 0,
        block_number=int(block_number) if block_number is not None else None,
        gas_used=int(gas_used) if gas_used is not None else None,
    )


class Web3TokenGateway:
    def __init__(
        self,
        w3: AsyncWeb3,
        session: WalletSession,
        *,
        euroz_address: str,
        ceuroz_address: str,
        chain_id: int,
        decimals: int = 6,
        confirm_timeout_seconds: float = 180.0,
    ) -> None:
        self._w3 = w3
        self._session = session
        self._chain_id = chain_id
        self._decimals = decimals
        self._confirm_timeout = confirm_timeout_seconds
        self._ceuroz_address = Web3.to_checksum_address(ceuroz_address)
        self._euroz = w3.eth.contract(
            address=Web3.to_checksum_address(euroz_address), abi=EUROZ_ABI
        )
        self._ceuroz = w3.eth.contract(address=self._ceuroz_address, abi=CEUROZ_ABI)

    @classmethod
    def from_settings(
        cls, w3: AsyncWeb3, session: WalletSession, settings: Settings
    ) -> Web3TokenGateway:
        return cls(
            w3,
            session,
            euroz_address=settings.euroz_address,
            ceuroz_address=settings.ceuroz_address,
            chain_id=settings.chain_id,
            decimals=settings.token_decimals,
            confirm_timeout_seconds=settings.tx_confirm_timeout_seconds,
        )

    @property
    def wrapper_address(self) -> str:
        return self._ceuroz_address

    async def get_balance(self, token: TokenKind, owner: str) -> Decimal:
        contract = self._euroz if token is TokenKind.EUROZ else self._ceuroz
        try:
            raw = await contract.functions.balanceOf(Web3.to_checksum_address(owner)).call()
        except Exception as exc:
            raise as_wallet_error(exc) from exc
        return from_base_units(raw, self._decimals)

    async def get_allowance(self, owner: str, spender: str) -> Decimal:
        try:
            raw = await self._euroz.functions.allowance(
                Web3.to_checksum_address(owner), Web3.to_checksum_address(spender)
            ).call()
        except Exception as exc:
            raise as_wallet_error(exc) from exc
        return from_base_units(raw, self._decimals)

    async def submit_mint(self, to: str) -> TxHandle:
        call = self._euroz.functions.mint(Web3.to_checksum_address(to))
        return await self._send(TxAction.MINT, call)

    async def submit_approve(self, spender: str, amount: Decimal) -> TxHandle:
        call = self._euroz.functions.approve(
            Web3.to_checksum_address(spender), to_base_units(amount, self._decimals)
        )
        return await self._send(TxAction.APPROVE, call)

    async def submit_wrap(self, to: str, amount: Decimal) -> TxHandle:
        call = self._ceuroz.functions.wrap(
            Web3.to_checksum_address(to), to_base_units(amount, self._decimals)
        )
        return await self._send(TxAction.WRAP, call)

    async def await_confirmation(self, handle: TxHandle) -> TxReceipt:
        try:
            raw_receipt = await self._w3.eth.wait_for_transaction_receipt(
                handle.tx_hash, timeout=self._confirm_timeout
            )
        except Exception as exc:
            raise as_wallet_error(exc, tx_hash=handle.tx_hash) from exc
        receipt = receipt_from_mapping(handle.tx_hash, raw_receipt)
        get_instrumentation().counter(
            "tx_confirmed_total",
            attrs={"action": handle.action.value, "succeeded": receipt.succeeded},
        )
        if not receipt.succeeded:
            raise ContractRevertedError(
                f"transaction {handle.tx_hash} reverted", tx_hash=handle.tx_hash
            )
        return receipt

    async def _send(self, action: TxAction, call: Any) -> TxHandle:
        sender = self._session.address
        try:
            if self._session.is_private_key_mode:
                account = self._session.account
                nonce = await self._w3.eth.get_transaction_count(account.address, "pending")
                tx = await call.build_transaction(
                    {"from": account.address, "nonce": nonce, "chainId": self._chain_id}
                )
                signed = account.sign_transaction(tx)
                raw_hash = await self._w3.eth.send_raw_transaction(signed.raw_transaction)
            else:
                raw_hash = await call.transact({"from": sender})
        except WalletError:
            raise
        except Exception as exc:
            raise as_wallet_error(exc) from exc
        tx_hash = Web3.to_hex(raw_hash)
        logger.info(
            "tx_submitted",
            extra={"extra": {"action": action.value, "tx_hash": tx_hash, "from": sender}},
        )
        get_instrumentation().counter("tx_submitted_total", attrs={"action": action.value})
        return TxHandle(tx_hash=tx_hash, action=action)
