from __future__ import annotations

import asyncio
from decimal import Decimal

import aiohttp
import pytest
from web3 import Web3
from web3.exceptions import TimeExhausted

from eurozbot.adapters.wallet import WalletSession
from eurozbot.adapters.web3_gateway import Web3TokenGateway, receipt_from_mapping
from eurozbot.config import WalletMode
from eurozbot.domain.errors import ContractRevertedError, NetworkError
from eurozbot.domain.models import TokenKind, TxAction, TxHandle

TEST_KEY = "0x4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"
EUROZ = Web3.to_checksum_address("0xed1b7de57918f6b7c8a7a7767557f09a80ec2a35")
CEUROZ = Web3.to_checksum_address("0xcd25e0e4972e075c371948c7137bcd498c1f4e89")
NODE_ACCOUNT = Web3.to_checksum_address("0x000000000000000000000000000000000000beef")
SENT_HASH = b"\x11" * 32


class _Call:
    def __init__(self, contract: _Contract, name: str, args: tuple) -> None:
        self._contract = contract
        self.name = name
        self.args = args

    async def call(self):
        result = self._contract.reads[self.name]
        if isinstance(result, Exception):
            raise result
        return result

    async def build_transaction(self, params: dict) -> dict:
        self._contract.eth.built.append((self.name, self.args, params))
        return {
            "to": self._contract.address,
            "value": 0,
            "gas": 100_000,
            "gasPrice": 1_000_000_000,
            "nonce": params["nonce"],
            "chainId": params["chainId"],
            "data": "0x",
        }

    async def transact(self, params: dict) -> bytes:
        self._contract.eth.transacted.append((self.name, self.args, params))
        return SENT_HASH


class _Functions:
    def __init__(self, contract: _Contract) -> None:
        self._contract = contract

    def __getattr__(self, name: str):
        return lambda *args: _Call(self._contract, name, args)


class _Contract:
    def __init__(self, address: str, eth: _Eth) -> None:
        self.address = address
        self.eth = eth
        self.reads: dict[str, object] = {}
        self.functions = _Functions(self)


class _Eth:
    def __init__(self) -> None:
        self.contracts: dict[str, _Contract] = {}
        self.built: list[tuple] = []
        self.transacted: list[tuple] = []
        self.raw_sent: list[bytes] = []
        self.receipt: dict | Exception = {"status": 1, "blockNumber": 7, "gasUsed": 21_000}

    def contract(self, address: str, abi: list) -> _Contract:
        contract = _Contract(address, self)
        self.contracts[address] = contract
        return contract

    async def get_transaction_count(self, address: str, block: str) -> int:
        assert block == "pending"
        return 5

    async def send_raw_transaction(self, raw: bytes) -> bytes:
        self.raw_sent.append(raw)
        return SENT_HASH

    async def wait_for_transaction_receipt(self, tx_hash: str, timeout: float):
        if isinstance(self.receipt, Exception):
            raise self.receipt
        return self.receipt


class _W3:
    def __init__(self) -> None:
        self.eth = _Eth()


def _gateway(session: WalletSession) -> tuple[Web3TokenGateway, _Eth]:
    w3 = _W3()
    gateway = Web3TokenGateway(
        w3, session, euroz_address=EUROZ, ceuroz_address=CEUROZ, chain_id=11155111
    )
    return gateway, w3.eth


@pytest.fixture
def key_session():
    session = WalletSession.from_private_key(TEST_KEY)
    yield session
    session.discard()


def test_balances_are_converted_from_base_units(key_session) -> None:
    gateway, eth = _gateway(key_session)
    eth.contracts[EUROZ].reads["balanceOf"] = 12_500_000
    eth.contracts[EUROZ].reads["allowance"] = 3_000_000_000

    async def _run():
        return (
            await gateway.get_balance(TokenKind.EUROZ, key_session.address),
            await gateway.get_allowance(key_session.address, gateway.wrapper_address),
        )

    assert asyncio.run(_run()) == (Decimal("12.5"), Decimal("3000"))
    assert gateway.wrapper_address == CEUROZ


def test_read_failures_become_wallet_errors(key_session) -> None:
    gateway, eth = _gateway(key_session)
    eth.contracts[CEUROZ].reads["balanceOf"] = aiohttp.ClientConnectionError("reset by peer")

    with pytest.raises(NetworkError, match="reset by peer"):
        asyncio.run(gateway.get_balance(TokenKind.CEUROZ, key_session.address))


def test_private_key_mode_signs_locally(key_session, instrumentation) -> None:
    gateway, eth = _gateway(key_session)

    handle = asyncio.run(gateway.submit_wrap(key_session.address, Decimal("1.25")))

    assert handle == TxHandle(tx_hash="0x" + "11" * 32, action=TxAction.WRAP)
    name, args, params = eth.built[0]
    assert name == "wrap"
    assert args == (key_session.address, 1_250_000)
    assert params == {"from": key_session.address, "nonce": 5, "chainId": 11155111}
    assert len(eth.raw_sent) == 1
    assert eth.transacted == []
    assert instrumentation.counters["tx_submitted_total{action=wrap}"] == 1


def test_external_signer_mode_delegates_to_node() -> None:
    session = WalletSession(address=NODE_ACCOUNT, mode=WalletMode.EXTERNAL_SIGNER)
    gateway, eth = _gateway(session)

    asyncio.run(gateway.submit_approve(CEUROZ, Decimal("1000")))

    assert eth.transacted == [("approve", (CEUROZ, 1_000_000_000), {"from": NODE_ACCOUNT})]
    assert eth.raw_sent == []


def test_reverted_receipt_raises_with_tx_hash(key_session) -> None:
    gateway, eth = _gateway(key_session)
    eth.receipt = {"status": 0, "blockNumber": 9}
    handle = TxHandle(tx_hash="0xabc", action=TxAction.MINT)

    with pytest.raises(ContractRevertedError) as excinfo:
        asyncio.run(gateway.await_confirmation(handle))

    assert excinfo.value.tx_hash == "0xabc"


def test_confirmation_timeout_is_a_network_error(key_session) -> None:
    gateway, eth = _gateway(key_session)
    eth.receipt = TimeExhausted("not in the chain after 180 seconds")

    with pytest.raises(NetworkError) as excinfo:
        asyncio.run(gateway.await_confirmation(TxHandle(tx_hash="0xdef", action=TxAction.WRAP)))

    assert excinfo.value.tx_hash == "0xdef"


def test_successful_confirmation_returns_receipt(key_session) -> None:
    gateway, _ = _gateway(key_session)

    receipt = asyncio.run(gateway.await_confirmation(TxHandle("0x1", TxAction.MINT)))

    assert receipt.succeeded
    assert (receipt.block_number, receipt.gas_used) == (7, 21_000)


def test_receipt_from_mapping_defaults() -> None:
    receipt = receipt_from_mapping("0x1", {})

    assert receipt.status == 0
    assert receipt.block_number is None
    assert receipt.succeeded is False
