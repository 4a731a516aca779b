from __future__ import annotations

import asyncio
from decimal import Decimal

import pytest

from eurozbot.adapters.dry_run_gateway import DryRunTokenGateway
from eurozbot.domain.errors import ContractRevertedError, ValidationError
from eurozbot.domain.models import TokenKind, TxAction


def test_effects_apply_only_on_confirmation() -> None:
    gateway = DryRunTokenGateway()

    async def _run() -> None:
        handle = await gateway.submit_mint(gateway.sender)
        assert await gateway.get_balance(TokenKind.EUROZ, gateway.sender) == Decimal("0")
        receipt = await gateway.await_confirmation(handle)
        assert receipt.succeeded
        assert receipt.tx_hash == handle.tx_hash

    asyncio.run(_run())

    assert gateway.euroz[gateway.sender] == Decimal("10")
    assert [handle.action for handle in gateway.submitted] == [TxAction.MINT]


def test_tx_hashes_are_unique_and_hex() -> None:
    gateway = DryRunTokenGateway()

    async def _run() -> list[str]:
        return [(await gateway.submit_mint(gateway.sender)).tx_hash for _ in range(3)]

    hashes = asyncio.run(_run())

    assert len(set(hashes)) == 3
    assert all(h.startswith("0x") and len(h) == 66 for h in hashes)


def test_approve_replaces_allowance_and_wrap_consumes_it() -> None:
    gateway = DryRunTokenGateway()
    gateway.euroz[gateway.sender] = Decimal("10")

    async def _run() -> None:
        await gateway.await_confirmation(await gateway.submit_approve(gateway.wrapper, Decimal("4")))
        await gateway.await_confirmation(await gateway.submit_wrap(gateway.sender, Decimal("1.5")))

    asyncio.run(_run())

    assert gateway.allowances[(gateway.sender, gateway.wrapper)] == Decimal("2.5")
    assert gateway.euroz[gateway.sender] == Decimal("8.5")
    assert gateway.ceuroz[gateway.sender] == Decimal("1.5")


def test_approve_is_recorded_for_the_named_spender() -> None:
    gateway = DryRunTokenGateway()
    other = "0x00000000000000000000000000000000000000aa"

    async def _run() -> tuple[Decimal, Decimal]:
        await gateway.await_confirmation(await gateway.submit_approve(other, Decimal("7")))
        return (
            await gateway.get_allowance(gateway.sender, other),
            await gateway.get_allowance(gateway.sender, gateway.wrapper_address),
        )

    assert asyncio.run(_run()) == (Decimal("7"), Decimal("0"))


@pytest.mark.parametrize(
    ("balance", "allowance", "reason"),
    [("10", "1", "ERC20InsufficientAllowance"), ("1", "10", "ERC20InsufficientBalance")],
)
def test_wrap_beyond_balance_or_allowance_reverts(balance: str, allowance: str, reason: str) -> None:
    gateway = DryRunTokenGateway()
    gateway.euroz[gateway.sender] = Decimal(balance)
    gateway.allowances[(gateway.sender, gateway.wrapper)] = Decimal(allowance)

    async def _run() -> None:
        handle = await gateway.submit_wrap(gateway.sender, Decimal("2"))
        with pytest.raises(ContractRevertedError, match=reason) as excinfo:
            await gateway.await_confirmation(handle)
        assert excinfo.value.tx_hash == handle.tx_hash

    asyncio.run(_run())

    assert gateway.euroz[gateway.sender] == Decimal(balance)


def test_paused_contract_reverts_every_transaction() -> None:
    gateway = DryRunTokenGateway(paused=True)

    async def _run() -> None:
        handle = await gateway.submit_mint(gateway.sender)
        with pytest.raises(ContractRevertedError, match="EnforcedPause"):
            await gateway.await_confirmation(handle)

    asyncio.run(_run())

    assert gateway.euroz == {}


def test_amounts_beyond_token_precision_are_rejected() -> None:
    gateway = DryRunTokenGateway()

    with pytest.raises(ValidationError):
        asyncio.run(gateway.submit_wrap(gateway.sender, Decimal("0.0000001")))

    assert gateway.submitted == []
