from __future__ import annotations

import asyncio
import logging
from decimal import Decimal

from eurozbot.domain.errors import NetworkError, UserRejectedError
from eurozbot.domain.models import StatusCategory, StatusSeverity, TokenKind
from eurozbot.obs.events import InMemoryEventSink
from eurozbot.services.manual_actions import ManualActionService


def _link(tx_hash: str) -> str:
    return f"https://explorer.test/tx/{tx_hash}"


def _service(gateway, sink) -> ManualActionService:
    return ManualActionService(gateway, owner=gateway.sender, sink=sink, explorer_link=_link)


def _messages(sink: InMemoryEventSink, category: StatusCategory) -> list[str]:
    return [event.message for event in sink.statuses_for(category)]


def test_mint_reports_progress_and_credits_balance(make_gateway) -> None:
    gateway = make_gateway()
    sink = InMemoryEventSink()

    receipt = asyncio.run(_service(gateway, sink).mint())

    assert receipt is not None and receipt.succeeded
    link = _link(receipt.tx_hash)
    assert _messages(sink, StatusCategory.MINT) == [
        "Waiting for transaction confirmation...",
        f"Transaction sent! Waiting for confirmation... {link}",
        f"Successfully minted 10 EUROZ! {link}",
    ]
    assert gateway.euroz[gateway.sender] == Decimal("10")
    assert _messages(sink, StatusCategory.WALLET) == ["EUROZ: 10, cEUROZ: 0"]


def test_approve_sets_allowance_for_wrapper(make_gateway) -> None:
    gateway = make_gateway()
    sink = InMemoryEventSink()

    receipt = asyncio.run(_service(gateway, sink).approve("250.5"))

    assert receipt is not None
    assert gateway.allowances[(gateway.sender, gateway.wrapper)] == Decimal("250.5")
    messages = _messages(sink, StatusCategory.WRAP)
    assert messages[0] == "Waiting for approval transaction..."
    assert messages[-1].startswith("Approved! ")


def test_wrap_moves_euroz_into_ceuroz(make_gateway) -> None:
    gateway = make_gateway(euroz="5", allowance="5")
    sink = InMemoryEventSink()

    receipt = asyncio.run(_service(gateway, sink).wrap("1.25"))

    assert receipt is not None
    assert gateway.euroz[gateway.sender] == Decimal("3.75")
    assert gateway.ceuroz[gateway.sender] == Decimal("1.25")
    assert _messages(sink, StatusCategory.WRAP)[-1] == (
        f"Successfully wrapped 1.25 EUROZ to cEUROZ! {_link(receipt.tx_hash)}"
    )
    assert _messages(sink, StatusCategory.WALLET) == ["EUROZ: 3.75, cEUROZ: 1.25"]


def test_invalid_amount_is_rejected_before_submission(make_gateway) -> None:
    gateway = make_gateway(euroz="5", allowance="5")
    sink = InMemoryEventSink()
    service = _service(gateway, sink)

    for text in ("", "abc", "0", "-1", "0.0000001"):
        assert asyncio.run(service.wrap(text)) is None

    assert gateway.submitted == []
    errors = [event for event in sink.statuses if event.severity is StatusSeverity.ERROR]
    assert len(errors) == 5
    assert errors[0].message == "Please enter a valid amount"
    assert errors[-1].message == "Amount supports at most 6 decimal places"


def test_insufficient_allowance_revert_reports_reason(make_gateway, instrumentation) -> None:
    gateway = make_gateway(euroz="5", allowance="0")
    sink = InMemoryEventSink()

    assert asyncio.run(_service(gateway, sink).wrap("1")) is None

    last = sink.statuses[-1]
    assert last.severity is StatusSeverity.ERROR
    assert last.message == "Insufficient allowance - please approve first"
    assert instrumentation.counters["manual_action_failures_total{action=wrap}"] == 1


def test_rejected_signature_is_reported(make_gateway, caplog) -> None:
    gateway = make_gateway()

    async def _rejected(to: str):
        raise UserRejectedError("user rejected")

    gateway.submit_mint = _rejected  # type: ignore[method-assign]
    sink = InMemoryEventSink()

    with caplog.at_level(logging.WARNING, logger="eurozbot.services.manual_actions"):
        assert asyncio.run(_service(gateway, sink).mint()) is None

    assert _messages(sink, StatusCategory.MINT)[-1] == "Transaction rejected by user"
    assert "manual_action_failed" in caplog.text


def test_balances_tolerate_unreadable_confidential_balance(make_gateway) -> None:
    gateway = make_gateway(euroz="7.5")
    original = gateway.get_balance

    async def _balance(token: TokenKind, owner: str) -> Decimal:
        if token is TokenKind.CEUROZ:
            raise NetworkError("execution reverted")
        return await original(token, owner)

    gateway.get_balance = _balance  # type: ignore[method-assign]

    snapshot = asyncio.run(_service(gateway, InMemoryEventSink()).balances())

    assert snapshot.euroz == Decimal("7.5")
    assert snapshot.ceuroz is None
    assert snapshot.describe() == "EUROZ: 7.5\ncEUROZ: N/A (encrypted)"


def test_failed_balance_refresh_keeps_confirmed_mint(make_gateway, caplog) -> None:
    gateway = make_gateway()
    sink = InMemoryEventSink()

    async def _unreachable(token: TokenKind, owner: str) -> Decimal:
        raise NetworkError("connection reset")

    gateway.get_balance = _unreachable  # type: ignore[method-assign]

    with caplog.at_level(logging.WARNING, logger="eurozbot.services.manual_actions"):
        receipt = asyncio.run(_service(gateway, sink).mint())

    assert receipt is not None and receipt.succeeded
    assert _messages(sink, StatusCategory.MINT)[-1].startswith("Successfully minted 10 EUROZ!")
    assert _messages(sink, StatusCategory.WALLET) == []
    assert "balance_refresh_failed" in caplog.text
