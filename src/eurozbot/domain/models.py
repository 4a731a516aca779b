from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import StrEnum


class TokenKind(StrEnum):
    EUROZ = "EUROZ"
    CEUROZ = "cEUROZ"


class TxAction(StrEnum):
    MINT = "mint"
    APPROVE = "approve"
    WRAP = "wrap"


class StatusSeverity(StrEnum):
    INFO = "info"
    SUCCESS = "success"
    ERROR = "error"


class StatusCategory(StrEnum):
    MINT = "mint"
    WRAP = "wrap"
    AUTOMATION = "automation"
    COUNTDOWN = "countdown"
    WALLET = "wallet"


class WrapOutcome(StrEnum):
    SENT = "sent"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class TxHandle:
    tx_hash: str
    action: TxAction


@dataclass(frozen=True)
class TxReceipt:
    tx_hash: str
    status: int
    block_number: int | None = None
    gas_used: int | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == 1


@dataclass(frozen=True)
class BalanceSnapshot:
    address: str
    euroz: Decimal
    ceuroz: Decimal | None

    def describe(self) -> str:
        ceuroz = "N/A (encrypted)" if self.ceuroz is None else str(self.ceuroz)
        return f"EUROZ: {self.euroz}\ncEUROZ: {ceuroz}"


@dataclass
class CycleResult:
    cycle_id: str
    minted: bool = False
    approved: bool = False
    wraps_sent: int = 0
    wraps_failed: int = 0
    wraps_skipped: int = 0
    stopped_early: bool = False

    def record_wrap(self, outcome: WrapOutcome) -> None:
        if outcome is WrapOutcome.SENT:
            self.wraps_sent += 1
        elif outcome is WrapOutcome.FAILED:
            self.wraps_failed += 1
        else:
            self.wraps_skipped += 1

    def as_log_fields(self) -> dict[str, object]:
        return {
            "cycle_id": self.cycle_id,
            "minted": self.minted,
            "approved": self.approved,
            "wraps_sent": self.wraps_sent,
            "wraps_failed": self.wraps_failed,
            "wraps_skipped": self.wraps_skipped,
            "stopped_early": self.stopped_early,
        }
