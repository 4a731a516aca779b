from __future__ import annotations

import random
from dataclasses import dataclass
from decimal import Decimal

from eurozbot.config import Settings
from eurozbot.domain.amounts import truncate


@dataclass(frozen=True)
class ActionPolicyConfig:
    mint_threshold: Decimal = Decimal("3")
    approve_threshold: Decimal = Decimal("10")
    approve_min_amount: int = 1000
    approve_max_amount: int = 10000
    wrap_min_amount: Decimal = Decimal("0.1")
    wrap_max_amount: Decimal = Decimal("3")
    wrap_max_decimals: int = 4

    @classmethod
    def from_settings(cls, settings: Settings) -> ActionPolicyConfig:
        return cls(
            mint_threshold=settings.mint_threshold,
            approve_threshold=settings.approve_threshold,
            approve_min_amount=settings.approve_min_amount,
            approve_max_amount=settings.approve_max_amount,
            wrap_min_amount=settings.wrap_min_amount,
            wrap_max_amount=settings.wrap_max_amount,
            wrap_max_decimals=settings.wrap_max_decimals,
        )


@dataclass(frozen=True)
class WrapDecision:
    amount: Decimal
    capped_to_balance: bool


class ActionPolicy:
    """Decides whether to mint or approve and how much to wrap.

    Decisions are pure given the balance/allowance snapshot and the injected
    random source; nothing here talks to the chain.
    """

    def __init__(
        self,
        config: ActionPolicyConfig | None = None,
        *,
        rng: random.Random | None = None,
    ) -> None:
        self.config = config or ActionPolicyConfig()
        self._rng = rng or random.Random()

    def should_mint(self, balance: Decimal) -> bool:
        return balance < self.config.mint_threshold

    def should_approve(self, allowance: Decimal) -> bool:
        return allowance < self.config.approve_threshold

    def approve_amount(self) -> int:
        return self._rng.randint(self.config.approve_min_amount, self.config.approve_max_amount)

    def random_wrap_amount(self) -> Decimal:
        cfg = self.config
        raw = self._rng.uniform(float(cfg.wrap_min_amount), float(cfg.wrap_max_amount))
        places = self._rng.randint(0, cfg.wrap_max_decimals)
        amount = truncate(Decimal(repr(raw)), places)
        return amount if amount >= cfg.wrap_min_amount else cfg.wrap_min_amount

    def decide_wrap(self, balance: Decimal) -> WrapDecision | None:
        if balance < self.config.wrap_min_amount:
            return None
        amount = self.random_wrap_amount()
        if amount > balance:
            return WrapDecision(
                amount=truncate(balance, self.config.wrap_max_decimals), capped_to_balance=True
            )
        return WrapDecision(amount=amount, capped_to_balance=False)

    def wrap_amount(self, balance: Decimal) -> Decimal | None:
        """Return the amount to wrap, or ``None`` when the balance is below the minimum."""
        decision = self.decide_wrap(balance)
        return None if decision is None else decision.amount
