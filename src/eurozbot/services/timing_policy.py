from __future__ import annotations

import random
from dataclasses import dataclass

from eurozbot.config import Settings


@dataclass(frozen=True)
class TimingPolicyConfig:
    pause_min_seconds: float = 2.0
    pause_max_seconds: float = 40.0
    cycle_delay_min_seconds: float = 300.0
    cycle_delay_max_seconds: float = 360.0

    @classmethod
    def from_settings(cls, settings: Settings) -> TimingPolicyConfig:
        return cls(
            pause_min_seconds=settings.pause_min_seconds,
            pause_max_seconds=settings.pause_max_seconds,
            cycle_delay_min_seconds=settings.cycle_delay_min_seconds,
            cycle_delay_max_seconds=settings.cycle_delay_max_seconds,
        )


class TimingPolicy:
    def __init__(
        self,
        config: TimingPolicyConfig | None = None,
        *,
        rng: random.Random | None = None,
    ) -> None:
        self.config = config or TimingPolicyConfig()
        self._rng = rng or random.Random()

    def action_pause(self) -> float:
        """Seconds to wait after a mint, after an approve, and between wraps."""
        cfg = self.config
        return self._clamp(
            self._rng.uniform(cfg.pause_min_seconds, cfg.pause_max_seconds),
            cfg.pause_min_seconds,
            cfg.pause_max_seconds,
        )

    def cycle_delay(self) -> float:
        """Seconds from wrap-phase start until the next cycle begins."""
        cfg = self.config
        return self._clamp(
            self._rng.uniform(cfg.cycle_delay_min_seconds, cfg.cycle_delay_max_seconds),
            cfg.cycle_delay_min_seconds,
            cfg.cycle_delay_max_seconds,
        )

    @staticmethod
    def _clamp(value: float, low: float, high: float) -> float:
        # uniform() may land a rounding step outside [low, high]
        return min(max(value, low), high)
