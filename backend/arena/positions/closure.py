"""Stochastic liquidation policy for open positions.

Stands in for other market participants: positions get closed by chance,
more readily when deep in profit or loss and as they age. The RNG is
injected so a fixed seed reproduces every decision.
"""

from __future__ import annotations

import random
from typing import Protocol

from arena.config import PositionConfig
from arena.models import CloseReason


class ClosurePolicy(Protocol):
    def decide(self, pnl_pct: float, age_hours: float) -> CloseReason | None: ...


class StochasticClosurePolicy:
    def __init__(
        self,
        config: PositionConfig | None = None,
        rng: random.Random | None = None,
    ):
        self.config = config or PositionConfig()
        self.rng = rng or random.Random(self.config.random_seed)

    def random_exit_probability(self, age_hours: float) -> float:
        return min(
            self.config.random_exit_base + max(age_hours, 0) * self.config.random_exit_per_hour,
            self.config.random_exit_cap,
        )

    def decide(self, pnl_pct: float, age_hours: float) -> CloseReason | None:
        """First matching draw wins: profit-taking, then stop-loss, then random exit."""
        cfg = self.config
        if pnl_pct > cfg.profit_taking_pnl_pct and self.rng.random() < cfg.profit_taking_probability:
            return CloseReason.PROFIT_TAKING
        if pnl_pct < cfg.stop_loss_pnl_pct and self.rng.random() < cfg.stop_loss_probability:
            return CloseReason.STOP_LOSS
        if self.rng.random() < self.random_exit_probability(age_hours):
            return CloseReason.RANDOM_EXIT
        return None


class NeverClosePolicy:
    """Keeps every position open."""

    def decide(self, pnl_pct: float, age_hours: float) -> CloseReason | None:
        return None
