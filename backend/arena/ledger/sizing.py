"""Confidence-weighted bet sizing.

These pure functions map an agent's confidence and bankroll to a stake, and
nudge the stake by recent form. They never touch storage.
"""

from arena.config import SizingConfig
from arena.models import AgentBalance

DEFAULT_SIZING = SizingConfig()


def bet_ceiling(current_balance: float, config: SizingConfig = DEFAULT_SIZING) -> float:
    """Largest stake allowed at this balance: min(max_bet, max_bet_pct of balance)."""
    return min(config.max_bet, current_balance * config.max_bet_pct)


def confidence_ratio(confidence: float, config: SizingConfig = DEFAULT_SIZING) -> float:
    """Fraction of the ceiling to stake; 0 below the lowest band."""
    for threshold, ratio in config.confidence_bands:
        if confidence >= threshold:
            return ratio
    return 0.0


def calculate_bet_amount(
    confidence: float,
    current_balance: float,
    bankruptcy_floor: float = 10.0,
    config: SizingConfig = DEFAULT_SIZING,
) -> float:
    """Stake for a prediction, or 0 when no bet should be placed.

    Never sizes a bet that would take the balance below the bankruptcy floor.
    """
    if not (0 <= confidence <= 1):
        raise ValueError(f"Confidence must be between 0 and 1, got {confidence}")

    if current_balance <= bankruptcy_floor:
        return 0.0

    ratio = confidence_ratio(confidence, config)
    if ratio == 0:
        return 0.0

    bet = max(config.min_bet, bet_ceiling(current_balance, config) * ratio)
    return min(bet, current_balance - bankruptcy_floor)


def psychology_multiplier(balance: AgentBalance, config: SizingConfig = DEFAULT_SIZING) -> float:
    multiplier = 1.0

    if balance.current_streak >= config.hot_streak:
        multiplier *= config.hot_multiplier
    elif balance.current_streak <= config.cold_streak:
        multiplier *= config.cold_multiplier

    if balance.roi < config.roi_loss_threshold:
        multiplier *= config.roi_loss_multiplier
    elif balance.roi > config.roi_gain_threshold:
        multiplier *= config.roi_gain_multiplier

    return multiplier


def adjust_bet_for_psychology(
    base_amount: float,
    balance: AgentBalance,
    config: SizingConfig = DEFAULT_SIZING,
) -> float:
    """Scale a base stake by streak and ROI, clamped to [min_bet, max_bet]."""
    adjusted = base_amount * psychology_multiplier(balance, config)
    return max(config.min_bet, min(config.max_bet, adjusted))
