from .balances import BalanceLedger, apply_resolution
from .bankruptcy import BankruptcyReport, net_worth, run_bankruptcy_check
from .sizing import adjust_bet_for_psychology, calculate_bet_amount

__all__ = [
    "BalanceLedger",
    "apply_resolution",
    "BankruptcyReport",
    "net_worth",
    "run_bankruptcy_check",
    "adjust_bet_for_psychology",
    "calculate_bet_amount",
]
