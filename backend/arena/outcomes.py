"""Result types separating business declines from system errors.

Ledger and position operations hand back ``Ok`` or ``Declined``. Batch
drivers wrap unexpected exceptions into ``Failed`` so a per-item report can
carry all three without exception handling at the call site.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Generic, TypeVar, Union

T = TypeVar("T")


class DeclineReason(StrEnum):
    """Expected, routine reasons an operation does not go through."""

    INVALID_AMOUNT = "invalid_amount"
    INSUFFICIENT_BALANCE = "insufficient_balance"
    BELOW_BANKRUPTCY_FLOOR = "below_bankruptcy_floor"
    UNKNOWN_AGENT = "unknown_agent"
    LOW_CONFIDENCE = "low_confidence"
    DUPLICATE_BET = "duplicate_bet"
    NOT_FOUND = "not_found"
    NOT_OPEN = "not_open"
    ALREADY_RESOLVED = "already_resolved"
    AMBIGUOUS_OUTCOME = "ambiguous_outcome"


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    def __bool__(self) -> bool:
        return True


@dataclass(frozen=True)
class Declined:
    reason: DeclineReason
    message: str = ""

    def __bool__(self) -> bool:
        return False


@dataclass(frozen=True)
class Failed:
    error: Exception

    @property
    def message(self) -> str:
        return f"{type(self.error).__name__}: {self.error}"

    def __bool__(self) -> bool:
        return False


Outcome = Union[Ok[T], Declined, Failed]

