"""Key-value store contract.

Records are plain JSON-compatible dicts grouped into named collections and
addressed by key. Only single-record atomicity is promised;
``atomic_update`` is the primitive for check-then-write sequences that must
not interleave (conditional debits, status transitions).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Callable

Record = dict[str, Any]
# Receives the current record; returns the fields to change, or None to leave
# the record untouched.
Mutation = Callable[[Record], Record | None]

AGENT_BALANCES = "agent_balances"
AGENT_PREDICTIONS = "agent_predictions"
MARKETS = "markets"
MARKET_ODDS = "market_odds"
ODDS_HISTORY = "odds_history"
ANALYSIS_SESSIONS = "analysis_sessions"
METADATA = "metadata"

INDEXED_FIELDS = ("agent_id", "market_id", "position_status")


class KeyValueStore(ABC):
    @abstractmethod
    async def get(self, collection: str, key: str) -> Record | None: ...

    @abstractmethod
    async def set(self, collection: str, key: str, value: Record) -> None: ...

    @abstractmethod
    async def update(self, collection: str, key: str, changes: Record) -> Record:
        """Merge changes into an existing record; raises RecordNotFoundError."""

    @abstractmethod
    async def atomic_update(
        self, collection: str, key: str, mutation: Mutation
    ) -> Record | None:
        """Apply ``mutation`` to the stored record without interleaving.

        Returns the updated record, or None when the mutation declined.
        Raises RecordNotFoundError if the key does not exist.
        """

    @abstractmethod
    async def batch_update(
        self,
        collection: str,
        updates: dict[str, Record],
        where: Callable[[Record], bool] | None = None,
    ) -> int:
        """Merge several records' changes in one write; returns records touched.

        Records failing ``where`` (checked at write time) are left alone.
        """

    @abstractmethod
    async def push(self, collection: str, value: Record) -> str:
        """Insert under a generated id (also written to ``value['id']``)."""

    @abstractmethod
    async def delete(self, collection: str, key: str) -> bool: ...

    @abstractmethod
    async def query(self, collection: str, field: str, value: Any) -> list[Record]: ...

    @abstractmethod
    async def all(self, collection: str) -> dict[str, Record]: ...

    @abstractmethod
    async def clear(self, collection: str) -> int: ...

    async def close(self) -> None:
        return None
