"""Storage layer for Arena - keyed collections with atomic single-record writes.

This package provides:
- The KeyValueStore contract and collection names
- MemoryStore (in-process, indexed on agent_id/market_id/position_status)
- YamlStore (MemoryStore persisted to data/store/*.yaml via atomic renames)
"""

from arena.config import Settings

from .base import (
    AGENT_BALANCES,
    AGENT_PREDICTIONS,
    ANALYSIS_SESSIONS,
    INDEXED_FIELDS,
    MARKET_ODDS,
    MARKETS,
    METADATA,
    ODDS_HISTORY,
    KeyValueStore,
    Record,
)
from .memory import MemoryStore, generate_record_id
from .yaml_store import YamlStore


def create_store(settings: Settings) -> KeyValueStore:
    """Build the store backend selected in settings."""
    if settings.storage.backend == "memory":
        return MemoryStore()
    return YamlStore(settings.store_dir)


__all__ = [
    "AGENT_BALANCES",
    "AGENT_PREDICTIONS",
    "ANALYSIS_SESSIONS",
    "INDEXED_FIELDS",
    "MARKET_ODDS",
    "MARKETS",
    "METADATA",
    "ODDS_HISTORY",
    "KeyValueStore",
    "Record",
    "MemoryStore",
    "YamlStore",
    "create_store",
    "generate_record_id",
]
