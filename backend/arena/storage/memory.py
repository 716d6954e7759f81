"""In-process key-value store with secondary indexes."""

from __future__ import annotations

import asyncio
import copy
import logging
from collections import defaultdict
from typing import Any, Callable
from uuid import uuid4

from arena.exceptions import RecordNotFoundError

from .base import INDEXED_FIELDS, KeyValueStore, Mutation, Record

logger = logging.getLogger(__name__)


def generate_record_id() -> str:
    """Generate unique record ID with rec_ prefix."""
    return f"rec_{uuid4().hex[:12]}"


class MemoryStore(KeyValueStore):
    """Dict-backed store; one asyncio lock serializes every mutation."""

    def __init__(self) -> None:
        self._data: dict[str, dict[str, Record]] = defaultdict(dict)
        # (collection, field) -> value -> keys
        self._indexes: dict[tuple[str, str], dict[Any, set[str]]] = defaultdict(
            lambda: defaultdict(set)
        )
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Index maintenance
    # ------------------------------------------------------------------

    def _unindex(self, collection: str, key: str, record: Record) -> None:
        for field in INDEXED_FIELDS:
            if field in record:
                keys = self._indexes[(collection, field)].get(record[field])
                if keys is not None:
                    keys.discard(key)

    def _index(self, collection: str, key: str, record: Record) -> None:
        for field in INDEXED_FIELDS:
            if field in record:
                self._indexes[(collection, field)][record[field]].add(key)

    def _put(self, collection: str, key: str, record: Record) -> None:
        existing = self._data[collection].get(key)
        if existing is not None:
            self._unindex(collection, key, existing)
        self._data[collection][key] = record
        self._index(collection, key, record)

    def _committed(self, collection: str) -> None:
        """Hook run after each mutation of ``collection`` while locked."""

    def _snapshot(self, collection: str) -> dict[str, Record]:
        # Records are replaced, never mutated in place, so a shallow copy holds.
        return dict(self._data[collection])

    def _restore(self, collection: str, snapshot: dict[str, Record]) -> None:
        self._data[collection] = snapshot
        for index_key in [k for k in self._indexes if k[0] == collection]:
            del self._indexes[index_key]
        for key, record in snapshot.items():
            self._index(collection, key, record)

    def _commit(self, collection: str, snapshot: dict[str, Record]) -> None:
        """Run the commit hook; on failure put the collection back as it was."""
        try:
            self._committed(collection)
        except Exception:
            logger.warning(f"Rolling back {collection} after failed commit")
            self._restore(collection, snapshot)
            raise

    # ------------------------------------------------------------------
    # KeyValueStore
    # ------------------------------------------------------------------

    async def get(self, collection: str, key: str) -> Record | None:
        record = self._data[collection].get(key)
        return copy.deepcopy(record) if record is not None else None

    async def set(self, collection: str, key: str, value: Record) -> None:
        async with self._lock:
            snapshot = self._snapshot(collection)
            self._put(collection, key, copy.deepcopy(value))
            self._commit(collection, snapshot)

    async def update(self, collection: str, key: str, changes: Record) -> Record:
        async with self._lock:
            current = self._data[collection].get(key)
            if current is None:
                raise RecordNotFoundError(collection, key)
            updated = {**current, **copy.deepcopy(changes)}
            snapshot = self._snapshot(collection)
            self._put(collection, key, updated)
            self._commit(collection, snapshot)
            return copy.deepcopy(updated)

    async def atomic_update(
        self, collection: str, key: str, mutation: Mutation
    ) -> Record | None:
        async with self._lock:
            current = self._data[collection].get(key)
            if current is None:
                raise RecordNotFoundError(collection, key)
            changes = mutation(copy.deepcopy(current))
            if changes is None:
                return None
            updated = {**current, **copy.deepcopy(changes)}
            snapshot = self._snapshot(collection)
            self._put(collection, key, updated)
            self._commit(collection, snapshot)
            return copy.deepcopy(updated)

    async def batch_update(
        self,
        collection: str,
        updates: dict[str, Record],
        where: Callable[[Record], bool] | None = None,
    ) -> int:
        touched = 0
        async with self._lock:
            snapshot = self._snapshot(collection)
            for key, changes in updates.items():
                current = self._data[collection].get(key)
                if current is None:
                    logger.warning(f"Batch update skipped missing {collection}/{key}")
                    continue
                if where is not None and not where(current):
                    continue
                self._put(collection, key, {**current, **copy.deepcopy(changes)})
                touched += 1
            if touched:
                self._commit(collection, snapshot)
        return touched

    async def push(self, collection: str, value: Record) -> str:
        key = generate_record_id()
        record = copy.deepcopy(value)
        record["id"] = key
        async with self._lock:
            snapshot = self._snapshot(collection)
            self._put(collection, key, record)
            self._commit(collection, snapshot)
        return key

    async def delete(self, collection: str, key: str) -> bool:
        async with self._lock:
            snapshot = self._snapshot(collection)
            record = self._data[collection].pop(key, None)
            if record is None:
                return False
            self._unindex(collection, key, record)
            self._commit(collection, snapshot)
            return True

    async def query(self, collection: str, field: str, value: Any) -> list[Record]:
        records = self._data[collection]
        if field in INDEXED_FIELDS:
            keys = self._indexes[(collection, field)].get(value, set())
            return [copy.deepcopy(records[k]) for k in keys if k in records]
        return [
            copy.deepcopy(record)
            for record in records.values()
            if record.get(field) == value
        ]

    async def all(self, collection: str) -> dict[str, Record]:
        return copy.deepcopy(self._data[collection])

    async def clear(self, collection: str) -> int:
        async with self._lock:
            snapshot = self._snapshot(collection)
            count = len(self._data[collection])
            self._data[collection] = {}
            for index_key in [k for k in self._indexes if k[0] == collection]:
                del self._indexes[index_key]
            self._commit(collection, snapshot)
            return count
