"""Exception hierarchy for system errors.

Business-rule rejections are not exceptions; see ``arena.outcomes``.
"""

from typing import Any


class ArenaError(Exception):
    """Base exception for arena system errors."""

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.context = context or {}


class StoreError(ArenaError):
    """A read or write against the key-value store failed."""

    pass


class RecordNotFoundError(StoreError):
    """Record does not exist in the collection."""

    def __init__(self, collection: str, key: str):
        super().__init__(
            f"Record not found: {collection}/{key}",
            context={"collection": collection, "key": key},
        )
        self.collection = collection
        self.key = key
