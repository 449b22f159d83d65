"""Exceptions raised by the cache, the garbage collector and the stores."""

from __future__ import annotations

from typing import Optional


class DocCacheError(Exception):
    """Base class for all doccache errors."""

    pass


class ConfigurationError(DocCacheError, ValueError):
    """Raised when the cache or a store is constructed with invalid settings."""

    pass


class StoreUnavailableError(DocCacheError):
    """Raised when the backing store cannot be reached or fails at the driver level."""

    pass


class EntryNotFoundError(DocCacheError, KeyError):
    """Raised when a partial update targets a document that does not exist."""

    def __init__(self, collection: str, key: str):
        self.collection = collection
        self.key = key
        super().__init__(f"No entry '{key}' in collection '{collection}'")

    def __str__(self) -> str:
        # KeyError.__str__ would repr() the message
        return str(self.args[0])


class PreconditionFailedError(DocCacheError):
    """Raised when a guarded delete finds a different update token.

    The whole batch containing the delete is discarded.
    """

    def __init__(self, collection: str, key: str, expected: Optional[str], actual: Optional[str]):
        self.collection = collection
        self.key = key
        self.expected = expected
        self.actual = actual
        state = "missing" if actual is None else f"at token {actual}"
        super().__init__(
            f"Precondition failed for '{key}' in '{collection}': "
            f"expected token {expected}, document is {state}"
        )
