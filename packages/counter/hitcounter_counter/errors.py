"""Counter error taxonomy."""

from __future__ import annotations


class CounterError(Exception):
    """Base class for counting core failures."""


class StorageError(CounterError):
    """A single persistent store read or write failed."""


class StorageUnavailable(CounterError):
    """The persistent store stayed unreachable past the configured retry budget."""

    def __init__(self, message: str, consecutive_failures: int = 0) -> None:
        super().__init__(message)
        self.consecutive_failures = consecutive_failures
