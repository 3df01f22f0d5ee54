"""Typed counter models."""

from __future__ import annotations

from dataclasses import dataclass, field

U64_MAX = 2**64 - 1


@dataclass(frozen=True)
class CounterRecord:
    key: str
    count: int


@dataclass(frozen=True)
class CountResult:
    key: str
    count: int
    storage_warning: str | None = None


@dataclass
class FlushReport:
    flushed: int = 0
    failed: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.failed == 0


@dataclass(frozen=True)
class CacheStats:
    resident: int
    loading: int
    dirty: int
