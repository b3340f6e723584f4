"""In-flight agent edit markers.

A mark means the next change notification for that path comes from the
agent's own write. Marks expire after ``ttl_seconds`` so a write that never
produces a notification cannot suppress a later external edit.
"""

from __future__ import annotations

import time
from typing import Callable

from filectx.types.metadata import normalize_path

DEFAULT_TTL_SECONDS = 30.0


class AttributionGuard:
    """Classifies file change notifications as agent or external."""

    def __init__(
        self,
        *,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl_seconds
        self._clock = clock
        self._marks: dict[str, float] = {}

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    def __len__(self) -> int:
        return len(self._marks)

    def __contains__(self, path: str) -> bool:
        expires_at = self._marks.get(normalize_path(path))
        return expires_at is not None and expires_at > self._clock()

    def mark(self, path: str) -> None:
        """Record a pending agent write for ``path``."""
        self.prune()
        self._marks[normalize_path(path)] = self._clock() + self._ttl

    def consume(self, path: str) -> bool:
        """Clear the mark for ``path``. True if a live mark was present."""
        self.prune()
        return self._marks.pop(normalize_path(path), None) is not None

    def prune(self) -> int:
        """Drop expired marks, returning how many were removed."""
        now = self._clock()
        expired = [p for p, expires_at in self._marks.items() if expires_at <= now]
        for p in expired:
            del self._marks[p]
        return len(expired)

    def clear(self) -> None:
        self._marks.clear()
