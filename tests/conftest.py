"""Global test fixtures for filectx."""

from __future__ import annotations

from pathlib import Path

import pytest

from filectx.persistence.store import InMemoryStateStore


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, now: int = 1_000) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> int:
        self.now += ms
        return self.now


@pytest.fixture
def tmp_workdir(tmp_path: Path) -> Path:
    """Provide a temporary workspace root for tracking tests."""
    return tmp_path


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> InMemoryStateStore:
    return InMemoryStateStore()
