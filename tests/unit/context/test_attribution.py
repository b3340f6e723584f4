"""Tests for agent edit attribution markers."""

from __future__ import annotations

from filectx.context.attribution import AttributionGuard


class MonotonicStub:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class TestAttributionGuard:
    def test_mark_then_consume(self) -> None:
        guard = AttributionGuard()
        guard.mark("src/a.ts")
        assert "src/a.ts" in guard
        assert guard.consume("src/a.ts")
        assert "src/a.ts" not in guard

    def test_consume_is_single_use(self) -> None:
        guard = AttributionGuard()
        guard.mark("a.ts")
        assert guard.consume("a.ts")
        assert not guard.consume("a.ts")

    def test_consume_unmarked(self) -> None:
        assert not AttributionGuard().consume("a.ts")

    def test_paths_are_normalized(self) -> None:
        guard = AttributionGuard()
        guard.mark("./src//a.ts")
        assert guard.consume("src/a.ts")

    def test_marks_are_per_path(self) -> None:
        guard = AttributionGuard()
        guard.mark("a.ts")
        assert not guard.consume("b.ts")
        assert len(guard) == 1

    def test_expired_mark_is_not_consumed(self) -> None:
        clock = MonotonicStub()
        guard = AttributionGuard(ttl_seconds=5.0, clock=clock)
        guard.mark("a.ts")
        clock.now = 5.0
        assert "a.ts" not in guard
        assert not guard.consume("a.ts")
        assert len(guard) == 0

    def test_mark_within_window(self) -> None:
        clock = MonotonicStub()
        guard = AttributionGuard(ttl_seconds=5.0, clock=clock)
        guard.mark("a.ts")
        clock.now = 4.9
        assert guard.consume("a.ts")

    def test_remark_extends_window(self) -> None:
        clock = MonotonicStub()
        guard = AttributionGuard(ttl_seconds=5.0, clock=clock)
        guard.mark("a.ts")
        clock.now = 4.0
        guard.mark("a.ts")
        clock.now = 8.0
        assert guard.consume("a.ts")

    def test_prune_bounds_growth(self) -> None:
        clock = MonotonicStub()
        guard = AttributionGuard(ttl_seconds=1.0, clock=clock)
        for i in range(50):
            guard.mark(f"f{i}.py")
        clock.now = 2.0
        guard.mark("fresh.py")
        assert len(guard) == 1

    def test_clear(self) -> None:
        guard = AttributionGuard()
        guard.mark("a.ts")
        guard.clear()
        assert len(guard) == 0
