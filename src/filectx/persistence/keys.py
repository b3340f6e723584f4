"""Task-scoped keys for the scalar state store.

Keys are always built from a ``StateKeyKind`` and a task id, never by
string concatenation at the call site.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum


class StateKeyKind(StrEnum):
    """Closed set of task-scoped key patterns."""

    PENDING_FILE_CONTEXT_WARNING = "pendingFileContextWarning"


SEPARATOR = "_"


@dataclass(slots=True, frozen=True)
class StateKey:
    """A parsed task-scoped key."""

    kind: StateKeyKind
    task_id: str

    def __str__(self) -> str:
        return f"{self.kind}{SEPARATOR}{self.task_id}"


def build_state_key(kind: StateKeyKind, task_id: str) -> str:
    """Build the storage key for ``kind`` scoped to ``task_id``."""
    if not task_id:
        raise ValueError("task_id must be non-empty")
    return str(StateKey(kind, task_id))


def pending_warning_key(task_id: str) -> str:
    return build_state_key(StateKeyKind.PENDING_FILE_CONTEXT_WARNING, task_id)


def parse_state_key(key: str) -> StateKey | None:
    """Parse a storage key, returning None for keys of no known pattern."""
    for kind in StateKeyKind:
        prefix = f"{kind}{SEPARATOR}"
        if key.startswith(prefix) and len(key) > len(prefix):
            return StateKey(kind, key[len(prefix):])
    return None
