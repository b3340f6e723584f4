"""Startup cleanup of task-scoped state whose task no longer exists."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from filectx.persistence.keys import StateKeyKind, parse_state_key
from filectx.persistence.store import ScopedStateStore

logger = logging.getLogger(__name__)


class OrphanSweeper:
    """Deletes pending-warning keys for tasks that are gone.

    The set of existing task ids is snapshotted once per sweep. A task
    created afterwards cannot own a pending warning yet, so it is never
    swept.
    """

    def __init__(
        self,
        store: ScopedStateStore,
        *,
        kinds: Iterable[StateKeyKind] = (StateKeyKind.PENDING_FILE_CONTEXT_WARNING,),
    ) -> None:
        self._store = store
        self._kinds = frozenset(kinds)

    def find_orphans(self, existing_task_ids: Iterable[str], all_keys: Iterable[str]) -> list[str]:
        existing = frozenset(existing_task_ids)
        orphans: list[str] = []
        for key in all_keys:
            parsed = parse_state_key(key)
            if parsed is None or parsed.kind not in self._kinds:
                continue
            if parsed.task_id not in existing:
                orphans.append(key)
        return orphans

    async def sweep(self, existing_task_ids: Iterable[str], all_keys: Iterable[str]) -> list[str]:
        """Delete orphaned keys among ``all_keys``. Returns the deleted keys."""
        deleted: list[str] = []
        for key in self.find_orphans(existing_task_ids, all_keys):
            if await self._store.delete_key(key):
                deleted.append(key)
        if deleted:
            logger.info("Removed %d orphaned task state keys", len(deleted))
        return deleted

    async def run(self, existing_task_ids: Iterable[str]) -> list[str]:
        """Sweep every key currently in the store."""
        existing = frozenset(existing_task_ids)
        return await self.sweep(existing, await self._store.keys())
