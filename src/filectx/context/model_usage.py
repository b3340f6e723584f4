"""Record which model, provider and mode served each part of a task."""

from __future__ import annotations

import logging

from filectx.persistence.store import MetadataStore
from filectx.types.metadata import Clock, ModelUsageEntry, now_ms

logger = logging.getLogger(__name__)


class ModelUsageTracker:
    """Append-only model usage log with adjacent-duplicate suppression.

    Only the most recent entry is compared, so switching A -> B -> A
    records three entries. Persisted history depends on this.
    """

    def __init__(self, task_id: str, store: MetadataStore, *, clock: Clock = now_ms) -> None:
        self.task_id = task_id
        self._store = store
        self._clock = clock

    async def record(self, provider_id: str, model_id: str, mode: str) -> bool:
        """Record a model use. Returns False if it repeats the last entry."""
        metadata = await self._store.load(self.task_id)
        if metadata.model_usage and metadata.model_usage[-1].same_model(model_id, provider_id, mode):
            return False

        metadata.model_usage.append(ModelUsageEntry(
            timestamp=self._clock(),
            model_id=model_id,
            provider_id=provider_id,
            mode=mode,
        ))
        await self._store.save(self.task_id, metadata)
        logger.debug("Task %s now using %s/%s (%s)", self.task_id, provider_id, model_id, mode)
        return True

    async def latest(self) -> ModelUsageEntry | None:
        metadata = await self._store.load(self.task_id)
        return metadata.model_usage[-1] if metadata.model_usage else None

    async def history(self) -> list[ModelUsageEntry]:
        metadata = await self._store.load(self.task_id)
        return list(metadata.model_usage)
