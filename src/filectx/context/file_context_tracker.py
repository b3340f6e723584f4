"""Tracks which files a task has seen, in what state, and who last touched them.

Every interaction appends a ``FileMetadataEntry``; earlier entries for the
same path are flipped to stale, never rewritten. Timestamps carry forward
from the whole history of the path so the active entry always holds the
latest known read, agent edit and user edit.

Files are watched once tracked. A change notification is attributed to the
agent if ``mark_agent_edit`` was called for that path beforehand; otherwise
it is recorded as a user edit.

Callers must await each ``track`` before issuing the next for the same task.
Metadata is read-modify-written without a lock.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterable
from typing import TYPE_CHECKING, Any, Awaitable, Callable

from filectx.context.attribution import DEFAULT_TTL_SECONDS, AttributionGuard
from filectx.context.checkpoint_analyzer import CheckpointAnalyzer
from filectx.context.watch_registry import DEFAULT_DEBOUNCE_SECONDS, WatchRegistry
from filectx.errors import WatchInstallError, WorkspaceUnavailableError
from filectx.persistence.keys import pending_warning_key
from filectx.persistence.store import MetadataStore, ScopedStateStore
from filectx.types.metadata import (
    Clock,
    FileMetadataEntry,
    RecordSource,
    RecordState,
    TaskMetadata,
    is_stale_as_of,
    normalize_path,
    now_ms,
)

if TYPE_CHECKING:
    from filectx.config import FileContextConfig

logger = logging.getLogger(__name__)

CwdResolver = Callable[[], Awaitable[str | None]]


async def current_directory() -> str | None:
    return os.getcwd()


def fixed_workspace(path: str | None) -> CwdResolver:
    """Resolver that always answers ``path``."""

    async def _resolve() -> str | None:
        return path

    return _resolve


def _latest(values: Iterable[int | None]) -> int | None:
    present = [v for v in values if v is not None]
    return max(present) if present else None


class FileContextTracker:
    """Per-task file context state machine.

    Args:
        task_id: Task whose metadata partition this tracker owns.
        store: Task metadata persistence.
        state_store: Scoped state for pending stale-file warnings.
        cwd_resolver: Async callable returning the workspace root, or None.
        clock: Millisecond timestamp source.
        debounce_seconds: Quiet period for file watch notifications.
        attribution_ttl_seconds: Lifetime of an unconsumed agent edit mark.
    """

    is_stale_as_of = staticmethod(is_stale_as_of)

    def __init__(
        self,
        task_id: str,
        store: MetadataStore,
        state_store: ScopedStateStore | None = None,
        *,
        cwd_resolver: CwdResolver = current_directory,
        clock: Clock = now_ms,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        attribution_ttl_seconds: float = DEFAULT_TTL_SECONDS,
        watch_registry: WatchRegistry | None = None,
    ) -> None:
        self.task_id = task_id
        self._store = store
        self._state_store = state_store
        self._cwd_resolver = cwd_resolver
        self._clock = clock
        self._guard = AttributionGuard(ttl_seconds=attribution_ttl_seconds)
        self._watches = watch_registry or WatchRegistry(
            self.handle_file_change, debounce_seconds=debounce_seconds,
        )
        self._recently_modified: dict[str, None] = {}
        self._degraded: set[str] = set()
        self._disposed = False

    @classmethod
    def from_config(
        cls,
        task_id: str,
        config: FileContextConfig,
        store: MetadataStore,
        state_store: ScopedStateStore | None = None,
        **kwargs: Any,
    ) -> FileContextTracker:
        """Build a tracker for ``config.working_directory`` with its watch settings."""
        if config.working_directory:
            kwargs.setdefault("cwd_resolver", fixed_workspace(config.working_directory))
        return cls(
            task_id,
            store,
            state_store,
            debounce_seconds=config.debounce_seconds,
            attribution_ttl_seconds=config.attribution_ttl_seconds,
            **kwargs,
        )

    @property
    def guard(self) -> AttributionGuard:
        return self._guard

    @property
    def watches(self) -> WatchRegistry:
        return self._watches

    @property
    def degraded_paths(self) -> set[str]:
        """Paths tracked without a working file watch."""
        return set(self._degraded)

    @property
    def disposed(self) -> bool:
        return self._disposed

    async def track(self, path: str, source: RecordSource | str) -> FileMetadataEntry | None:
        """Record an interaction with ``path`` and make sure it is watched.

        Returns the appended entry, or None if nothing was recorded because
        no workspace is available or the tracker was disposed.
        Raises ``PersistenceError`` if metadata cannot be loaded or saved.
        """
        source = RecordSource(source)
        if self._disposed:
            return self._ignore_disposed(path, source)
        try:
            cwd = await self._resolve_workspace()
        except WorkspaceUnavailableError as e:
            logger.info("Not tracking %s: %s", path, e)
            return None

        path = normalize_path(path)
        metadata = await self._store.load(self.task_id)
        # dispose() may have run while suspended
        if self._disposed:
            return self._ignore_disposed(path, source)
        entry = self._append_entry(metadata, path, source)
        await self._store.save(self.task_id, metadata)

        if source == RecordSource.USER_EDITED:
            self._recently_modified[path] = None

        if self._disposed:
            return entry
        try:
            await self._watches.ensure_watch(path, cwd)
        except WatchInstallError as e:
            logger.warning("File watch unavailable for %s: %s", path, e)
            self._degraded.add(path)
        else:
            self._degraded.discard(path)
        return entry

    def mark_agent_edit(self, path: str) -> None:
        """Flag the next change notification for ``path`` as the agent's own write.

        Must be called before the write reaches disk.
        """
        self._guard.mark(path)

    async def handle_file_change(self, path: str) -> None:
        """Watch callback: attribute a settled change to the agent or the user."""
        if self._guard.consume(path):
            logger.debug("Change to %s was an agent edit", path)
            return
        logger.info("External edit detected: %s", path)
        await self.track(path, RecordSource.USER_EDITED)

    def get_and_clear_recently_modified_files(self) -> list[str]:
        """Drain the paths edited outside the agent since the last call."""
        files = list(self._recently_modified)
        self._recently_modified.clear()
        return files

    async def tracked_paths(self) -> list[str]:
        metadata = await self._store.load(self.task_id)
        return sorted({e.path for e in metadata.files if e.is_active})

    async def detect_files_edited_after_message(
        self,
        message_ts: int,
        deleted_messages: Iterable[Any] = (),
    ) -> list[str]:
        analyzer = CheckpointAnalyzer(self.task_id, self._store)
        return sorted(await analyzer.files_changed_since(message_ts, deleted_messages))

    # --- Pending stale-file warnings ---

    async def store_pending_warning(self, files: Iterable[str]) -> None:
        files = list(files)
        await self._require_state_store().set(
            pending_warning_key(self.task_id), files or None,
        )

    async def retrieve_pending_warning(self) -> list[str]:
        value = await self._require_state_store().get(pending_warning_key(self.task_id))
        return list(value) if value else []

    async def retrieve_and_clear_pending_warning(self) -> list[str]:
        files = await self.retrieve_pending_warning()
        if files:
            await self._require_state_store().delete_key(pending_warning_key(self.task_id))
        return files

    async def dispose(self) -> None:
        """Stop all watches. Later ``track`` calls are ignored."""
        self._disposed = True
        await self._watches.dispose_all()
        self._guard.clear()

    # --- Internals ---

    async def _resolve_workspace(self) -> str:
        cwd = await self._cwd_resolver()
        if not cwd:
            raise WorkspaceUnavailableError()
        return cwd

    def _ignore_disposed(self, path: str, source: RecordSource) -> None:
        logger.debug("Tracker for task %s disposed; ignoring %s on %s", self.task_id, source, path)
        return None

    def _require_state_store(self) -> ScopedStateStore:
        if self._state_store is None:
            raise RuntimeError("FileContextTracker has no scoped state store")
        return self._state_store

    def _append_entry(
        self,
        metadata: TaskMetadata,
        path: str,
        source: RecordSource,
    ) -> FileMetadataEntry:
        prior = metadata.entries_for(path)
        for existing in prior:
            if existing.is_active:
                existing.state = RecordState.STALE

        entry = FileMetadataEntry(
            path=path,
            state=RecordState.ACTIVE,
            source=source,
            agent_read_at=_latest(e.agent_read_at for e in prior),
            agent_edit_at=_latest(e.agent_edit_at for e in prior),
            user_edit_at=_latest(e.user_edit_at for e in prior),
        )

        now = self._clock()
        match source:
            case RecordSource.READ | RecordSource.MENTIONED:
                entry.agent_read_at = now
            case RecordSource.AGENT_EDITED:
                entry.agent_read_at = now
                entry.agent_edit_at = now
            case RecordSource.USER_EDITED:
                entry.user_edit_at = now

        metadata.files.append(entry)
        return entry
