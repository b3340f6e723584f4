"""Per-file filesystem watches with debounced change notification.

Each tracked file gets its own handler on a shared watchdog ``Observer``.
Raw events arrive on the observer thread, are handed to the asyncio loop,
and settle after ``debounce_seconds`` of quiet before the async change
callback runs. Editors that write through a temp file and rename produce
one notification, not several.
"""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass
from typing import Awaitable, Callable

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer
from watchdog.observers.api import BaseObserver, ObservedWatch

from filectx.errors import WatchInstallError

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_SECONDS = 0.1
OBSERVER_JOIN_TIMEOUT = 5.0

ChangeCallback = Callable[[str], Awaitable[None]]


def _event_path(raw: bytes | str) -> str:
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    return os.path.normpath(raw)


class _FileWatchHandler(FileSystemEventHandler):
    """Forwards content-changing events for a single file."""

    def __init__(self, target: str, on_event: Callable[[], None]) -> None:
        super().__init__()
        self.target = target
        self._on_event = on_event

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory and _event_path(event.src_path) == self.target:
            self._on_event()

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory and _event_path(event.src_path) == self.target:
            self._on_event()

    def on_moved(self, event: FileSystemEvent) -> None:
        # Atomic saves land as a rename onto the target
        if not event.is_directory and _event_path(event.dest_path) == self.target:
            self._on_event()


@dataclass(slots=True)
class WatchHandle:
    """One installed watch, keyed by absolute path."""

    path: str
    abs_path: str
    handler: _FileWatchHandler
    watch: ObservedWatch | None = None
    timer: asyncio.TimerHandle | None = None

    @property
    def directory(self) -> str:
        return os.path.dirname(self.abs_path)


class WatchRegistry:
    """Owns one watch handle per tracked absolute path.

    Args:
        on_change: Async callback invoked with the tracked (workspace-relative)
            path once a burst of changes has settled.
        debounce_seconds: Quiet period before a change is considered settled.
        observer_factory: Creates the watchdog observer.
    """

    def __init__(
        self,
        on_change: ChangeCallback,
        *,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        observer_factory: Callable[[], BaseObserver] = Observer,
    ) -> None:
        self._on_change = on_change
        self._debounce = debounce_seconds
        self._observer_factory = observer_factory
        self._observer: BaseObserver | None = None
        self._handles: dict[str, WatchHandle] = {}
        self._tasks: set[asyncio.Task[None]] = set()
        self._installs: set[asyncio.Task[None]] = set()
        self._disposing = False

    def __len__(self) -> int:
        return len(self._handles)

    @property
    def debounce_seconds(self) -> float:
        return self._debounce

    @property
    def handles(self) -> dict[str, WatchHandle]:
        return dict(self._handles)

    def is_watching(self, abs_path: str) -> bool:
        return os.path.normpath(abs_path) in self._handles

    async def ensure_watch(self, path: str, cwd: str) -> bool:
        """Install a watch for ``path`` resolved against ``cwd``.

        Returns True if a new watch was installed, False if one already existed
        or ``dispose_all`` is in progress.
        Raises ``WatchInstallError`` if the OS watch cannot be created.
        """
        abs_path = os.path.normpath(os.path.join(cwd, path))
        if self._disposing:
            logger.debug("Registry disposing; not watching %s", abs_path)
            return False
        if abs_path in self._handles:
            return False

        loop = asyncio.get_running_loop()
        handler = _FileWatchHandler(
            abs_path,
            lambda: loop.call_soon_threadsafe(self._on_raw_event, abs_path),
        )
        handle = WatchHandle(path=path, abs_path=abs_path, handler=handler)
        if not os.path.isdir(handle.directory):
            raise WatchInstallError(
                f"Cannot watch {abs_path}: parent directory does not exist",
                path=path,
            )

        # Reserve the slot before suspending so concurrent calls stay idempotent
        self._handles[abs_path] = handle

        try:
            install = loop.create_task(self._install(self._ensure_observer(), handle))
            self._installs.add(install)
            install.add_done_callback(self._installs.discard)
            await install
        except OSError as e:
            if self._handles.get(abs_path) is handle:
                del self._handles[abs_path]
            raise WatchInstallError(f"Cannot watch {abs_path}: {e}", path=path) from e

        if self._handles.get(abs_path) is not handle:
            # Released by a dispose_all that ran while scheduling
            return False
        logger.debug("Watching %s", abs_path)
        return True

    async def dispose_all(self) -> None:
        """Close every handle, stop the observer, and await in-flight callbacks.

        New watches are refused until disposal completes. Change callbacks
        and watch installs already running are awaited before any handle is
        released, so none of them can outlive the observer.
        """
        self._disposing = True
        try:
            await self._dispose()
        finally:
            self._disposing = False

    async def _dispose(self) -> None:
        for handle in self._handles.values():
            if handle.timer is not None:
                handle.timer.cancel()
                handle.timer = None
        while self._tasks or self._installs:
            await asyncio.gather(*self._tasks, *self._installs, return_exceptions=True)

        handles = list(self._handles.values())
        self._handles.clear()
        observer = self._observer
        self._observer = None
        if observer is not None:
            results = await asyncio.gather(
                *(asyncio.to_thread(self._release, observer, h) for h in handles),
                return_exceptions=True,
            )
            for handle, result in zip(handles, results):
                if isinstance(result, Exception):
                    logger.warning("Failed to release watch on %s: %s", handle.abs_path, result)
            observer.stop()
            await asyncio.to_thread(observer.join, OBSERVER_JOIN_TIMEOUT)

        if handles:
            logger.debug("Disposed %d file watches", len(handles))

    def _ensure_observer(self) -> BaseObserver:
        if self._observer is None:
            self._observer = self._observer_factory()
            self._observer.daemon = True
            self._observer.start()
        return self._observer

    async def _install(self, observer: BaseObserver, handle: WatchHandle) -> None:
        handle.watch = await asyncio.to_thread(
            observer.schedule, handle.handler, handle.directory, recursive=False,
        )

    def _release(self, observer: BaseObserver, handle: WatchHandle) -> None:
        if handle.watch is not None:
            observer.remove_handler_for_watch(handle.handler, handle.watch)

    def _on_raw_event(self, abs_path: str) -> None:
        handle = self._handles.get(abs_path)
        if handle is None or self._disposing:
            return
        if handle.timer is not None:
            handle.timer.cancel()
        loop = asyncio.get_running_loop()
        handle.timer = loop.call_later(self._debounce, self._settle, handle)

    def _settle(self, handle: WatchHandle) -> None:
        handle.timer = None
        if self._disposing or self._handles.get(handle.abs_path) is not handle:
            return
        task = asyncio.get_running_loop().create_task(self._run_callback(handle.path))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run_callback(self, path: str) -> None:
        try:
            await self._on_change(path)
        except Exception:
            logger.exception("File change handler failed for %s", path)
