"""Persistence backends for task metadata and task-scoped state.

``MetadataStore`` holds one ``TaskMetadata`` per task id. ``ScopedStateStore``
holds small JSON values under keys built by ``filectx.persistence.keys``.
Backend failures surface as ``PersistenceError``.
"""

from __future__ import annotations

import json
import os
import shutil
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

import aiosqlite

from filectx.errors import PersistenceError
from filectx.types.metadata import TaskMetadata

TASK_METADATA_FILENAME = "task_metadata.json"

CREATE_TABLES_SQL = """
CREATE TABLE IF NOT EXISTS task_metadata (
    task_id TEXT PRIMARY KEY,
    data TEXT NOT NULL,
    updated_at REAL NOT NULL
);

CREATE TABLE IF NOT EXISTS scoped_state (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at REAL NOT NULL
);
"""


def _decode_metadata(raw: str, task_id: str) -> TaskMetadata:
    try:
        data = json.loads(raw)
        if not isinstance(data, dict):
            raise TypeError(f"expected object, got {type(data).__name__}")
        return TaskMetadata.from_dict(data)
    except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
        raise PersistenceError(
            f"Corrupt task metadata for {task_id}: {e}", task_id=task_id,
        ) from e


class MetadataStore(ABC):
    """Per-task metadata persistence, partitioned by task id."""

    @abstractmethod
    async def load(self, task_id: str) -> TaskMetadata:
        """Load metadata, returning an empty ``TaskMetadata`` if none exists."""

    @abstractmethod
    async def save(self, task_id: str, metadata: TaskMetadata) -> None:
        """Replace the stored metadata for a task."""

    @abstractmethod
    async def delete(self, task_id: str) -> bool:
        """Delete a task's metadata. Returns True if it existed."""

    @abstractmethod
    async def list_task_ids(self) -> list[str]:
        """List task ids with stored metadata."""


class ScopedStateStore(ABC):
    """Key-value store for small task-scoped values."""

    @abstractmethod
    async def get(self, key: str) -> Any | None:
        """Get a value, or None if the key is not set."""

    @abstractmethod
    async def set(self, key: str, value: Any | None) -> None:
        """Set a value. Setting None deletes the key."""

    @abstractmethod
    async def delete_key(self, key: str) -> bool:
        """Delete a key. Returns True if it existed."""

    @abstractmethod
    async def keys(self) -> list[str]:
        """List all keys."""


class InMemoryStateStore(MetadataStore, ScopedStateStore):
    """Process-local store. Values are copied through JSON on every access."""

    def __init__(self) -> None:
        self._metadata: dict[str, str] = {}
        self._state: dict[str, str] = {}

    async def load(self, task_id: str) -> TaskMetadata:
        raw = self._metadata.get(task_id)
        if raw is None:
            return TaskMetadata()
        return _decode_metadata(raw, task_id)

    async def save(self, task_id: str, metadata: TaskMetadata) -> None:
        self._metadata[task_id] = json.dumps(metadata.to_dict())

    async def delete(self, task_id: str) -> bool:
        return self._metadata.pop(task_id, None) is not None

    async def list_task_ids(self) -> list[str]:
        return sorted(self._metadata)

    async def get(self, key: str) -> Any | None:
        raw = self._state.get(key)
        return None if raw is None else json.loads(raw)

    async def set(self, key: str, value: Any | None) -> None:
        if value is None:
            self._state.pop(key, None)
            return
        self._state[key] = json.dumps(value)

    async def keys(self) -> list[str]:
        return sorted(self._state)

    async def delete_key(self, key: str) -> bool:
        return self._state.pop(key, None) is not None


class JSONFileMetadataStore(MetadataStore):
    """File-based metadata: ``<tasks_dir>/<task_id>/task_metadata.json``."""

    def __init__(self, tasks_dir: str | Path) -> None:
        self.tasks_dir = Path(tasks_dir)

    def _path(self, task_id: str) -> Path:
        if not task_id or "/" in task_id or "\\" in task_id or task_id in (".", ".."):
            raise PersistenceError(f"Invalid task id: {task_id!r}", task_id=task_id)
        return self.tasks_dir / task_id / TASK_METADATA_FILENAME

    async def load(self, task_id: str) -> TaskMetadata:
        path = self._path(task_id)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return TaskMetadata()
        except OSError as e:
            raise PersistenceError(
                f"Failed to read {path}: {e}", task_id=task_id,
            ) from e
        return _decode_metadata(raw, task_id)

    async def save(self, task_id: str, metadata: TaskMetadata) -> None:
        path = self._path(task_id)
        tmp = path.with_suffix(".json.tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(json.dumps(metadata.to_dict(), indent=2), encoding="utf-8")
            os.replace(tmp, path)
        except OSError as e:
            raise PersistenceError(
                f"Failed to write {path}: {e}", task_id=task_id,
            ) from e

    async def delete(self, task_id: str) -> bool:
        task_dir = self._path(task_id).parent
        if not task_dir.exists():
            return False
        try:
            shutil.rmtree(task_dir)
        except OSError as e:
            raise PersistenceError(
                f"Failed to delete {task_dir}: {e}", task_id=task_id,
            ) from e
        return True

    async def list_task_ids(self) -> list[str]:
        if not self.tasks_dir.exists():
            return []
        return sorted(
            p.parent.name for p in self.tasks_dir.glob(f"*/{TASK_METADATA_FILENAME}")
        )


class SQLiteStateStore(MetadataStore, ScopedStateStore):
    """Async SQLite store for both task metadata and scoped state.

    Uses aiosqlite for async database access. Call ``initialize()`` first.
    """

    def __init__(self, db_path: str | Path) -> None:
        self._db_path = Path(db_path)
        self._db: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        """Open the database and create tables."""
        try:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            self._db = await aiosqlite.connect(str(self._db_path))
            self._db.row_factory = aiosqlite.Row
            await self._db.executescript(CREATE_TABLES_SQL)
            await self._db.commit()
        except (OSError, aiosqlite.Error) as e:
            raise PersistenceError(f"Failed to open {self._db_path}: {e}") from e

    async def close(self) -> None:
        """Close the database connection."""
        if self._db:
            await self._db.close()
            self._db = None

    def _ensure_db(self) -> aiosqlite.Connection:
        if self._db is None:
            raise RuntimeError("SQLiteStateStore not initialized. Call initialize() first.")
        return self._db

    # --- Task metadata ---

    async def load(self, task_id: str) -> TaskMetadata:
        db = self._ensure_db()
        try:
            async with db.execute(
                "SELECT data FROM task_metadata WHERE task_id = ?", (task_id,)
            ) as cursor:
                row = await cursor.fetchone()
        except aiosqlite.Error as e:
            raise PersistenceError(f"Failed to load metadata: {e}", task_id=task_id) from e
        if row is None:
            return TaskMetadata()
        return _decode_metadata(row["data"], task_id)

    async def save(self, task_id: str, metadata: TaskMetadata) -> None:
        db = self._ensure_db()
        try:
            await db.execute(
                "INSERT OR REPLACE INTO task_metadata (task_id, data, updated_at) "
                "VALUES (?, ?, ?)",
                (task_id, json.dumps(metadata.to_dict()), time.time()),
            )
            await db.commit()
        except aiosqlite.Error as e:
            raise PersistenceError(f"Failed to save metadata: {e}", task_id=task_id) from e

    async def delete(self, task_id: str) -> bool:
        db = self._ensure_db()
        try:
            async with db.execute(
                "DELETE FROM task_metadata WHERE task_id = ?", (task_id,)
            ) as cursor:
                deleted = cursor.rowcount > 0
            await db.commit()
        except aiosqlite.Error as e:
            raise PersistenceError(f"Failed to delete metadata: {e}", task_id=task_id) from e
        return deleted

    async def list_task_ids(self) -> list[str]:
        db = self._ensure_db()
        try:
            async with db.execute("SELECT task_id FROM task_metadata ORDER BY task_id") as cursor:
                rows = await cursor.fetchall()
        except aiosqlite.Error as e:
            raise PersistenceError(f"Failed to list tasks: {e}") from e
        return [r["task_id"] for r in rows]

    # --- Scoped state ---

    async def get(self, key: str) -> Any | None:
        db = self._ensure_db()
        try:
            async with db.execute(
                "SELECT value FROM scoped_state WHERE key = ?", (key,)
            ) as cursor:
                row = await cursor.fetchone()
        except aiosqlite.Error as e:
            raise PersistenceError(f"Failed to read {key}: {e}") from e
        if row is None:
            return None
        try:
            return json.loads(row["value"])
        except json.JSONDecodeError as e:
            raise PersistenceError(f"Corrupt value for {key}: {e}") from e

    async def set(self, key: str, value: Any | None) -> None:
        if value is None:
            await self.delete_key(key)
            return
        db = self._ensure_db()
        try:
            await db.execute(
                "INSERT OR REPLACE INTO scoped_state (key, value, updated_at) VALUES (?, ?, ?)",
                (key, json.dumps(value), time.time()),
            )
            await db.commit()
        except aiosqlite.Error as e:
            raise PersistenceError(f"Failed to write {key}: {e}") from e

    async def delete_key(self, key: str) -> bool:
        db = self._ensure_db()
        try:
            async with db.execute("DELETE FROM scoped_state WHERE key = ?", (key,)) as cursor:
                deleted = cursor.rowcount > 0
            await db.commit()
        except aiosqlite.Error as e:
            raise PersistenceError(f"Failed to delete {key}: {e}") from e
        return deleted

    async def keys(self) -> list[str]:
        db = self._ensure_db()
        try:
            async with db.execute("SELECT key FROM scoped_state ORDER BY key") as cursor:
                rows = await cursor.fetchall()
        except aiosqlite.Error as e:
            raise PersistenceError(f"Failed to list keys: {e}") from e
        return [r["key"] for r in rows]
