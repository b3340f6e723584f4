"""Persisted task metadata: file interaction records and model usage."""

from __future__ import annotations

import posixpath
import time
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Callable

Clock = Callable[[], int]


def now_ms() -> int:
    """Wall-clock time in milliseconds since the epoch."""
    return int(time.time() * 1000)


def normalize_path(path: str) -> str:
    """Normalize a workspace-relative path to POSIX form."""
    return posixpath.normpath(path.replace("\\", "/"))


class RecordState(StrEnum):
    """Whether a file record is the current truth for its path."""

    ACTIVE = "active"
    STALE = "stale"


class RecordSource(StrEnum):
    """How the file entered the task context."""

    READ = "read"
    USER_EDITED = "user_edited"
    AGENT_EDITED = "agent_edited"
    MENTIONED = "mentioned"


@dataclass(slots=True)
class FileMetadataEntry:
    """A single file interaction.

    Only ``state`` ever changes after the entry is appended; every
    other change to a file's tracked state is a new entry.
    """

    path: str
    state: RecordState
    source: RecordSource
    agent_read_at: int | None = None
    agent_edit_at: int | None = None
    user_edit_at: int | None = None

    @property
    def is_active(self) -> bool:
        return self.state == RecordState.ACTIVE

    def is_stale_as_of(self, reference_ts: int) -> bool:
        return is_stale_as_of(self, reference_ts)

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "state": str(self.state),
            "source": str(self.source),
            "agentReadAt": self.agent_read_at,
            "agentEditAt": self.agent_edit_at,
            "userEditAt": self.user_edit_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FileMetadataEntry:
        return cls(
            path=data["path"],
            state=RecordState(data["state"]),
            source=RecordSource(data["source"]),
            agent_read_at=data.get("agentReadAt"),
            agent_edit_at=data.get("agentEditAt"),
            user_edit_at=data.get("userEditAt"),
        )


@dataclass(slots=True, frozen=True)
class ModelUsageEntry:
    """Which model served a portion of the task."""

    timestamp: int
    model_id: str
    provider_id: str
    mode: str

    def same_model(self, model_id: str, provider_id: str, mode: str) -> bool:
        return (
            self.model_id == model_id
            and self.provider_id == provider_id
            and self.mode == mode
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "modelId": self.model_id,
            "providerId": self.provider_id,
            "mode": self.mode,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ModelUsageEntry:
        return cls(
            timestamp=data["timestamp"],
            model_id=data["modelId"],
            provider_id=data["providerId"],
            mode=data["mode"],
        )


@dataclass(slots=True)
class TaskMetadata:
    """All tracked state for one task."""

    files: list[FileMetadataEntry] = field(default_factory=list)
    model_usage: list[ModelUsageEntry] = field(default_factory=list)

    def entries_for(self, path: str) -> list[FileMetadataEntry]:
        return [e for e in self.files if e.path == path]

    def active_entry(self, path: str) -> FileMetadataEntry | None:
        for entry in reversed(self.files):
            if entry.path == path and entry.is_active:
                return entry
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "files": [e.to_dict() for e in self.files],
            "modelUsage": [m.to_dict() for m in self.model_usage],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TaskMetadata:
        return cls(
            files=[FileMetadataEntry.from_dict(e) for e in data.get("files") or []],
            model_usage=[
                ModelUsageEntry.from_dict(m) for m in data.get("modelUsage") or []
            ],
        )


def is_stale_as_of(entry: FileMetadataEntry, reference_ts: int) -> bool:
    """True if the entry records an edit strictly after ``reference_ts``."""
    if entry.agent_edit_at is not None and entry.agent_edit_at > reference_ts:
        return True
    return entry.user_edit_at is not None and entry.user_edit_at > reference_ts
