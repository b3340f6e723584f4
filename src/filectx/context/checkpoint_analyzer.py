"""Stale-file detection for checkpoint restores.

When the conversation is rewound to a message, files the agent or the user
edited after that message no longer match what the restored conversation
believes. Two sources of evidence are combined:

1. Task metadata: any file record with an edit timestamp after the
   reference point.
2. Discarded messages: file creation/edit tool results in the tail being
   rewound past. This catches edits whose metadata alone would not show it.

The result is advisory. Callers warn the user; restores are never blocked.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from enum import StrEnum
from typing import Any

from filectx.errors import MalformedMessageEvidenceError
from filectx.persistence.store import MetadataStore
from filectx.types.metadata import TaskMetadata, is_stale_as_of, normalize_path

logger = logging.getLogger(__name__)


class FileToolAction(StrEnum):
    """Tool result kinds that change a file on disk."""

    EDITED_EXISTING_FILE = "editedExistingFile"
    NEW_FILE_CREATED = "newFileCreated"


FILE_MUTATION_ACTIONS = frozenset(FileToolAction)


def extract_edited_path(message: Any) -> str | None:
    """Get the target path of a file-mutation tool result message.

    Returns None for messages that are not tool results or describe
    other tools. Raises ``MalformedMessageEvidenceError`` when a message
    claims to be a tool result but cannot be parsed.
    """
    if not isinstance(message, dict):
        raise MalformedMessageEvidenceError(
            f"Message is not an object: {type(message).__name__}"
        )
    if message.get("type") != "say" or message.get("say") != "tool":
        return None

    ts = message.get("ts")
    text = message.get("text")
    if not isinstance(text, str):
        raise MalformedMessageEvidenceError("Tool message has no text", message_ts=ts)
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as e:
        raise MalformedMessageEvidenceError(
            f"Tool message text is not JSON: {e}", message_ts=ts,
        ) from e
    if not isinstance(payload, dict):
        raise MalformedMessageEvidenceError("Tool payload is not an object", message_ts=ts)

    if payload.get("tool") not in FILE_MUTATION_ACTIONS:
        return None
    path = payload.get("path")
    if not isinstance(path, str) or not path:
        raise MalformedMessageEvidenceError(
            f"{payload.get('tool')} result has no path", message_ts=ts,
        )
    return normalize_path(path)


class CheckpointAnalyzer:
    """Computes which files changed after a conversation point."""

    def __init__(self, task_id: str, store: MetadataStore) -> None:
        self.task_id = task_id
        self._store = store

    async def files_changed_since(
        self,
        reference_ts: int,
        discarded_messages: Iterable[Any] = (),
    ) -> set[str]:
        metadata = await self._store.load(self.task_id)
        changed = self.metadata_evidence(metadata, reference_ts)
        changed |= self.message_evidence(discarded_messages)
        if changed:
            logger.info(
                "%d files changed after %d in task %s", len(changed), reference_ts, self.task_id,
            )
        return changed

    @staticmethod
    def metadata_evidence(metadata: TaskMetadata, reference_ts: int) -> set[str]:
        return {
            entry.path
            for entry in metadata.files
            if is_stale_as_of(entry, reference_ts)
        }

    @staticmethod
    def message_evidence(messages: Iterable[Any]) -> set[str]:
        paths: set[str] = set()
        for message in messages:
            try:
                path = extract_edited_path(message)
            except MalformedMessageEvidenceError as e:
                logger.debug("Skipping malformed message evidence: %s", e)
                continue
            if path is not None:
                paths.add(path)
        return paths
