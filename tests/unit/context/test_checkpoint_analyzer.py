"""Tests for checkpoint stale-file analysis."""

from __future__ import annotations

import json

import pytest

from filectx.context.checkpoint_analyzer import (
    CheckpointAnalyzer,
    FileToolAction,
    extract_edited_path,
)
from filectx.errors import MalformedMessageEvidenceError
from filectx.persistence.store import InMemoryStateStore
from filectx.types.metadata import FileMetadataEntry, RecordSource, RecordState, TaskMetadata


def _tool_message(tool: str, path: str | None, ts: int = 1) -> dict:
    payload = {"tool": tool}
    if path is not None:
        payload["path"] = path
    return {"ts": ts, "type": "say", "say": "tool", "text": json.dumps(payload)}


def _entry(path: str, state: RecordState = RecordState.ACTIVE, **dates) -> FileMetadataEntry:
    return FileMetadataEntry(
        path=path,
        state=state,
        source=RecordSource.READ,
        **dates,
    )


class TestExtractEditedPath:
    def test_edited_existing_file(self) -> None:
        assert extract_edited_path(_tool_message("editedExistingFile", "src/a.ts")) == "src/a.ts"

    def test_new_file_created(self) -> None:
        assert extract_edited_path(_tool_message("newFileCreated", "./b.py")) == "b.py"

    def test_other_tool(self) -> None:
        assert extract_edited_path(_tool_message("readFile", "a.ts")) is None

    def test_non_tool_message(self) -> None:
        assert extract_edited_path({"ts": 1, "type": "say", "say": "text", "text": "hello"}) is None
        assert extract_edited_path({"ts": 1, "type": "ask", "ask": "tool"}) is None

    def test_invalid_json(self) -> None:
        with pytest.raises(MalformedMessageEvidenceError) as exc_info:
            extract_edited_path({"ts": 7, "type": "say", "say": "tool", "text": "{oops"})
        assert exc_info.value.message_ts == 7

    def test_missing_text(self) -> None:
        with pytest.raises(MalformedMessageEvidenceError):
            extract_edited_path({"type": "say", "say": "tool"})

    def test_payload_not_object(self) -> None:
        with pytest.raises(MalformedMessageEvidenceError):
            extract_edited_path({"type": "say", "say": "tool", "text": "[1]"})

    def test_mutation_without_path(self) -> None:
        with pytest.raises(MalformedMessageEvidenceError):
            extract_edited_path(_tool_message("editedExistingFile", None))

    def test_not_a_dict(self) -> None:
        with pytest.raises(MalformedMessageEvidenceError):
            extract_edited_path("editedExistingFile a.ts")

    def test_actions(self) -> None:
        assert FileToolAction.EDITED_EXISTING_FILE == "editedExistingFile"
        assert FileToolAction.NEW_FILE_CREATED == "newFileCreated"


class TestMetadataEvidence:
    def test_agent_and_user_edits(self) -> None:
        metadata = TaskMetadata(files=[
            _entry("a.ts", agent_edit_at=400),
            _entry("b.ts", user_edit_at=350),
            _entry("c.ts", agent_read_at=900),
            _entry("d.ts", agent_edit_at=300),
        ])
        assert CheckpointAnalyzer.metadata_evidence(metadata, 300) == {"a.ts", "b.ts"}

    def test_stale_entries_count(self) -> None:
        metadata = TaskMetadata(files=[
            _entry("a.ts", RecordState.STALE, user_edit_at=500),
            _entry("a.ts", agent_read_at=600),
        ])
        assert CheckpointAnalyzer.metadata_evidence(metadata, 400) == {"a.ts"}


class TestMessageEvidence:
    def test_skips_malformed_and_continues(self) -> None:
        messages = [
            _tool_message("editedExistingFile", "a.ts"),
            {"type": "say", "say": "tool", "text": "not json"},
            None,
            _tool_message("newFileCreated", None),
            _tool_message("newFileCreated", "b.ts"),
            {"type": "say", "say": "completion_result", "text": "done"},
        ]
        assert CheckpointAnalyzer.message_evidence(messages) == {"a.ts", "b.ts"}

    def test_deduplicates(self) -> None:
        messages = [_tool_message("editedExistingFile", "a.ts")] * 3
        assert CheckpointAnalyzer.message_evidence(messages) == {"a.ts"}


class TestFilesChangedSince:
    @pytest.mark.asyncio
    async def test_union_of_sources(self) -> None:
        store = InMemoryStateStore()
        await store.save("t1", TaskMetadata(files=[
            _entry("a.ts", agent_edit_at=400),
            _entry("c.ts", agent_read_at=400),
        ]))
        analyzer = CheckpointAnalyzer("t1", store)
        changed = await analyzer.files_changed_since(300, [
            _tool_message("editedExistingFile", "a.ts"),
            _tool_message("newFileCreated", "new.ts"),
        ])
        assert changed == {"a.ts", "new.ts"}

    @pytest.mark.asyncio
    async def test_empty_task(self) -> None:
        analyzer = CheckpointAnalyzer("missing", InMemoryStateStore())
        assert await analyzer.files_changed_since(0) == set()

    @pytest.mark.asyncio
    async def test_reads_only_its_task(self) -> None:
        store = InMemoryStateStore()
        await store.save("other", TaskMetadata(files=[_entry("x.ts", agent_edit_at=999)]))
        assert await CheckpointAnalyzer("t1", store).files_changed_since(0, []) == set()
