"""Tests for task metadata types."""

from __future__ import annotations

import pytest

from filectx.types.metadata import (
    FileMetadataEntry,
    ModelUsageEntry,
    RecordSource,
    RecordState,
    TaskMetadata,
    is_stale_as_of,
    normalize_path,
)


def _entry(**kwargs) -> FileMetadataEntry:
    defaults = {
        "path": "a.ts",
        "state": RecordState.ACTIVE,
        "source": RecordSource.READ,
    }
    defaults.update(kwargs)
    return FileMetadataEntry(**defaults)


class TestEnums:
    def test_record_state_values(self) -> None:
        assert RecordState.ACTIVE == "active"
        assert RecordState.STALE == "stale"

    def test_record_source_values(self) -> None:
        assert RecordSource.READ == "read"
        assert RecordSource.USER_EDITED == "user_edited"
        assert RecordSource.AGENT_EDITED == "agent_edited"
        assert RecordSource.MENTIONED == "mentioned"


class TestNormalizePath:
    def test_collapses_dots(self) -> None:
        assert normalize_path("src/./lib/../a.ts") == "src/a.ts"

    def test_backslashes(self) -> None:
        assert normalize_path("src\\a.ts") == "src/a.ts"


class TestIsStaleAsOf:
    def test_no_edits_is_not_stale(self) -> None:
        assert not is_stale_as_of(_entry(agent_read_at=500), 100)

    def test_agent_edit_after_reference(self) -> None:
        assert is_stale_as_of(_entry(agent_edit_at=400), 300)

    def test_user_edit_after_reference(self) -> None:
        assert is_stale_as_of(_entry(user_edit_at=400), 300)

    def test_edit_at_reference_is_not_stale(self) -> None:
        assert not is_stale_as_of(_entry(agent_edit_at=300, user_edit_at=300), 300)

    def test_method_matches_function(self) -> None:
        entry = _entry(user_edit_at=250)
        assert entry.is_stale_as_of(200) is is_stale_as_of(entry, 200)

    @pytest.mark.parametrize("edit_ts", [150, 400, 1_000])
    def test_monotonic_in_reference(self, edit_ts: int) -> None:
        entry = _entry(agent_edit_at=edit_ts)
        for t in range(0, 1_200, 50):
            if is_stale_as_of(entry, t):
                assert all(is_stale_as_of(entry, earlier) for earlier in range(0, t))


class TestSerialization:
    def test_entry_dict_shape(self) -> None:
        data = _entry(agent_read_at=1, user_edit_at=2).to_dict()
        assert data == {
            "path": "a.ts",
            "state": "active",
            "source": "read",
            "agentReadAt": 1,
            "agentEditAt": None,
            "userEditAt": 2,
        }

    def test_model_usage_dict_shape(self) -> None:
        usage = ModelUsageEntry(timestamp=7, model_id="m", provider_id="p", mode="act")
        assert usage.to_dict() == {
            "timestamp": 7, "modelId": "m", "providerId": "p", "mode": "act",
        }

    def test_task_metadata_dict_keys(self) -> None:
        assert set(TaskMetadata().to_dict()) == {"files", "modelUsage"}

    def test_missing_optional_fields_default_to_none(self) -> None:
        entry = FileMetadataEntry.from_dict(
            {"path": "b.py", "state": "stale", "source": "mentioned"}
        )
        assert entry.state == RecordState.STALE
        assert entry.agent_read_at is None
        assert entry.user_edit_at is None

    def test_unknown_fields_ignored(self) -> None:
        entry = FileMetadataEntry.from_dict({
            "path": "b.py",
            "state": "active",
            "source": "read",
            "added_in_a_later_version": True,
        })
        assert entry.path == "b.py"

    def test_unknown_source_rejected(self) -> None:
        with pytest.raises(ValueError):
            FileMetadataEntry.from_dict(
                {"path": "b.py", "state": "active", "source": "teleported"}
            )

    def test_task_metadata_from_empty(self) -> None:
        metadata = TaskMetadata.from_dict({})
        assert metadata.files == []
        assert metadata.model_usage == []

    def test_task_metadata_preserves_order(self) -> None:
        metadata = TaskMetadata(
            files=[_entry(path="x"), _entry(path="y")],
            model_usage=[ModelUsageEntry(timestamp=5, model_id="m", provider_id="p", mode="act")],
        )
        restored = TaskMetadata.from_dict(metadata.to_dict())
        assert [e.path for e in restored.files] == ["x", "y"]
        assert restored.model_usage[0].timestamp == 5


class TestTaskMetadataQueries:
    def test_active_entry(self) -> None:
        metadata = TaskMetadata(files=[
            _entry(state=RecordState.STALE),
            _entry(agent_read_at=9),
            _entry(path="other"),
        ])
        active = metadata.active_entry("a.ts")
        assert active is not None
        assert active.agent_read_at == 9

    def test_active_entry_missing(self) -> None:
        assert TaskMetadata().active_entry("a.ts") is None

    def test_entries_for(self) -> None:
        metadata = TaskMetadata(files=[_entry(), _entry(path="b"), _entry()])
        assert len(metadata.entries_for("a.ts")) == 2


class TestModelUsageEntry:
    def test_same_model(self) -> None:
        usage = ModelUsageEntry(timestamp=1, model_id="m", provider_id="p", mode="plan")
        assert usage.same_model("m", "p", "plan")
        assert not usage.same_model("m", "p", "act")
        assert not usage.same_model("m", "q", "plan")

    def test_frozen(self) -> None:
        usage = ModelUsageEntry(timestamp=1, model_id="m", provider_id="p", mode="plan")
        with pytest.raises(AttributeError):
            usage.timestamp = 2
