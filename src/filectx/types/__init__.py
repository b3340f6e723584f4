"""Core data types."""

from filectx.types.metadata import (
    Clock,
    FileMetadataEntry,
    ModelUsageEntry,
    RecordSource,
    RecordState,
    TaskMetadata,
    is_stale_as_of,
    normalize_path,
    now_ms,
)

__all__ = [
    "Clock",
    "FileMetadataEntry",
    "ModelUsageEntry",
    "RecordSource",
    "RecordState",
    "TaskMetadata",
    "is_stale_as_of",
    "normalize_path",
    "now_ms",
]
