"""File and model context tracking."""

from filectx.context.attribution import AttributionGuard
from filectx.context.checkpoint_analyzer import (
    CheckpointAnalyzer,
    FileToolAction,
    extract_edited_path,
)
from filectx.context.file_context_tracker import (
    CwdResolver,
    FileContextTracker,
    current_directory,
    fixed_workspace,
)
from filectx.context.model_usage import ModelUsageTracker
from filectx.context.orphan_sweeper import OrphanSweeper
from filectx.context.watch_registry import WatchHandle, WatchRegistry

__all__ = [
    "AttributionGuard",
    "CheckpointAnalyzer",
    "CwdResolver",
    "FileContextTracker",
    "FileToolAction",
    "ModelUsageTracker",
    "OrphanSweeper",
    "WatchHandle",
    "WatchRegistry",
    "current_directory",
    "extract_edited_path",
    "fixed_workspace",
]
