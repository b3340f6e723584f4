"""filectx error hierarchy."""

from __future__ import annotations

from enum import StrEnum
from typing import Any


class ErrorCategory(StrEnum):
    """Category of error for classification and handling."""

    WORKSPACE = "workspace"
    EVIDENCE = "evidence"
    PERSISTENCE = "persistence"
    WATCH = "watch"
    CONFIGURATION = "configuration"
    INTERNAL = "internal"


class FileContextError(Exception):
    """Base error for all file context tracking exceptions."""

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory = ErrorCategory.INTERNAL,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.category = category
        self.details: dict[str, Any] = details or {}

    def __repr__(self) -> str:
        return f"{type(self).__name__}({str(self)!r}, category={self.category!r})"


class WorkspaceUnavailableError(FileContextError):
    """No working directory could be resolved for the task."""

    def __init__(self, message: str = "No workspace folder available") -> None:
        super().__init__(message, category=ErrorCategory.WORKSPACE)


class MalformedMessageEvidenceError(FileContextError):
    """A discarded message could not be read as a file-operation tool result."""

    def __init__(self, message: str, *, message_ts: int | None = None) -> None:
        super().__init__(message, category=ErrorCategory.EVIDENCE)
        self.message_ts = message_ts


class PersistenceError(FileContextError):
    """Loading or saving task state failed."""

    def __init__(self, message: str, *, task_id: str | None = None, **kwargs: Any) -> None:
        super().__init__(message, category=ErrorCategory.PERSISTENCE, **kwargs)
        self.task_id = task_id


class WatchInstallError(FileContextError):
    """A filesystem watch could not be installed for a path."""

    def __init__(self, message: str, *, path: str | None = None) -> None:
        super().__init__(message, category=ErrorCategory.WATCH)
        self.path = path


class ConfigurationError(FileContextError):
    """Invalid or missing configuration."""

    def __init__(self, message: str) -> None:
        super().__init__(message, category=ErrorCategory.CONFIGURATION)
