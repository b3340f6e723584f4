"""Persistence integrations."""

from filectx.persistence.keys import (
    StateKey,
    StateKeyKind,
    build_state_key,
    parse_state_key,
    pending_warning_key,
)
from filectx.persistence.store import (
    InMemoryStateStore,
    JSONFileMetadataStore,
    MetadataStore,
    ScopedStateStore,
    SQLiteStateStore,
)

__all__ = [
    "InMemoryStateStore",
    "JSONFileMetadataStore",
    "MetadataStore",
    "SQLiteStateStore",
    "ScopedStateStore",
    "StateKey",
    "StateKeyKind",
    "build_state_key",
    "parse_state_key",
    "pending_warning_key",
]
