"""Persistence collaborators for rule set documents."""

from inbox_rules.storage.base import DocumentStore, MemoryDocumentStore
from inbox_rules.storage.database import SnapshotDatabase, SnapshotStore
from inbox_rules.storage.yaml_store import YamlDocumentStore

__all__ = [
    "DocumentStore",
    "MemoryDocumentStore",
    "SnapshotDatabase",
    "SnapshotStore",
    "YamlDocumentStore",
]
