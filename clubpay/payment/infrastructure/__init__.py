"""Infrastructure layer: statement importers, the in-memory store and SQL persistence."""

from .repository import SqlAlchemyBackend, load_legacy_members
from .store import (
    DataStore,
    FailedWrite,
    InMemoryStore,
    PersistenceBackend,
    PersistenceCommand,
    PersistenceOperation,
)

__all__ = [
    "DataStore",
    "FailedWrite",
    "InMemoryStore",
    "PersistenceBackend",
    "PersistenceCommand",
    "PersistenceOperation",
    "SqlAlchemyBackend",
    "load_legacy_members",
]
