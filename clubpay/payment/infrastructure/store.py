"""In-memory data store with a queued persistence command log.

The engine mutates ``InMemoryStore`` synchronously; every mutation is applied
to the in-memory model first and then queued as a ``PersistenceCommand``.
``flush()`` drains the queue into a ``PersistenceBackend``. A write the
backend rejects is logged and kept in ``failed_writes``; the in-memory state
is NOT reverted, so memory and backend can diverge until an operator repairs
the record.
"""

from __future__ import annotations

import uuid
from collections import deque
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Protocol, TypeVar

from ...exceptions import ConfigurationError, DuplicateError, NotFoundError
from ...utils.logging import get_logger
from ..domain.enums import EntityType
from ..metrics import record_persistence_failure

logger = get_logger(__name__)

T = TypeVar("T")

Subscriber = Callable[[EntityType], None]


class PersistenceOperation(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class PersistenceCommand:
    """One queued write.

    ``payload`` is the full record for CREATE, the patch dict for UPDATE and
    ``None`` for DELETE.
    """

    operation: PersistenceOperation
    entity: EntityType
    record_id: str
    payload: Any = None
    queued_at: datetime = field(default_factory=lambda: datetime.now(UTC))


@dataclass(frozen=True)
class FailedWrite:
    command: PersistenceCommand
    error: str


class DataStore(Protocol):
    """Data-access contract consumed by the engine services."""

    def create(self, entity: EntityType | str, record: T) -> T: ...

    def update(
        self, entity: EntityType | str, record_id: str, patch: Mapping[str, Any]
    ) -> None: ...

    def delete(self, entity: EntityType | str, record_id: str) -> None: ...

    def get(self, entity: EntityType | str, record_id: str) -> Any: ...

    def get_all(self, entity: EntityType | str) -> list[Any]: ...


class PersistenceBackend(Protocol):
    """Durable storage that queued commands are flushed into."""

    def create(self, entity: EntityType, record: Any) -> None: ...

    def update(self, entity: EntityType, record_id: str, patch: Mapping[str, Any]) -> None: ...

    def delete(self, entity: EntityType, record_id: str) -> None: ...

    def load_all(self, entity: EntityType) -> list[Any]: ...


def new_record_id(entity: EntityType) -> str:
    """Generate a record id such as ``pay-3f2a9c1b7d4e``."""
    return f"{entity.value[:3]}-{uuid.uuid4().hex[:12]}"


class InMemoryStore:
    """Synchronous source of truth for the engine.

    Example:
        >>> store = InMemoryStore()
        >>> payer = store.create(EntityType.PAYERS, Payer(first_name="Ana", last_name="Novak"))
        >>> len(store.pending_writes())
        1
    """

    def __init__(
        self,
        backend: PersistenceBackend | None = None,
        *,
        autoflush: bool = False,
    ) -> None:
        """Initialize the store.

        Args:
            backend: Where queued writes are flushed to. Optional for tests.
            autoflush: Flush after every mutation (write-through mode)
        """
        self.backend = backend
        self.autoflush = autoflush
        self._records: dict[EntityType, dict[str, Any]] = {entity: {} for entity in EntityType}
        self._pending: deque[PersistenceCommand] = deque()
        self.failed_writes: list[FailedWrite] = []
        self._subscribers: list[Subscriber] = []

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def load(self) -> None:
        """Replace the in-memory model with the backend's content."""
        if self.backend is None:
            raise ConfigurationError("No persistence backend configured", setting="backend")

        for entity in EntityType:
            records = self.backend.load_all(entity)
            self._records[entity] = {record.id: record for record in records}
            logger.debug("store_entity_loaded", entity=entity.value, count=len(records))

        self._notify_all()

    def seed(self, entity: EntityType | str, records: Iterable[Any]) -> None:
        """Add records that already exist in the backend (no write is queued)."""
        entity = EntityType(entity)
        for record in records:
            if record.id is None:
                raise ValueError("Seeded records must carry an id")
            self._records[entity][record.id] = record
        self._notify(entity)

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def create(self, entity: EntityType | str, record: T) -> T:
        """Store a new record, assigning an id if it has none."""
        entity = EntityType(entity)
        record_id = getattr(record, "id", None)
        if record_id is None:
            record = replace(record, id=new_record_id(entity))  # type: ignore[type-var]
            record_id = record.id  # type: ignore[attr-defined]
        elif record_id in self._records[entity]:
            raise DuplicateError(
                f"{entity.value} record already exists", field="id", value=record_id
            )

        self._records[entity][record_id] = record
        self._enqueue(PersistenceCommand(PersistenceOperation.CREATE, entity, record_id, record))
        self._notify(entity)
        return record

    def update(self, entity: EntityType | str, record_id: str, patch: Mapping[str, Any]) -> None:
        """Apply ``patch`` to a record by replacing it with an updated copy."""
        entity = EntityType(entity)
        current = self.get(entity, record_id)
        changes = dict(patch)
        changes.pop("id", None)

        self._records[entity][record_id] = replace(current, **changes)
        self._enqueue(PersistenceCommand(PersistenceOperation.UPDATE, entity, record_id, changes))
        self._notify(entity)

    def delete(self, entity: EntityType | str, record_id: str) -> None:
        entity = EntityType(entity)
        if record_id not in self._records[entity]:
            raise NotFoundError(
                f"{entity.value} record not found", entity_type=entity.value, entity_id=record_id
            )

        del self._records[entity][record_id]
        self._enqueue(PersistenceCommand(PersistenceOperation.DELETE, entity, record_id))
        self._notify(entity)

    def get(self, entity: EntityType | str, record_id: str) -> Any:
        entity = EntityType(entity)
        try:
            return self._records[entity][record_id]
        except KeyError:
            raise NotFoundError(
                f"{entity.value} record not found", entity_type=entity.value, entity_id=record_id
            ) from None

    def find(self, entity: EntityType | str, record_id: str | None) -> Any | None:
        """Like ``get`` but returns ``None`` for a missing record."""
        if record_id is None:
            return None
        return self._records[EntityType(entity)].get(record_id)

    def get_all(self, entity: EntityType | str) -> list[Any]:
        return list(self._records[EntityType(entity)].values())

    def filter(self, entity: EntityType | str, predicate: Callable[[Any], bool]) -> list[Any]:
        records = self._records[EntityType(entity)].values()
        return [record for record in records if predicate(record)]

    # ------------------------------------------------------------------
    # Command log
    # ------------------------------------------------------------------

    def pending_writes(self) -> list[PersistenceCommand]:
        """Writes applied in memory but not yet flushed to the backend."""
        return list(self._pending)

    @property
    def has_pending_writes(self) -> bool:
        return bool(self._pending)

    def flush(self) -> int:
        """Apply queued writes to the backend in order.

        Returns:
            Number of commands the backend accepted

        Raises:
            ConfigurationError: If no backend is configured
        """
        if self.backend is None:
            raise ConfigurationError("No persistence backend configured", setting="backend")

        applied = 0
        while self._pending:
            command = self._pending.popleft()
            try:
                self._apply(command)
                applied += 1
            except Exception as e:
                logger.error(
                    "persistence_write_failed",
                    entity=command.entity.value,
                    operation=command.operation.value,
                    record_id=command.record_id,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                record_persistence_failure(command.entity.value, command.operation.value)
                self.failed_writes.append(FailedWrite(command=command, error=str(e)))

        return applied

    def _apply(self, command: PersistenceCommand) -> None:
        assert self.backend is not None
        if command.operation == PersistenceOperation.CREATE:
            self.backend.create(command.entity, command.payload)
        elif command.operation == PersistenceOperation.UPDATE:
            self.backend.update(command.entity, command.record_id, command.payload)
        else:
            self.backend.delete(command.entity, command.record_id)

    def _enqueue(self, command: PersistenceCommand) -> None:
        self._pending.append(command)
        if self.autoflush and self.backend is not None:
            self.flush()

    # ------------------------------------------------------------------
    # Change notification
    # ------------------------------------------------------------------

    def subscribe(self, subscriber: Subscriber) -> Callable[[], None]:
        """Register a callback invoked with the entity type after every change.

        Returns:
            A function that removes the subscription
        """
        self._subscribers.append(subscriber)

        def _unsubscribe() -> None:
            if subscriber in self._subscribers:
                self._subscribers.remove(subscriber)

        return _unsubscribe

    def _notify(self, entity: EntityType) -> None:
        for subscriber in list(self._subscribers):
            subscriber(entity)

    def _notify_all(self) -> None:
        for entity in EntityType:
            self._notify(entity)
