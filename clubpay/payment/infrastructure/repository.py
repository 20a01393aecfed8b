"""SQLAlchemy persistence backend for ``InMemoryStore``.

Maps domain dataclasses to table rows field by field; the member <-> payer
relation lives in the ``member_payers`` association table.
"""

from collections.abc import Generator, Iterable, Mapping
from contextlib import contextmanager
from dataclasses import fields
from typing import Any

from sqlalchemy import delete, insert, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from ...exceptions import PersistenceError, wrap_exception
from ...storage.database.base import Base
from ...storage.database.models import (
    AllocationRow,
    BankStatementRow,
    BankTransactionRow,
    CostTypeRow,
    MemberRow,
    ObligationRow,
    PayerRow,
    PaymentRow,
    member_payers,
)
from ...storage.session import db_session
from ...utils.logging import get_logger
from ..domain.enums import EntityType, MemberStatus
from ..domain.models import (
    Allocation,
    BankStatement,
    CostType,
    Member,
    Obligation,
    Payer,
    Payment,
    Transaction,
)

logger = get_logger(__name__)

ROW_TYPES: dict[EntityType, type[Base]] = {
    EntityType.TRANSACTIONS: BankTransactionRow,
    EntityType.PAYMENTS: PaymentRow,
    EntityType.ALLOCATIONS: AllocationRow,
    EntityType.OBLIGATIONS: ObligationRow,
    EntityType.STATEMENTS: BankStatementRow,
    EntityType.PAYERS: PayerRow,
    EntityType.MEMBERS: MemberRow,
    EntityType.COST_TYPES: CostTypeRow,
}

RECORD_TYPES: dict[EntityType, type] = {
    EntityType.TRANSACTIONS: Transaction,
    EntityType.PAYMENTS: Payment,
    EntityType.ALLOCATIONS: Allocation,
    EntityType.OBLIGATIONS: Obligation,
    EntityType.STATEMENTS: BankStatement,
    EntityType.PAYERS: Payer,
    EntityType.MEMBERS: Member,
    EntityType.COST_TYPES: CostType,
}


def _columns(row_type: type[Base]) -> set[str]:
    return {column.name for column in row_type.__table__.columns}


class SqlAlchemyBackend:
    """``PersistenceBackend`` writing through SQLAlchemy sessions.

    Every call runs in its own session and commits; SQLAlchemy errors are
    re-raised as ``PersistenceError`` so ``InMemoryStore.flush`` can record
    them.
    """

    def __init__(self, session_factory: sessionmaker[Session] | None = None) -> None:
        self.session_factory = session_factory

    # ------------------------------------------------------------------
    # PersistenceBackend
    # ------------------------------------------------------------------

    def create(self, entity: EntityType, record: Any) -> None:
        row_type = ROW_TYPES[entity]
        row = row_type(**self._row_values(row_type, record))

        with self._session(entity, "create", record.id) as db:
            db.add(row)
            if entity == EntityType.MEMBERS:
                db.flush()
                self._write_member_payers(db, record.id, record.payer_ids)
            db.commit()

        logger.debug("record_persisted", entity=entity.value, record_id=record.id)

    def update(self, entity: EntityType, record_id: str, patch: Mapping[str, Any]) -> None:
        row_type = ROW_TYPES[entity]
        columns = _columns(row_type)

        with self._session(entity, "update", record_id) as db:
            row = db.get(row_type, record_id)
            if row is None:
                raise PersistenceError(
                    f"Cannot update missing {entity.value} row",
                    context={"entity": entity.value, "record_id": record_id},
                )
            for key, value in patch.items():
                if entity == EntityType.MEMBERS and key == "payer_ids":
                    self._write_member_payers(db, record_id, value)
                elif key in columns:
                    setattr(row, key, value)
                else:
                    logger.debug("patch_field_ignored", entity=entity.value, field=key)
            db.commit()

    def delete(self, entity: EntityType, record_id: str) -> None:
        row_type = ROW_TYPES[entity]

        with self._session(entity, "delete", record_id) as db:
            row = db.get(row_type, record_id)
            if row is None:
                raise PersistenceError(
                    f"Cannot delete missing {entity.value} row",
                    context={"entity": entity.value, "record_id": record_id},
                )
            if entity == EntityType.MEMBERS:
                db.execute(delete(member_payers).where(member_payers.c.member_id == record_id))
            elif entity == EntityType.PAYERS:
                db.execute(delete(member_payers).where(member_payers.c.payer_id == record_id))
            db.delete(row)
            db.commit()

    def load_all(self, entity: EntityType) -> list[Any]:
        row_type = ROW_TYPES[entity]
        record_type = RECORD_TYPES[entity]

        with self._session(entity, "load") as db:
            rows = db.scalars(select(row_type).order_by(row_type.created_at)).all()
            links = self._load_member_payers(db) if entity == EntityType.MEMBERS else {}
            records = []
            for row in rows:
                values = {
                    f.name: getattr(row, f.name)
                    for f in fields(record_type)
                    if f.name in _columns(row_type)
                }
                if entity == EntityType.MEMBERS:
                    values["payer_ids"] = links.get(row.id, [])
                records.append(record_type(**values))

        return records

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _row_values(self, row_type: type[Base], record: Any) -> dict[str, Any]:
        columns = _columns(row_type)
        return {f.name: getattr(record, f.name) for f in fields(record) if f.name in columns}

    def _write_member_payers(self, db: Session, member_id: str, payer_ids: Iterable[str]) -> None:
        db.execute(delete(member_payers).where(member_payers.c.member_id == member_id))
        rows = [
            {"member_id": member_id, "payer_id": payer_id, "position": position}
            for position, payer_id in enumerate(dict.fromkeys(payer_ids))
        ]
        if rows:
            db.execute(insert(member_payers), rows)

    def _load_member_payers(self, db: Session) -> dict[str, list[str]]:
        links: dict[str, list[str]] = {}
        query = select(member_payers.c.member_id, member_payers.c.payer_id).order_by(
            member_payers.c.member_id, member_payers.c.position
        )
        for member_id, payer_id in db.execute(query):
            links.setdefault(member_id, []).append(payer_id)
        return links

    @contextmanager
    def _session(
        self, entity: EntityType, operation: str, record_id: str | None = None
    ) -> Generator[Session, None, None]:
        """``db_session`` that re-raises SQLAlchemy errors as ``PersistenceError``."""
        try:
            with db_session(self.session_factory) as db:
                yield db
        except SQLAlchemyError as e:
            raise wrap_exception(
                e,
                f"Database {operation} failed",
                exception_class=PersistenceError,
                entity=entity.value,
                operation=operation,
                record_id=record_id,
            ) from e


def load_legacy_members(rows: Iterable[Mapping[str, Any]]) -> list[Member]:
    """Build members from exported rows that may use the legacy payer link.

    Older exports carry a single ``parent_id`` instead of the ``parent_ids``
    list (or ``payer_ids``); both shapes are normalized into ``payer_ids``
    here so the rest of the engine only ever sees the list.

    Example:
        >>> load_legacy_members([{"id": "m1", "first_name": "Eva", "last_name": "Kos",
        ...                       "parent_id": "p1"}])[0].payer_ids
        ['p1']
    """
    members = []
    for row in rows:
        payer_ids = list(row.get("payer_ids") or row.get("parent_ids") or [])
        legacy_id = row.get("parent_id")
        if not payer_ids and legacy_id:
            payer_ids = [legacy_id]

        members.append(
            Member(
                id=row.get("id"),
                first_name=row.get("first_name", ""),
                last_name=row.get("last_name", ""),
                payer_ids=payer_ids,
                status=MemberStatus(row.get("status") or MemberStatus.ACTIVE),
            )
        )

    logger.debug("legacy_members_loaded", count=len(members))
    return members
