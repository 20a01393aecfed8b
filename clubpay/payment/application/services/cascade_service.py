"""Cascading updates when payments and their allocations change.

An obligation's status is always derived from its allocations: ``paid`` iff
they cover its amount, ``pending`` otherwise. Every operation that touches
allocations re-derives the status of each obligation involved.
"""

from collections.abc import Iterable
from dataclasses import fields

from ....exceptions import ValidationError
from ....utils.logging import get_logger
from ...domain.enums import EntityType, ObligationStatus, PaymentStatus
from ...domain.models import Allocation, Payment
from ...domain.value_objects import AllocationLine, CascadeResult
from ...infrastructure.store import InMemoryStore
from ...metrics import record_allocations, record_cascade
from .allocation_service import ZERO, ObligationAllocator, allocated_totals

logger = get_logger(__name__)

_PAYMENT_FIELDS = {f.name for f in fields(Payment)} - {"id"}


class CascadeManager:
    """Delete or edit payments while keeping obligations and transactions consistent.

    Example:
        >>> cascade = CascadeManager(store)
        >>> result = cascade.delete_payment("pay-3f2a9c1b7d4e")
        >>> result.affected_obligation_ids
        ('obl-0c4e5d7a9b21',)
    """

    def __init__(
        self,
        store: InMemoryStore,
        allocator: ObligationAllocator | None = None,
    ) -> None:
        self.store = store
        self.allocator = allocator or ObligationAllocator()

    def delete_payment(self, payment_id: str, operation: str = "delete") -> CascadeResult:
        """Delete a payment, its allocations, and undo what they caused.

        ``operation`` labels the cascade metric (``rollback`` for abandoned
        allocation sessions).

        Raises:
            NotFoundError: If the payment does not exist (nothing is changed)
        """
        payment = self.store.get(EntityType.PAYMENTS, payment_id)
        allocations = self._allocations_of(payment_id)
        transaction = self.store.find(EntityType.TRANSACTIONS, payment.transaction_id)
        if payment.transaction_id and transaction is None:
            logger.warning(
                "payment_transaction_missing",
                payment_id=payment_id,
                transaction_id=payment.transaction_id,
            )

        for allocation in allocations:
            self.store.delete(EntityType.ALLOCATIONS, allocation.id)
        affected = self._reevaluate_all(a.obligation_id for a in allocations)

        reverted_id = None
        if transaction is not None and transaction.payment_id == payment_id:
            self.store.update(
                EntityType.TRANSACTIONS,
                transaction.id,
                {"match_status": transaction.reverted_status, "payment_id": None},
            )
            reverted_id = transaction.id

        self.store.delete(EntityType.PAYMENTS, payment_id)

        record_cascade(operation)
        logger.info(
            "payment_deleted",
            payment_id=payment_id,
            removed_allocations=len(allocations),
            affected_obligations=len(affected),
            reverted_transaction_id=reverted_id,
        )
        return CascadeResult(
            payment_id=payment_id,
            affected_obligation_ids=affected,
            reverted_transaction_id=reverted_id,
            removed_allocation_ids=tuple(a.id for a in allocations),
        )

    def update_payment(
        self,
        payment_id: str,
        allocations: Iterable[AllocationLine] | None = None,
        **changes,
    ) -> CascadeResult:
        """Edit a payment and keep its allocations consistent.

        Args:
            payment_id: Payment to edit
            allocations: New allocation set replacing the old one; validated
                against the (possibly new) amount before anything changes
            **changes: Payment fields to update

        When only the amount changes, the old allocations no longer add up;
        they are removed and the payment goes back to ``pending``.

        Raises:
            NotFoundError: If the payment does not exist
            ValidationError: On unknown fields, a direct status change or an
                invalid allocation set
            MismatchError: If the allocations do not sum to the amount
        """
        payment = self.store.get(EntityType.PAYMENTS, payment_id)
        if "status" in changes:
            raise ValidationError(
                "Payment status is derived from its allocations",
                field="status",
                constraint="derived",
            )
        unknown = set(changes) - _PAYMENT_FIELDS
        if unknown:
            raise ValidationError(
                "Unknown payment fields",
                field=", ".join(sorted(unknown)),
                constraint="payment_field",
            )

        amount = changes.get("amount", payment.amount)
        lines = list(allocations) if allocations is not None else None
        if lines is not None:
            self.allocator.validate(
                amount,
                lines,
                obligations=self.store.get_all(EntityType.OBLIGATIONS),
                allocated=allocated_totals(
                    self.store.get_all(EntityType.ALLOCATIONS), exclude_payment_id=payment_id
                ),
            )

        removed: tuple[str, ...] = ()
        affected: tuple[str, ...] = ()
        if lines is not None:
            changes["status"] = PaymentStatus.CONFIRMED
            self.store.update(EntityType.PAYMENTS, payment_id, changes)
            removed, affected = self.replace_allocations(payment_id, lines)
        elif "amount" in changes and changes["amount"] != payment.amount:
            changes["status"] = PaymentStatus.PENDING
            self.store.update(EntityType.PAYMENTS, payment_id, changes)
            removed, affected = self.replace_allocations(payment_id, [])
        elif changes:
            self.store.update(EntityType.PAYMENTS, payment_id, changes)

        record_cascade("update")
        logger.info(
            "payment_updated",
            payment_id=payment_id,
            fields=sorted(changes),
            removed_allocations=len(removed),
            affected_obligations=len(affected),
        )
        return CascadeResult(
            payment_id=payment_id,
            affected_obligation_ids=affected,
            removed_allocation_ids=removed,
        )

    def replace_allocations(
        self, payment_id: str, lines: Iterable[AllocationLine]
    ) -> tuple[tuple[str, ...], tuple[str, ...]]:
        """Swap a payment's allocations for ``lines`` and re-derive obligation states.

        Lines are not validated here; callers validate first.

        Returns:
            (removed allocation ids, affected obligation ids)
        """
        old = self._allocations_of(payment_id)
        for allocation in old:
            self.store.delete(EntityType.ALLOCATIONS, allocation.id)

        lines = list(lines)
        for line in lines:
            self.store.create(
                EntityType.ALLOCATIONS,
                Allocation(
                    payment_id=payment_id,
                    obligation_id=line.obligation_id,
                    amount=line.amount,
                ),
            )
        record_allocations(len(lines))

        affected = self._reevaluate_all(
            [a.obligation_id for a in old] + [line.obligation_id for line in lines]
        )
        return tuple(a.id for a in old), affected

    def reevaluate_obligation(self, obligation_id: str) -> ObligationStatus:
        """Set ``paid`` iff the obligation's allocations cover its amount.

        Cancelled obligations keep their status.
        """
        obligation = self.store.get(EntityType.OBLIGATIONS, obligation_id)
        if obligation.status == ObligationStatus.CANCELLED:
            return obligation.status

        covered = allocated_totals(self.store.get_all(EntityType.ALLOCATIONS)).get(
            obligation_id, ZERO
        )
        status = (
            ObligationStatus.PAID
            if self.allocator.covers(obligation, covered)
            else ObligationStatus.PENDING
        )

        if status != obligation.status:
            self.store.update(EntityType.OBLIGATIONS, obligation_id, {"status": status})
            logger.info(
                "obligation_status_changed",
                obligation_id=obligation_id,
                old_status=obligation.status.value,
                new_status=status.value,
                covered=str(covered),
                amount=str(obligation.amount),
            )
        return status

    def _reevaluate_all(self, obligation_ids: Iterable[str]) -> tuple[str, ...]:
        affected = []
        for obligation_id in dict.fromkeys(obligation_ids):
            if self.store.find(EntityType.OBLIGATIONS, obligation_id) is None:
                logger.warning("allocation_obligation_missing", obligation_id=obligation_id)
                continue
            self.reevaluate_obligation(obligation_id)
            affected.append(obligation_id)
        return tuple(affected)

    def _allocations_of(self, payment_id: str) -> list[Allocation]:
        return self.store.filter(EntityType.ALLOCATIONS, lambda a: a.payment_id == payment_id)
