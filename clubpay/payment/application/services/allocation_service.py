"""Obligation allocation: candidate selection, greedy auto-select and validation."""

from collections.abc import Iterable, Mapping
from datetime import date
from decimal import Decimal

from ....exceptions import MismatchError, ValidationError
from ....utils.config import Settings, get_settings
from ....utils.logging import get_logger
from ...domain.enums import ObligationStatus
from ...domain.models import Allocation, Member, Obligation
from ...domain.value_objects import AllocationLine

logger = get_logger(__name__)

ZERO = Decimal("0.00")


def due_date_order(obligation: Obligation) -> tuple[bool, date]:
    """Sort key: due date ascending, obligations without a due date last."""
    return (obligation.due_date is None, obligation.due_date or date.min)


def allocated_totals(
    allocations: Iterable[Allocation], exclude_payment_id: str | None = None
) -> dict[str, Decimal]:
    """Sum allocated amounts per obligation id.

    Args:
        allocations: Allocation records to sum
        exclude_payment_id: Leave out this payment's allocations (used when
            a payment's own allocations are being replaced)
    """
    totals: dict[str, Decimal] = {}
    for allocation in allocations:
        if exclude_payment_id is not None and allocation.payment_id == exclude_payment_id:
            continue
        totals[allocation.obligation_id] = (
            totals.get(allocation.obligation_id, ZERO) + allocation.amount
        )
    return totals


class ObligationAllocator:
    """Allocate a payment across outstanding obligations.

    Example:
        >>> allocator = ObligationAllocator()
        >>> lines = allocator.auto_select(Decimal("50.00"), candidates)
        >>> allocator.validate(Decimal("50.00"), lines)
    """

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()
        self.epsilon = self.settings.amount_epsilon

    def candidate_obligations(
        self,
        payer_id: str | None,
        obligations: Iterable[Obligation],
        members: Iterable[Member],
        system_wide: bool = True,
    ) -> list[Obligation]:
        """Pending obligations a payment from ``payer_id`` may cover.

        Without a payer every pending obligation is a candidate, unless
        ``system_wide`` is False.
        """
        pending = [o for o in obligations if o.is_pending]

        if payer_id is None:
            if not system_wide:
                return []
        else:
            member_ids = {m.id for m in members if payer_id in m.payer_ids}
            pending = [o for o in pending if o.member_id in member_ids]

        return sorted(pending, key=due_date_order)

    def auto_select(
        self,
        payment_amount: Decimal,
        candidates: Iterable[Obligation],
        allocated: Mapping[str, Decimal] | None = None,
    ) -> list[AllocationLine]:
        """Greedy bin-fill in the given order.

        Each obligation receives ``min(remaining, outstanding)`` where
        outstanding is its amount minus what other payments already cover.
        Stops as soon as nothing remains. The last obligation touched may be
        covered only partially.
        """
        allocated = allocated or {}
        remaining = payment_amount
        lines: list[AllocationLine] = []

        for obligation in candidates:
            if remaining <= ZERO:
                break
            outstanding = obligation.amount - allocated.get(obligation.id, ZERO)
            if outstanding <= ZERO:
                continue
            amount = min(remaining, outstanding)
            lines.append(AllocationLine(obligation_id=obligation.id, amount=amount))
            remaining -= amount

        logger.debug(
            "allocation_auto_selected",
            payment_amount=str(payment_amount),
            lines=len(lines),
            unallocated=str(remaining),
        )
        return lines

    def validate(
        self,
        payment_amount: Decimal,
        lines: Iterable[AllocationLine],
        obligations: Iterable[Obligation] | None = None,
        allocated: Mapping[str, Decimal] | None = None,
    ) -> None:
        """Check a proposed allocation set.

        Args:
            payment_amount: Amount of the payment being allocated
            lines: Proposed allocations
            obligations: When given, each line is also checked against its
                obligation's outstanding amount
            allocated: Amounts already allocated per obligation by other payments

        Raises:
            ValidationError: If a line is non-positive, repeated, unknown or
                exceeds what its obligation still needs
            MismatchError: If the lines do not sum to the payment amount
        """
        lines = list(lines)
        if obligations is not None:
            self._validate_lines(lines, obligations, allocated or {})

        total = sum((line.amount for line in lines), ZERO)
        if abs(payment_amount - total) >= self.epsilon:
            error = MismatchError(
                "Allocations do not match the payment amount",
                payment_amount=payment_amount,
                allocated_amount=total,
            )
            logger.info(
                "allocation_mismatch",
                direction=error.direction,
                payment_amount=str(payment_amount),
                allocated_amount=str(total),
            )
            raise error

    def covers(self, obligation: Obligation, allocated_amount: Decimal) -> bool:
        """True when ``allocated_amount`` pays ``obligation`` in full."""
        return obligation.amount - allocated_amount < self.epsilon

    def _validate_lines(
        self,
        lines: list[AllocationLine],
        obligations: Iterable[Obligation],
        allocated: Mapping[str, Decimal],
    ) -> None:
        by_id = {o.id: o for o in obligations}
        seen: set[str] = set()

        for line in lines:
            if line.amount <= ZERO:
                raise ValidationError(
                    "Allocation amount must be positive",
                    field="amount",
                    value=line.amount,
                    constraint="positive",
                )
            if line.obligation_id in seen:
                raise ValidationError(
                    "Obligation allocated twice",
                    field="obligation_id",
                    value=line.obligation_id,
                    constraint="unique",
                )
            seen.add(line.obligation_id)

            obligation = by_id.get(line.obligation_id)
            if obligation is None:
                raise ValidationError(
                    "Unknown obligation",
                    field="obligation_id",
                    value=line.obligation_id,
                    constraint="exists",
                )
            if obligation.status == ObligationStatus.CANCELLED:
                raise ValidationError(
                    "Cancelled obligations cannot be allocated",
                    field="obligation_id",
                    value=line.obligation_id,
                    constraint="not_cancelled",
                )

            outstanding = obligation.amount - allocated.get(obligation.id, ZERO)
            if line.amount - outstanding >= self.epsilon:
                raise ValidationError(
                    "Allocation exceeds the obligation's outstanding amount",
                    field="amount",
                    value=line.amount,
                    constraint=f"max {outstanding}",
                )
