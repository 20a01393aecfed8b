"""Domain records for the reconciliation engine.

Entities:
- Have identity (string ID assigned by the store on create)
- Are replaced, not mutated, by ``InMemoryStore.update``
- Are mapped to database rows by ``SqlAlchemyBackend``
"""

from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from decimal import Decimal

from .enums import (
    MatchConfidence,
    MatchStatus,
    MemberStatus,
    ObligationStatus,
    PaymentMethod,
    PaymentOrigin,
    PaymentStatus,
    RecurringPeriod,
    StatementStatus,
)


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(kw_only=True)
class Payer:
    """Billing-responsible party ("parent") for one or more members."""

    id: str | None = None
    first_name: str
    last_name: str
    email: str = ""
    phone: str = ""
    account_id: str | None = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


@dataclass(kw_only=True)
class Member:
    """Club member. ``payer_ids`` lists every linked payer, primary payer first."""

    id: str | None = None
    first_name: str
    last_name: str
    payer_ids: list[str] = field(default_factory=list)
    status: MemberStatus = MemberStatus.ACTIVE

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def primary_payer_id(self) -> str | None:
        return self.payer_ids[0] if self.payer_ids else None


@dataclass(kw_only=True)
class Obligation:
    """Amount owed by a member ("cost").

    A record with ``is_recurring`` and no ``recurring_template_id`` is a
    template; generated instances point back to it through
    ``recurring_template_id``.
    """

    id: str | None = None
    member_id: str
    title: str
    amount: Decimal
    cost_type: str = ""
    description: str = ""
    due_date: date | None = None
    status: ObligationStatus = ObligationStatus.PENDING
    created_at: datetime = field(default_factory=_utcnow)

    is_recurring: bool = False
    recurring_period: RecurringPeriod | None = None
    recurring_day_of_month: int | None = None
    recurring_start_date: date | None = None
    recurring_end_date: date | None = None
    recurring_template_id: str | None = None

    @property
    def is_template(self) -> bool:
        return self.is_recurring and not self.recurring_template_id

    @property
    def is_pending(self) -> bool:
        return self.status == ObligationStatus.PENDING

    def is_overdue(self, today: date) -> bool:
        return self.is_pending and self.due_date is not None and self.due_date < today


@dataclass(kw_only=True)
class Payment:
    """Money received from a payer.

    ``payer_id`` may be empty for payments whose payer is not yet known; in
    that case ``payer_name`` carries the name printed by the bank.
    """

    id: str | None = None
    payer_id: str | None = None
    payer_name: str = ""
    amount: Decimal
    payment_date: date
    method: PaymentMethod = PaymentMethod.BANK_TRANSFER
    reference: str | None = None
    notes: str = ""
    origin: PaymentOrigin = PaymentOrigin.MANUAL
    transaction_id: str | None = None
    status: PaymentStatus = PaymentStatus.PENDING
    created_at: datetime = field(default_factory=_utcnow)

    @property
    def is_imported(self) -> bool:
        return self.origin == PaymentOrigin.IMPORTED


@dataclass(kw_only=True)
class Allocation:
    """Part (or all) of a payment assigned to one obligation."""

    id: str | None = None
    payment_id: str
    obligation_id: str
    amount: Decimal
    created_at: datetime = field(default_factory=_utcnow)


@dataclass(kw_only=True)
class BankStatement:
    """One imported statement file and its import counters."""

    id: str | None = None
    file_name: str
    imported_at: datetime = field(default_factory=_utcnow)
    status: StatementStatus = StatementStatus.PROCESSING
    message_id: str = ""
    account_id: str = ""
    account_owner: str = ""
    total_transactions: int = 0
    matched_transactions: int = 0
    unmatched_transactions: int = 0
    error: str | None = None


@dataclass(kw_only=True)
class Transaction:
    """A credit line item imported from a bank statement."""

    id: str | None = None
    statement_id: str
    amount: Decimal
    currency: str = "EUR"
    booking_date: date | None = None
    value_date: date | None = None
    payer_name: str = ""
    payer_account_id: str | None = None
    description: str = ""
    reference: str | None = None
    external_ref: str | None = None
    bank_fee: Decimal = Decimal("0.00")

    match_status: MatchStatus = MatchStatus.UNMATCHED
    matched_payer_id: str | None = None
    matched_member_id: str | None = None
    match_confidence: MatchConfidence = MatchConfidence.NONE
    match_reason: str | None = None
    payment_id: str | None = None

    @property
    def is_incoming(self) -> bool:
        return self.amount > 0

    @property
    def is_confirmed(self) -> bool:
        return self.match_status == MatchStatus.CONFIRMED

    @property
    def reverted_status(self) -> MatchStatus:
        """Status to fall back to when the payment created from it goes away."""
        return MatchStatus.MATCHED if self.matched_payer_id else MatchStatus.UNMATCHED


@dataclass(kw_only=True)
class CostType:
    """Obligation category (e.g. training fees, equipment)."""

    id: str | None = None
    name: str
