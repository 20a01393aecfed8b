"""Enumerations for the reconciliation engine."""

from enum import Enum


class EntityType(str, Enum):
    """Entity collections exposed by the data-access layer."""

    TRANSACTIONS = "transactions"
    PAYMENTS = "payments"
    ALLOCATIONS = "allocations"
    OBLIGATIONS = "obligations"
    STATEMENTS = "statements"
    PAYERS = "payers"
    MEMBERS = "members"
    COST_TYPES = "cost_types"

    def __str__(self) -> str:
        return self.value


class MatchStatus(str, Enum):
    """Reconciliation state of an imported bank transaction.

    UNMATCHED -> MATCHED (payer found or chosen) -> CONFIRMED (payment created).
    A confirmed transaction reverts when its payment is deleted.
    """

    UNMATCHED = "unmatched"
    MATCHED = "matched"
    CONFIRMED = "confirmed"

    def __str__(self) -> str:
        return self.value


class MatchConfidence(str, Enum):
    """Certainty tier of an automatic payer match."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    NONE = "none"

    def __str__(self) -> str:
        return self.value


class PaymentStatus(str, Enum):
    PENDING = "pending"
    ALLOCATED = "allocated"
    CONFIRMED = "confirmed"

    def __str__(self) -> str:
        return self.value


class PaymentMethod(str, Enum):
    BANK_TRANSFER = "bank_transfer"
    CASH = "cash"
    CARD = "card"
    OTHER = "other"

    def __str__(self) -> str:
        return self.value


class PaymentOrigin(str, Enum):
    MANUAL = "manual"
    IMPORTED = "imported"

    def __str__(self) -> str:
        return self.value


class ObligationStatus(str, Enum):
    """Obligation state. There is no partial-paid state."""

    PENDING = "pending"
    PAID = "paid"
    CANCELLED = "cancelled"

    def __str__(self) -> str:
        return self.value


class RecurringPeriod(str, Enum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"

    def __str__(self) -> str:
        return self.value


class StatementStatus(str, Enum):
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    def __str__(self) -> str:
        return self.value


class MemberStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    ARCHIVED = "archived"

    def __str__(self) -> str:
        return self.value
