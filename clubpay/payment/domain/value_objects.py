"""Value objects passed between engine components.

Immutable where the data is a result; never persisted directly.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from .enums import MatchConfidence
from .models import Transaction


@dataclass(frozen=True)
class StatementHeader:
    """Group header and account data of a parsed statement."""

    message_id: str
    created_at: str
    account_id: str
    account_owner: str = ""


@dataclass(frozen=True)
class ParsedTransaction:
    """A credit entry extracted from a statement, before persistence.

    ``generated_ref`` is True when the bank supplied no reference and
    ``external_ref`` was generated during parsing; such entries cannot be
    de-duplicated across re-imports.
    """

    external_ref: str
    amount: Decimal
    currency: str
    booking_date: date | None
    value_date: date | None
    payer_name: str
    payer_account_id: str | None = None
    description: str = ""
    reference: str | None = None
    bank_fee: Decimal = Decimal("0.00")
    generated_ref: bool = False


@dataclass(frozen=True)
class ParsedStatement:
    header: StatementHeader
    transactions: list[ParsedTransaction] = field(default_factory=list)


@dataclass(frozen=True)
class MatchResult:
    """Best-guess payer for a transaction.

    Attributes:
        payer_id: Matched payer, if any
        member_id: Member the payment is probably for, if known
        confidence: Certainty tier of the rule that produced the match
        reason: Human-readable explanation for the operator
    """

    payer_id: str | None = None
    member_id: str | None = None
    confidence: MatchConfidence = MatchConfidence.NONE
    reason: str | None = None

    @classmethod
    def no_match(cls) -> "MatchResult":
        return cls()

    @property
    def has_payer(self) -> bool:
        return self.payer_id is not None


@dataclass(frozen=True)
class AllocationLine:
    """Proposed allocation of ``amount`` to one obligation."""

    obligation_id: str
    amount: Decimal


@dataclass
class ImportResult:
    """Outcome of importing one statement."""

    statement_id: str
    imported_count: int = 0
    duplicate_count: int = 0
    matched_count: int = 0
    unmatched_count: int = 0
    generated_ref_count: int = 0
    transactions: list[Transaction] = field(default_factory=list)

    @property
    def total_count(self) -> int:
        return self.imported_count + self.duplicate_count

    def to_dict(self) -> dict:
        return {
            "statement_id": self.statement_id,
            "imported_count": self.imported_count,
            "duplicate_count": self.duplicate_count,
            "matched_count": self.matched_count,
            "unmatched_count": self.unmatched_count,
            "generated_ref_count": self.generated_ref_count,
        }

    def __str__(self) -> str:
        return (
            f"ImportResult(imported={self.imported_count}/{self.total_count}, "
            f"matched={self.matched_count}, duplicates={self.duplicate_count})"
        )


@dataclass(frozen=True)
class CascadeResult:
    """What a payment deletion or update touched."""

    payment_id: str
    affected_obligation_ids: tuple[str, ...] = ()
    reverted_transaction_id: str | None = None
    removed_allocation_ids: tuple[str, ...] = ()
