"""SQLAlchemy table models backing the reconciliation engine's records."""

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Table,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from ...payment.domain.enums import (
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
from .base import Base, metadata


class PayerRow(Base):
    """Payer ("parent") responsible for members' obligations."""

    __tablename__ = "payers"

    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    email: Mapped[str] = mapped_column(String(200), default="", nullable=False)
    phone: Mapped[str] = mapped_column(String(50), default="", nullable=False)
    account_id: Mapped[str | None] = mapped_column(String(34), index=True)

    def __repr__(self) -> str:
        return f"<PayerRow(id={self.id}, name='{self.first_name} {self.last_name}')>"


class MemberRow(Base):
    __tablename__ = "members"

    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    status: Mapped[MemberStatus] = mapped_column(
        Enum(MemberStatus), default=MemberStatus.ACTIVE, nullable=False
    )

    def __repr__(self) -> str:
        return f"<MemberRow(id={self.id}, name='{self.first_name} {self.last_name}')>"


# Normalized member <-> payer relation; position 0 is the primary payer
member_payers = Table(
    "member_payers",
    metadata,
    Column("member_id", String(64), ForeignKey("members.id"), primary_key=True),
    Column("payer_id", String(64), ForeignKey("payers.id"), primary_key=True),
    Column("position", Integer, nullable=False, default=0),
)


class ObligationRow(Base):
    """Obligation ("cost") owed by a member; templates and instances share the table."""

    __tablename__ = "obligations"

    member_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="", nullable=False)
    cost_type: Mapped[str] = mapped_column(String(100), default="", nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    due_date: Mapped[date | None] = mapped_column(Date, index=True)
    status: Mapped[ObligationStatus] = mapped_column(
        Enum(ObligationStatus), default=ObligationStatus.PENDING, nullable=False, index=True
    )

    is_recurring: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    recurring_period: Mapped[RecurringPeriod | None] = mapped_column(Enum(RecurringPeriod))
    recurring_day_of_month: Mapped[int | None] = mapped_column(Integer)
    recurring_start_date: Mapped[date | None] = mapped_column(Date)
    recurring_end_date: Mapped[date | None] = mapped_column(Date)
    recurring_template_id: Mapped[str | None] = mapped_column(String(64), index=True)

    def __repr__(self) -> str:
        return (
            f"<ObligationRow(id={self.id}, member_id={self.member_id}, "
            f"amount={self.amount}, status='{self.status.value}')>"
        )


class PaymentRow(Base):
    __tablename__ = "payments"

    payer_id: Mapped[str | None] = mapped_column(String(64), index=True)
    payer_name: Mapped[str] = mapped_column(String(200), default="", nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    payment_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    method: Mapped[PaymentMethod] = mapped_column(Enum(PaymentMethod), nullable=False)
    reference: Mapped[str | None] = mapped_column(String(200))
    notes: Mapped[str] = mapped_column(Text, default="", nullable=False)
    origin: Mapped[PaymentOrigin] = mapped_column(Enum(PaymentOrigin), nullable=False)
    transaction_id: Mapped[str | None] = mapped_column(String(64), index=True)
    status: Mapped[PaymentStatus] = mapped_column(
        Enum(PaymentStatus), default=PaymentStatus.PENDING, nullable=False, index=True
    )

    def __repr__(self) -> str:
        return f"<PaymentRow(id={self.id}, amount={self.amount}, status='{self.status.value}')>"


class AllocationRow(Base):
    """Allocation of a payment (or portion) to an obligation."""

    __tablename__ = "allocations"

    payment_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    obligation_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    def __repr__(self) -> str:
        return (
            f"<AllocationRow(id={self.id}, payment_id={self.payment_id}, "
            f"obligation_id={self.obligation_id}, amount={self.amount})>"
        )


class BankStatementRow(Base):
    __tablename__ = "bank_statements"

    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    imported_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status: Mapped[StatementStatus] = mapped_column(Enum(StatementStatus), nullable=False)
    message_id: Mapped[str] = mapped_column(String(100), default="", nullable=False)
    account_id: Mapped[str] = mapped_column(String(34), default="", nullable=False)
    account_owner: Mapped[str] = mapped_column(String(200), default="", nullable=False)
    total_transactions: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    matched_transactions: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    unmatched_transactions: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    error: Mapped[str | None] = mapped_column(Text)


class BankTransactionRow(Base):
    """Credit entry imported from a bank statement."""

    __tablename__ = "bank_transactions"

    statement_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="EUR", nullable=False)
    booking_date: Mapped[date | None] = mapped_column(Date, index=True)
    value_date: Mapped[date | None] = mapped_column(Date)
    payer_name: Mapped[str] = mapped_column(String(200), default="", nullable=False)
    payer_account_id: Mapped[str | None] = mapped_column(String(34))
    description: Mapped[str] = mapped_column(Text, default="", nullable=False)
    reference: Mapped[str | None] = mapped_column(String(200))
    external_ref: Mapped[str | None] = mapped_column(String(100), index=True)
    bank_fee: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0.00"))

    match_status: Mapped[MatchStatus] = mapped_column(
        Enum(MatchStatus), default=MatchStatus.UNMATCHED, nullable=False, index=True
    )
    matched_payer_id: Mapped[str | None] = mapped_column(String(64))
    matched_member_id: Mapped[str | None] = mapped_column(String(64))
    match_confidence: Mapped[MatchConfidence] = mapped_column(
        Enum(MatchConfidence), default=MatchConfidence.NONE, nullable=False
    )
    match_reason: Mapped[str | None] = mapped_column(Text)
    payment_id: Mapped[str | None] = mapped_column(String(64))

    def __repr__(self) -> str:
        return (
            f"<BankTransactionRow(id={self.id}, amount={self.amount}, "
            f"status='{self.match_status.value}')>"
        )


class CostTypeRow(Base):
    __tablename__ = "cost_types"

    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
