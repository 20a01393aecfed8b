"""Payment reconciliation and obligation engine.

This module implements:
- camt.052 bank statement import
- Ranked payer matching (5 rules)
- Exact-sum allocation of payments to obligations
- Cascading re-evaluation on payment edit/delete
- Recurring obligation generation
- Prometheus metrics

Architecture: Domain-Driven Design (DDD) + Hexagonal Architecture
"""

__all__ = [
    "Allocation",
    "BankStatement",
    "Member",
    "Obligation",
    "Payer",
    "Payment",
    "Transaction",
    "MatchResult",
    "ImportResult",
    "CascadeResult",
    "MatchStatus",
    "MatchConfidence",
    "PaymentStatus",
    "ObligationStatus",
]

from .domain.enums import MatchConfidence, MatchStatus, ObligationStatus, PaymentStatus
from .domain.models import (
    Allocation,
    BankStatement,
    Member,
    Obligation,
    Payer,
    Payment,
    Transaction,
)
from .domain.value_objects import CascadeResult, ImportResult, MatchResult
