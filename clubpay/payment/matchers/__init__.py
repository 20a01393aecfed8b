"""Payer matching rules using the Strategy pattern.

Rules (evaluated in this order, first match wins):
- AccountRule: debtor account equals a payer's account (high)
- PayerFullNameRule: payer full name in the bank's payer name (high)
- PayerLastNameRule: payer last name in the bank's payer name (medium)
- MemberNameInDescriptionRule: member full name in the description (medium)
- PayerLastNameInDescriptionRule: payer last name in the description (low)

Usage:
    >>> from clubpay.payment.matchers import PayerMatcher
    >>> result = PayerMatcher().match(transaction, payers, members)
"""

__all__ = [
    "IPayerRule",
    "Roster",
    "normalize",
    "normalize_account",
    "PayerMatcher",
    "AccountRule",
    "PayerFullNameRule",
    "PayerLastNameRule",
    "MemberNameInDescriptionRule",
    "PayerLastNameInDescriptionRule",
    "default_rules",
    "PayerSuggestion",
    "suggest_payers",
]

from .base import IPayerRule, Roster, normalize, normalize_account
from .chain import PayerMatcher
from .rules import (
    AccountRule,
    MemberNameInDescriptionRule,
    PayerFullNameRule,
    PayerLastNameInDescriptionRule,
    PayerLastNameRule,
    default_rules,
)
from .suggest import PayerSuggestion, suggest_payers
