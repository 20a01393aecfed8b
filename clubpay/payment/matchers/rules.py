"""The five payer matching rules, from most to least certain."""

from ..domain.enums import MatchConfidence
from ..domain.models import Member, Payer
from ..domain.value_objects import MatchResult
from .base import IPayerRule, MatchableTransaction, Roster, normalize, normalize_account


def _name_variants(first_name: str, last_name: str) -> list[str]:
    """Forward and reversed full name, normalized.

    A payer missing either name part has no full name and yields nothing.
    """
    first, last = normalize(first_name), normalize(last_name)
    if not first or not last:
        return []

    variants = [f"{first} {last}"]
    if last != first:
        variants.append(f"{last} {first}")
    return variants


def _payer_result(
    payer: Payer, roster: Roster, confidence: MatchConfidence, reason: str
) -> MatchResult:
    return MatchResult(
        payer_id=payer.id,
        member_id=roster.first_member_for(payer.id),
        confidence=confidence,
        reason=reason,
    )


class AccountRule(IPayerRule):
    """Debtor account equals a payer's registered account (whitespace ignored)."""

    def match(self, transaction: MatchableTransaction, roster: Roster) -> MatchResult | None:
        account = normalize_account(transaction.payer_account_id)
        if not account:
            return None

        for payer in roster.payers:
            if payer.account_id and normalize_account(payer.account_id) == account:
                return _payer_result(
                    payer,
                    roster,
                    MatchConfidence.HIGH,
                    f"Account match: {transaction.payer_account_id}",
                )
        return None


class PayerFullNameRule(IPayerRule):
    """Payer's full name, either order, appears in the bank's payer name."""

    def match(self, transaction: MatchableTransaction, roster: Roster) -> MatchResult | None:
        payer_name = normalize(transaction.payer_name)
        if not payer_name:
            return None

        for payer in roster.payers:
            if any(v in payer_name for v in _name_variants(payer.first_name, payer.last_name)):
                return _payer_result(
                    payer, roster, MatchConfidence.HIGH, f"Payer name: {payer.full_name}"
                )
        return None


class _LastNameRule(IPayerRule):
    """Payer's last name appears in one transaction field."""

    confidence: MatchConfidence
    label: str

    def __init__(self, min_length: int = 3) -> None:
        self.min_length = min_length

    def _haystack(self, transaction: MatchableTransaction) -> str:
        raise NotImplementedError

    def match(self, transaction: MatchableTransaction, roster: Roster) -> MatchResult | None:
        haystack = self._haystack(transaction)
        if not haystack:
            return None

        for payer in roster.payers:
            last_name = normalize(payer.last_name)
            if len(last_name) >= self.min_length and last_name in haystack:
                return _payer_result(
                    payer, roster, self.confidence, f"{self.label}: {payer.last_name.strip()}"
                )
        return None


class PayerLastNameRule(_LastNameRule):
    confidence = MatchConfidence.MEDIUM
    label = "Last name in payer name"

    def _haystack(self, transaction: MatchableTransaction) -> str:
        return normalize(transaction.payer_name)


class MemberNameInDescriptionRule(IPayerRule):
    """Member's full name, either order, appears in the remittance description.

    The payer is the member's first linked payer and may be unknown.
    """

    def match(self, transaction: MatchableTransaction, roster: Roster) -> MatchResult | None:
        description = normalize(transaction.description)
        if not description:
            return None

        for member in roster.members:
            if any(v in description for v in _name_variants(member.first_name, member.last_name)):
                return self._result(member)
        return None

    def _result(self, member: Member) -> MatchResult:
        return MatchResult(
            payer_id=member.primary_payer_id,
            member_id=member.id,
            confidence=MatchConfidence.MEDIUM,
            reason=f"Member name in description: {member.full_name}",
        )


class PayerLastNameInDescriptionRule(_LastNameRule):
    confidence = MatchConfidence.LOW
    label = "Last name in description"

    def _haystack(self, transaction: MatchableTransaction) -> str:
        return normalize(transaction.description)


def default_rules(min_name_length: int = 3) -> list[IPayerRule]:
    """The rule chain in evaluation order."""
    return [
        AccountRule(),
        PayerFullNameRule(),
        PayerLastNameRule(min_name_length),
        MemberNameInDescriptionRule(),
        PayerLastNameInDescriptionRule(min_name_length),
    ]
