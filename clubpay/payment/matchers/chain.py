"""Payer matcher evaluating the rule chain, first match wins."""

from collections.abc import Iterable

from ...utils.config import Settings, get_settings
from ...utils.logging import get_logger
from ..domain.models import Member, Payer
from ..domain.value_objects import MatchResult
from ..metrics import record_payer_match
from .base import IPayerRule, MatchableTransaction, Roster
from .rules import default_rules

logger = get_logger(__name__)


class PayerMatcher:
    """Find the probable payer of a transaction.

    Rules run in a fixed order; the first one that recognizes the payer
    decides the result. When none does the result has confidence ``none``
    and no ids.

    Example:
        >>> matcher = PayerMatcher()
        >>> result = matcher.match(transaction, payers, members)
        >>> result.confidence
        <MatchConfidence.HIGH: 'high'>
    """

    def __init__(
        self,
        rules: list[IPayerRule] | None = None,
        settings: Settings | None = None,
    ) -> None:
        settings = settings or get_settings()
        self.rules = rules if rules is not None else default_rules(settings.min_name_length)

    def match(
        self,
        transaction: MatchableTransaction,
        payers: Iterable[Payer],
        members: Iterable[Member],
    ) -> MatchResult:
        roster = Roster.build(payers, members)

        result = MatchResult.no_match()
        for rule in self.rules:
            found = rule.match(transaction, roster)
            if found is not None:
                result = found
                break

        record_payer_match(result.confidence.value)
        logger.debug(
            "payer_match_evaluated",
            payer_id=result.payer_id,
            member_id=result.member_id,
            confidence=result.confidence.value,
            reason=result.reason,
        )
        return result

    def __repr__(self) -> str:
        return f"<PayerMatcher(rules={len(self.rules)})>"
