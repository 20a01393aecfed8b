"""Fuzzy payer suggestions for manual match overrides.

Used when the rule chain finds nothing: ranks payers by name similarity
to the bank's payer name so the operator can pick one. Never feeds back
into automatic matching.
"""

from collections.abc import Iterable
from dataclasses import dataclass

from rapidfuzz import fuzz, process, utils

from ..domain.models import Payer
from .base import MatchableTransaction


@dataclass(frozen=True)
class PayerSuggestion:
    payer: Payer
    score: float


def suggest_payers(
    transaction: MatchableTransaction,
    payers: Iterable[Payer],
    limit: int = 5,
    score_cutoff: float = 60.0,
) -> list[PayerSuggestion]:
    """Rank payers by similarity of their full name to the transaction's payer name.

    Token sort ratio ignores word order, so "NOVAK ANA" scores like "Ana Novak".

    Args:
        transaction: Transaction whose payer name is compared
        payers: Candidate payers
        limit: Maximum suggestions returned
        score_cutoff: Minimum similarity (0-100)

    Returns:
        Suggestions, best first
    """
    by_id = {payer.id: payer for payer in payers if payer.full_name}
    if not transaction.payer_name or not by_id:
        return []

    matches = process.extract(
        transaction.payer_name,
        {payer_id: payer.full_name for payer_id, payer in by_id.items()},
        scorer=fuzz.token_sort_ratio,
        processor=utils.default_process,
        limit=limit,
        score_cutoff=score_cutoff,
    )
    return [PayerSuggestion(payer=by_id[key], score=score) for _, score, key in matches]
