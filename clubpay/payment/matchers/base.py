"""Base interface for payer matching rules.

Implements the Strategy pattern: each rule is an independent object that
either recognizes the payer of a transaction or passes.
"""

import re
from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Protocol

from ..domain.models import Member, Payer
from ..domain.value_objects import MatchResult

_WHITESPACE = re.compile(r"\s+")


class MatchableTransaction(Protocol):
    """Fields a rule reads; satisfied by ``Transaction`` and ``ParsedTransaction``."""

    payer_name: str
    payer_account_id: str | None
    description: str


def normalize(text: str | None) -> str:
    """Case-insensitive, trimmed comparison form of ``text``."""
    return (text or "").strip().casefold()


def normalize_account(account_id: str | None) -> str:
    return _WHITESPACE.sub("", account_id or "").casefold()


@dataclass
class Roster:
    """Payers and members the rules search, with lookup helpers.

    Example:
        >>> roster = Roster.build(payers, members)
        >>> roster.first_member_for("pay-1")
    """

    payers: list[Payer] = field(default_factory=list)
    members: list[Member] = field(default_factory=list)

    @classmethod
    def build(cls, payers: Iterable[Payer], members: Iterable[Member]) -> "Roster":
        return cls(payers=list(payers), members=list(members))

    def first_member_for(self, payer_id: str | None) -> str | None:
        """Id of the first member linked to ``payer_id``."""
        if payer_id is None:
            return None
        for member in self.members:
            if payer_id in member.payer_ids:
                return member.id
        return None


class IPayerRule(ABC):
    """Abstract base class for payer matching rules.

    Implementing a new rule:
        1. Inherit from IPayerRule
        2. Implement match() returning a MatchResult or None
        3. Register it in the chain at the position matching its certainty
    """

    @abstractmethod
    def match(self, transaction: MatchableTransaction, roster: Roster) -> MatchResult | None:
        """Return a match, or None to let the next rule try."""

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}>"
