"""Tests for PayerMatcher and the payer matching rules.

Rules are evaluated in order (account, payer full name, payer last name,
member name in description, payer last name in description) and the first
rule that recognizes a payer decides the result.
"""

from decimal import Decimal

import pytest

from clubpay.payment.domain.enums import MatchConfidence
from clubpay.payment.domain.models import Member, Payer
from clubpay.payment.domain.value_objects import ParsedTransaction
from clubpay.payment.matchers import (
    AccountRule,
    MemberNameInDescriptionRule,
    PayerMatcher,
    Roster,
    default_rules,
    normalize_account,
)

pytestmark = pytest.mark.unit


def make_tx(payer_name="", description="", payer_account_id=None) -> ParsedTransaction:
    return ParsedTransaction(
        external_ref="REF-1",
        amount=Decimal("50.00"),
        currency="EUR",
        booking_date=None,
        value_date=None,
        payer_name=payer_name,
        payer_account_id=payer_account_id,
        description=description,
    )


@pytest.fixture
def matcher(test_settings) -> PayerMatcher:
    return PayerMatcher(settings=test_settings)


class TestRuleChain:
    """Each rule in isolation through the full chain."""

    def test_account_match(self, matcher, payers, members):
        """Test registered account matches regardless of spacing and case."""
        tx = make_tx(payer_name="SOMEBODY ELSE", payer_account_id="si56191000000123438")

        result = matcher.match(tx, payers, members)

        assert result.payer_id == "payer-ana"
        assert result.member_id == "member-eva"
        assert result.confidence == MatchConfidence.HIGH
        assert result.reason == "Account match: si56191000000123438"

    def test_payer_full_name_reversed(self, matcher, payers, members):
        """Test 'LAST FIRST' order as printed by many banks."""
        result = matcher.match(make_tx(payer_name="NOVAK ANA"), payers, members)

        assert result.payer_id == "payer-ana"
        assert result.confidence == MatchConfidence.HIGH
        assert result.reason == "Payer name: Ana Novak"

    def test_payer_full_name_with_diacritics(self, matcher, payers, members):
        result = matcher.match(make_tx(payer_name="MARKO KOVAČ s.p."), payers, members)

        assert result.payer_id == "payer-marko"
        assert result.member_id == "member-luka"
        assert result.confidence == MatchConfidence.HIGH

    def test_payer_last_name(self, matcher, payers, members):
        result = matcher.match(make_tx(payer_name="MRS A. ZUPAN"), payers, members)

        assert result.payer_id == "payer-petra"
        assert result.member_id == "member-tim"
        assert result.confidence == MatchConfidence.MEDIUM
        assert result.reason == "Last name in payer name: Zupan"

    def test_member_name_in_description(self, matcher, payers, members):
        tx = make_tx(payer_name="JOHN DOE", description="Fee for Luka Kovač, March")

        result = matcher.match(tx, payers, members)

        assert result.payer_id == "payer-marko"
        assert result.member_id == "member-luka"
        assert result.confidence == MatchConfidence.MEDIUM
        assert result.reason == "Member name in description: Luka Kovač"

    def test_member_without_payer_matches_member_only(self, matcher, payers, members):
        """Test a member with no linked payer yields a match without payer."""
        tx = make_tx(payer_name="JOHN DOE", description="HORVAT NINA june")

        result = matcher.match(tx, payers, members)

        assert result.payer_id is None
        assert result.member_id == "member-nina"
        assert result.has_payer is False
        assert result.confidence == MatchConfidence.MEDIUM

    def test_payer_last_name_in_description(self, matcher, payers, members):
        tx = make_tx(payer_name="JOHN DOE", description="Zupan family membership")

        result = matcher.match(tx, payers, members)

        assert result.payer_id == "payer-petra"
        assert result.confidence == MatchConfidence.LOW
        assert result.reason == "Last name in description: Zupan"

    def test_no_match(self, matcher, payers, members):
        tx = make_tx(payer_name="JOHN DOE", description="donation")

        result = matcher.match(tx, payers, members)

        assert result.payer_id is None
        assert result.member_id is None
        assert result.confidence == MatchConfidence.NONE
        assert result.reason is None


class TestPriority:
    """Earlier rules win over later ones."""

    def test_account_beats_name(self, matcher, payers, members):
        tx = make_tx(payer_name="PETRA ZUPAN", payer_account_id="SI56 1910 0000 0123 438")

        result = matcher.match(tx, payers, members)

        assert result.payer_id == "payer-ana"
        assert result.confidence == MatchConfidence.HIGH

    def test_payer_name_beats_description(self, matcher, payers, members):
        tx = make_tx(payer_name="PETRA ZUPAN", description="Fee for Eva Novak")

        result = matcher.match(tx, payers, members)

        assert result.payer_id == "payer-petra"

    def test_first_payer_in_roster_wins(self, matcher, payers, members):
        """Test two payers sharing a last name: roster order decides."""
        twin = Payer(id="payer-ivan", first_name="Ivan", last_name="Novak")

        result = matcher.match(make_tx(payer_name="N. NOVAK"), [twin, *payers], members)

        assert result.payer_id == "payer-ivan"
        assert result.member_id is None

    def test_chain_order(self):
        rules = default_rules()

        assert [type(rule).__name__ for rule in rules] == [
            "AccountRule",
            "PayerFullNameRule",
            "PayerLastNameRule",
            "MemberNameInDescriptionRule",
            "PayerLastNameInDescriptionRule",
        ]


class TestEdgeCases:
    """Edge cases for empty and short names."""

    def test_empty_payer_names_never_match(self, matcher, members):
        blank = Payer(id="payer-blank", first_name="", last_name="  ")
        tx = make_tx(payer_name="ANYONE", description="anything")

        result = matcher.match(tx, [blank], members)

        assert result.payer_id is None

    def test_empty_transaction_fields(self, matcher, payers, members):
        result = matcher.match(make_tx(), payers, members)

        assert result.confidence == MatchConfidence.NONE

    def test_short_last_name_ignored(self, matcher, members):
        """Test last names below the minimum length do not match substrings."""
        payer = Payer(id="payer-li", first_name="Wei", last_name="Li")

        result = matcher.match(make_tx(payer_name="LILIANA SMITH"), [payer], members)

        assert result.payer_id is None

    def test_payer_without_first_name_has_no_full_name(self, matcher, members):
        """Test a blank first name does not turn the last name into a full-name match."""
        payer = Payer(id="payer-li", first_name="", last_name="Li")

        result = matcher.match(make_tx(payer_name="LILIANA SMITH"), [payer], members)

        assert result.payer_id is None
        assert result.confidence == MatchConfidence.NONE

    def test_payer_without_first_name_matches_by_last_name(self, matcher, members):
        payer = Payer(id="payer-horvat", first_name="  ", last_name="Horvat")

        result = matcher.match(make_tx(payer_name="HORVAT MARIJA"), [payer], members)

        assert result.payer_id == "payer-horvat"
        assert result.confidence == MatchConfidence.MEDIUM

    def test_minimum_length_configurable(self, members):
        payer = Payer(id="payer-li", first_name="Wei", last_name="Li")
        matcher = PayerMatcher(rules=default_rules(min_name_length=2))

        result = matcher.match(make_tx(payer_name="LILIANA SMITH"), [payer], members)

        assert result.payer_id == "payer-li"

    def test_payer_without_account_skipped_by_account_rule(self, payers, members):
        roster = Roster.build(payers, members)

        assert AccountRule().match(make_tx(payer_account_id="SI00 0000"), roster) is None

    def test_member_rule_ignores_blank_member_names(self):
        roster = Roster.build([], [Member(id="member-x", first_name=" ", last_name="")])

        assert MemberNameInDescriptionRule().match(make_tx(description="x"), roster) is None

    def test_normalize_account(self):
        assert normalize_account(" SI56 1910\t0000 ") == "si5619100000"
        assert normalize_account(None) == ""


class TestRoster:
    def test_first_member_for(self, payers, members):
        roster = Roster.build(payers, members)

        assert roster.first_member_for("payer-ana") == "member-eva"
        assert roster.first_member_for("payer-petra") == "member-tim"
        assert roster.first_member_for("payer-unknown") is None
        assert roster.first_member_for(None) is None
