"""Tests for ReconciliationCoordinator and AllocationSession.

Covers the full workflow: statement import with de-duplication and payer
matching, manual match overrides, confirming a transaction into a payment,
and committing or abandoning its allocation.
"""

from datetime import date
from decimal import Decimal

import pytest
from prometheus_client import REGISTRY

from clubpay.exceptions import FormatError, MismatchError, NotFoundError, ValidationError
from clubpay.payment.application.services import ReconciliationCoordinator
from clubpay.payment.application.services.reconciliation_service import MANUAL_OVERRIDE_REASON
from clubpay.payment.domain.enums import (
    EntityType,
    MatchConfidence,
    MatchStatus,
    ObligationStatus,
    PaymentMethod,
    PaymentOrigin,
    PaymentStatus,
    StatementStatus,
)
from clubpay.payment.domain.value_objects import AllocationLine

pytestmark = pytest.mark.unit


@pytest.fixture
def coordinator(seeded_store, test_settings) -> ReconciliationCoordinator:
    return ReconciliationCoordinator(seeded_store, settings=test_settings)


@pytest.fixture
def imported(coordinator, sample_statement):
    """Result of importing the sample statement."""
    return coordinator.import_statement(sample_statement, "statement-2024-03.xml")


@pytest.fixture
def ana_obligations(make_obligation):
    """Obligations of Ana's members plus one of another payer's member."""
    return [
        make_obligation("30.00", date(2024, 1, 31), title="Training fee - January 2024"),
        make_obligation("20.00", date(2024, 2, 29), member_id="member-tim", title="Equipment"),
        make_obligation("40.00", date(2024, 1, 15), member_id="member-luka"),
    ]


def tx_by_ref(store, external_ref):
    return next(
        tx for tx in store.get_all(EntityType.TRANSACTIONS) if tx.external_ref == external_ref
    )


def cascade_count(operation):
    value = REGISTRY.get_sample_value(
        "clubpay_payment_cascades_total", {"operation": operation}
    )
    return value or 0.0


class TestImportStatement:
    """Tests for statement import."""

    def test_credits_imported_and_matched(self, seeded_store, imported):
        assert imported.imported_count == 2
        assert imported.duplicate_count == 0
        assert imported.matched_count == 2
        assert imported.unmatched_count == 0

        ana_tx = tx_by_ref(seeded_store, "REF-001")
        assert ana_tx.match_status == MatchStatus.MATCHED
        assert ana_tx.matched_payer_id == "payer-ana"
        assert ana_tx.matched_member_id == "member-eva"
        assert ana_tx.match_confidence == MatchConfidence.HIGH

        luka_tx = tx_by_ref(seeded_store, "REF-002")
        assert luka_tx.matched_payer_id == "payer-marko"
        assert luka_tx.matched_member_id == "member-luka"
        assert luka_tx.match_confidence == MatchConfidence.MEDIUM

    def test_statement_record(self, seeded_store, imported):
        statement = seeded_store.get(EntityType.STATEMENTS, imported.statement_id)

        assert statement.status == StatementStatus.COMPLETED
        assert statement.file_name == "statement-2024-03.xml"
        assert statement.message_id == "MSG-2024-03"
        assert statement.account_id == "SI56191000000999999"
        assert statement.total_transactions == 2
        assert statement.matched_transactions == 2
        assert statement.unmatched_transactions == 0

    def test_unmatched_transaction(self, seeded_store, coordinator, build_document, build_entry):
        result = coordinator.import_statement(
            build_document(build_entry(ref="REF-9", payer_name="JOHN DOE")), "other.xml"
        )

        tx = result.transactions[0]
        assert tx.match_status == MatchStatus.UNMATCHED
        assert tx.match_confidence == MatchConfidence.NONE
        assert result.unmatched_count == 1
        statement = seeded_store.get(EntityType.STATEMENTS, result.statement_id)
        assert statement.unmatched_transactions == 1

    def test_reimport_is_idempotent(self, seeded_store, coordinator, imported, sample_statement):
        again = coordinator.import_statement(sample_statement, "statement-2024-03.xml")

        assert again.imported_count == 0
        assert again.duplicate_count == 2
        assert len(seeded_store.get_all(EntityType.TRANSACTIONS)) == 2
        statement = seeded_store.get(EntityType.STATEMENTS, again.statement_id)
        assert statement.status == StatementStatus.COMPLETED
        assert statement.total_transactions == 0

    def test_duplicate_within_one_document(self, coordinator, build_document, build_entry):
        document = build_document(build_entry(ref="REF-7"), build_entry(ref="REF-7"))

        result = coordinator.import_statement(document, "dup.xml")

        assert result.imported_count == 1
        assert result.duplicate_count == 1

    def test_generated_references_are_not_deduplicated(
        self, seeded_store, coordinator, build_document, build_entry
    ):
        """Entries without any bank reference are imported again on re-import."""
        document = build_document(build_entry(ref=None))

        first = coordinator.import_statement(document, "a.xml")
        second = coordinator.import_statement(document, "a.xml")

        assert first.generated_ref_count == 1
        assert second.imported_count == 1
        assert second.duplicate_count == 0
        assert len(seeded_store.get_all(EntityType.TRANSACTIONS)) == 2

    def test_failed_import_marks_statement(self, seeded_store, coordinator):
        with pytest.raises(FormatError):
            coordinator.import_statement("<Document>", "broken.xml")

        (statement,) = seeded_store.get_all(EntityType.STATEMENTS)
        assert statement.status == StatementStatus.FAILED
        assert statement.error
        assert seeded_store.get_all(EntityType.TRANSACTIONS) == []

    def test_import_file(self, coordinator, tmp_statement_file, seeded_store):
        result = coordinator.import_file(tmp_statement_file)

        statement = seeded_store.get(EntityType.STATEMENTS, result.statement_id)
        assert statement.file_name == "statement-2024-03.xml"
        assert result.imported_count == 2


class TestOverrideMatch:
    """Tests for manual payer assignment."""

    def test_set_payer(self, seeded_store, coordinator, imported):
        tx = tx_by_ref(seeded_store, "REF-002")

        updated = coordinator.override_match(tx.id, "payer-petra")

        assert updated.match_status == MatchStatus.MATCHED
        assert updated.matched_payer_id == "payer-petra"
        assert updated.matched_member_id == "member-tim"
        assert updated.match_confidence == MatchConfidence.LOW
        assert updated.match_reason == MANUAL_OVERRIDE_REASON

    def test_clear_payer_updates_counts(self, seeded_store, coordinator, imported):
        tx = tx_by_ref(seeded_store, "REF-001")

        updated = coordinator.override_match(tx.id, None)

        assert updated.match_status == MatchStatus.UNMATCHED
        assert updated.matched_payer_id is None
        assert updated.match_confidence == MatchConfidence.NONE
        statement = seeded_store.get(EntityType.STATEMENTS, imported.statement_id)
        assert statement.matched_transactions == 1
        assert statement.unmatched_transactions == 1

    def test_unknown_payer(self, seeded_store, coordinator, imported):
        tx = tx_by_ref(seeded_store, "REF-001")

        with pytest.raises(NotFoundError):
            coordinator.override_match(tx.id, "payer-missing")

    def test_confirmed_transaction_locked(self, seeded_store, coordinator, imported):
        tx = tx_by_ref(seeded_store, "REF-001")
        coordinator.confirm_transaction(tx.id)

        with pytest.raises(ValidationError):
            coordinator.override_match(tx.id, "payer-petra")

    def test_payer_suggestions(self, seeded_store, coordinator, imported):
        tx = tx_by_ref(seeded_store, "REF-001")

        suggestions = coordinator.payer_suggestions(tx.id)

        assert suggestions[0].payer.id == "payer-ana"


class TestConfirmAndAllocate:
    """Tests for turning a transaction into an allocated payment."""

    def test_confirm_creates_pending_payment(self, seeded_store, coordinator, imported):
        tx = tx_by_ref(seeded_store, "REF-001")

        session = coordinator.confirm_transaction(tx.id)

        payment = session.payment
        assert payment.payer_id == "payer-ana"
        assert payment.payer_name == "Ana Novak"
        assert payment.amount == Decimal("50.00")
        assert payment.payment_date == date(2024, 3, 5)
        assert payment.method == PaymentMethod.BANK_TRANSFER
        assert payment.origin == PaymentOrigin.IMPORTED
        assert payment.status == PaymentStatus.PENDING
        assert payment.transaction_id == tx.id
        assert session.pending_rollback is True

        confirmed = seeded_store.get(EntityType.TRANSACTIONS, tx.id)
        assert confirmed.match_status == MatchStatus.CONFIRMED
        assert confirmed.payment_id == payment.id

    def test_commit_auto_selection(self, seeded_store, coordinator, imported, ana_obligations):
        eva_fee, tim_fee, luka_fee = ana_obligations
        session = coordinator.confirm_transaction(tx_by_ref(seeded_store, "REF-001").id)

        lines = session.auto_select()
        result = session.commit(lines)

        assert lines == [
            AllocationLine(obligation_id=eva_fee.id, amount=Decimal("30.00")),
            AllocationLine(obligation_id=tim_fee.id, amount=Decimal("20.00")),
        ]
        assert set(result.affected_obligation_ids) == {eva_fee.id, tim_fee.id}
        assert seeded_store.get(EntityType.OBLIGATIONS, eva_fee.id).status == ObligationStatus.PAID
        assert seeded_store.get(EntityType.OBLIGATIONS, tim_fee.id).status == ObligationStatus.PAID
        assert (
            seeded_store.get(EntityType.OBLIGATIONS, luka_fee.id).status
            == ObligationStatus.PENDING
        )
        assert session.payment.status == PaymentStatus.CONFIRMED
        assert session.closed and not session.pending_rollback
        assert session.close() is None
        assert seeded_store.find(EntityType.PAYMENTS, session.payment_id) is not None

    def test_candidates_limited_to_payer(
        self, seeded_store, coordinator, imported, ana_obligations
    ):
        session = coordinator.confirm_transaction(tx_by_ref(seeded_store, "REF-001").id)

        assert [o.member_id for o in session.candidates()] == ["member-eva", "member-tim"]

    def test_close_without_commit_rolls_back(self, seeded_store, coordinator, imported):
        tx = tx_by_ref(seeded_store, "REF-001")
        session = coordinator.confirm_transaction(tx.id)
        payment_id = session.payment_id

        result = session.close()

        assert result.reverted_transaction_id == tx.id
        assert seeded_store.find(EntityType.PAYMENTS, payment_id) is None
        reverted = seeded_store.get(EntityType.TRANSACTIONS, tx.id)
        assert reverted.match_status == MatchStatus.MATCHED
        assert reverted.payment_id is None

    def test_context_manager_rolls_back(self, seeded_store, coordinator, imported):
        tx = tx_by_ref(seeded_store, "REF-001")

        with coordinator.confirm_transaction(tx.id):
            pass

        assert seeded_store.get_all(EntityType.PAYMENTS) == []
        assert seeded_store.get(EntityType.TRANSACTIONS, tx.id).match_status == MatchStatus.MATCHED

    def test_rollback_counted_once(self, seeded_store, coordinator, imported):
        """Test an abandoned session is counted as a rollback and not as a delete."""
        session = coordinator.confirm_transaction(tx_by_ref(seeded_store, "REF-001").id)
        before = {op: cascade_count(op) for op in ("delete", "rollback")}

        session.close()

        assert cascade_count("rollback") == before["rollback"] + 1
        assert cascade_count("delete") == before["delete"]

    def test_mismatch_keeps_session_open(
        self, seeded_store, coordinator, imported, ana_obligations
    ):
        eva_fee = ana_obligations[0]
        session = coordinator.confirm_transaction(tx_by_ref(seeded_store, "REF-001").id)

        with pytest.raises(MismatchError):
            session.commit([AllocationLine(obligation_id=eva_fee.id, amount=Decimal("30.00"))])

        assert not session.closed
        assert session.pending_rollback
        assert seeded_store.get_all(EntityType.ALLOCATIONS) == []
        session.close()
        assert seeded_store.get_all(EntityType.PAYMENTS) == []

    def test_unmatched_payment_needs_payer(
        self, seeded_store, coordinator, build_document, build_entry, make_obligation
    ):
        luka_fee = make_obligation("25.00", member_id="member-luka")
        result = coordinator.import_statement(
            build_document(build_entry("25.00", ref="REF-9", payer_name="JOHN DOE")), "x.xml"
        )
        session = coordinator.confirm_transaction(result.transactions[0].id)
        assert session.payment.payer_id is None
        assert session.payment.payer_name == "JOHN DOE"
        lines = [AllocationLine(obligation_id=luka_fee.id, amount=Decimal("25.00"))]

        with pytest.raises(ValidationError):
            session.commit(lines)

        session.commit(lines, payer_id="payer-marko")

        payment = session.payment
        assert payment.payer_id == "payer-marko"
        assert payment.payer_name == "Marko Kovač"
        assert seeded_store.get(EntityType.OBLIGATIONS, luka_fee.id).status == (
            ObligationStatus.PAID
        )

    def test_confirm_twice_rejected(self, seeded_store, coordinator, imported):
        tx = tx_by_ref(seeded_store, "REF-001")
        coordinator.confirm_transaction(tx.id)

        with pytest.raises(ValidationError):
            coordinator.confirm_transaction(tx.id)

    def test_commit_after_close_rejected(self, seeded_store, coordinator, imported):
        session = coordinator.confirm_transaction(tx_by_ref(seeded_store, "REF-001").id)
        session.close()

        with pytest.raises(ValidationError):
            session.commit([])

    def test_transaction_can_be_confirmed_again_after_rollback(
        self, seeded_store, coordinator, imported
    ):
        tx = tx_by_ref(seeded_store, "REF-001")
        coordinator.confirm_transaction(tx.id).close()

        session = coordinator.confirm_transaction(tx.id)

        assert session.payment.transaction_id == tx.id


class TestManualPayments:
    """Tests for payments recorded outside the bank import."""

    def test_record_and_commit(self, seeded_store, coordinator, ana_obligations):
        eva_fee = ana_obligations[0]

        with coordinator.record_manual_payment(
            Decimal("30.00"), date(2024, 3, 1), payer_id="payer-ana", notes="cash"
        ) as session:
            session.commit(session.auto_select())

        (payment,) = seeded_store.get_all(EntityType.PAYMENTS)
        assert payment.origin == PaymentOrigin.MANUAL
        assert payment.method == PaymentMethod.CASH
        assert payment.payer_name == "Ana Novak"
        assert payment.status == PaymentStatus.CONFIRMED
        assert seeded_store.get(EntityType.OBLIGATIONS, eva_fee.id).status == ObligationStatus.PAID

    def test_non_positive_amount(self, coordinator):
        with pytest.raises(ValidationError):
            coordinator.record_manual_payment(Decimal("0"), date(2024, 3, 1))

    def test_reopened_allocation_never_deletes(self, seeded_store, coordinator):
        session = coordinator.record_manual_payment(
            Decimal("10.00"), date(2024, 3, 1), payer_id="payer-ana"
        )
        session.close()
        assert seeded_store.get_all(EntityType.PAYMENTS) == []

        payment_id = coordinator.record_manual_payment(
            Decimal("10.00"), date(2024, 3, 1), payer_id="payer-ana"
        ).payment_id
        reopened = coordinator.open_allocation(payment_id)
        reopened.close()

        assert seeded_store.find(EntityType.PAYMENTS, payment_id) is not None


class TestDeleteStatement:
    def test_transactions_deleted_payments_kept(
        self, seeded_store, coordinator, imported, ana_obligations
    ):
        tx = tx_by_ref(seeded_store, "REF-001")
        session = coordinator.confirm_transaction(tx.id)
        session.commit(session.auto_select())

        deleted = coordinator.delete_statement(imported.statement_id)

        assert deleted == 2
        assert seeded_store.get_all(EntityType.TRANSACTIONS) == []
        assert seeded_store.find(EntityType.STATEMENTS, imported.statement_id) is None
        payment = seeded_store.get(EntityType.PAYMENTS, session.payment_id)
        assert payment.transaction_id is None
        assert len(seeded_store.get_all(EntityType.ALLOCATIONS)) == 2

    def test_unknown_statement(self, coordinator):
        with pytest.raises(NotFoundError):
            coordinator.delete_statement("sta-missing")
