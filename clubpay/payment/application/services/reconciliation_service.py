"""Reconciliation workflow: import, match, confirm, allocate.

Flow:
    1. ``import_statement`` parses a statement and stores each new credit
       entry as a transaction, matched to a payer where possible
    2. ``confirm_transaction`` turns a transaction into a pending payment and
       opens an ``AllocationSession`` for it
    3. The session either commits a validated allocation set or, when closed
       without committing, deletes the payment again and reverts the
       transaction
"""

from collections.abc import Iterable
from datetime import date
from decimal import Decimal
from pathlib import Path

from ....exceptions import ValidationError
from ....utils.config import Settings, get_settings
from ....utils.logging import LogPerformance, get_logger
from ...domain.enums import (
    EntityType,
    MatchConfidence,
    MatchStatus,
    PaymentMethod,
    PaymentOrigin,
    PaymentStatus,
    StatementStatus,
)
from ...domain.models import BankStatement, Obligation, Payment, Transaction
from ...domain.value_objects import AllocationLine, CascadeResult, ImportResult, ParsedTransaction
from ...infrastructure.importers import BaseImporter, Camt052Importer
from ...infrastructure.store import InMemoryStore
from ...matchers import PayerMatcher, PayerSuggestion, Roster, suggest_payers
from ...metrics import (
    record_statement_import,
    record_transaction_import,
    track_import_duration,
)
from .allocation_service import ObligationAllocator, allocated_totals
from .cascade_service import CascadeManager

logger = get_logger(__name__)

MANUAL_OVERRIDE_REASON = "Manual override"


class ReconciliationCoordinator:
    """Orchestrates statement import and the payment allocation workflow.

    Example:
        >>> coordinator = ReconciliationCoordinator(store)
        >>> result = coordinator.import_statement(xml_text, "2024-03.xml")
        >>> session = coordinator.confirm_transaction(result.transactions[0].id)
        >>> session.commit(session.auto_select())
    """

    def __init__(
        self,
        store: InMemoryStore,
        importer: BaseImporter | None = None,
        matcher: PayerMatcher | None = None,
        allocator: ObligationAllocator | None = None,
        cascade: CascadeManager | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.store = store
        self.settings = settings or get_settings()
        self.importer = importer or Camt052Importer(self.settings)
        self.matcher = matcher or PayerMatcher(settings=self.settings)
        self.allocator = allocator or ObligationAllocator(self.settings)
        self.cascade = cascade or CascadeManager(store, self.allocator)

    # ------------------------------------------------------------------
    # Import
    # ------------------------------------------------------------------

    def import_statement(self, raw_document: str | bytes, file_name: str) -> ImportResult:
        """Import one statement document.

        Entries whose external reference is already known are skipped.
        Entries without a bank reference get a generated one and are
        therefore never recognized as duplicates on a later re-import.

        Raises:
            FormatError: If the document is malformed (statement marked failed)
            SchemaError: If a required element is missing (statement marked failed)
        """
        statement = self.store.create(EntityType.STATEMENTS, BankStatement(file_name=file_name))
        result = ImportResult(statement_id=statement.id)

        try:
            with LogPerformance("statement_import", logger), track_import_duration():
                parsed = self.importer.parse(raw_document)
                self.store.update(
                    EntityType.STATEMENTS,
                    statement.id,
                    {
                        "message_id": parsed.header.message_id,
                        "account_id": parsed.header.account_id,
                        "account_owner": parsed.header.account_owner,
                    },
                )
                self._store_transactions(statement.id, parsed.transactions, result)
        except Exception as e:
            self.store.update(
                EntityType.STATEMENTS,
                statement.id,
                {"status": StatementStatus.FAILED, "error": str(e)},
            )
            record_statement_import(StatementStatus.FAILED.value)
            logger.error(
                "statement_import_failed",
                statement_id=statement.id,
                file_name=file_name,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise

        self._refresh_statement_counts(statement.id, status=StatementStatus.COMPLETED)
        record_statement_import(StatementStatus.COMPLETED.value)
        record_transaction_import("imported", result.imported_count)
        record_transaction_import("duplicate", result.duplicate_count)

        logger.info(
            "statement_imported",
            file_name=file_name,
            **result.to_dict(),
        )
        return result

    def import_file(self, file_path: Path | str) -> ImportResult:
        """Import a statement file, detecting its text encoding."""
        path = Path(file_path)
        self.importer.validate_file(path)
        encoding = self.importer.detect_encoding(path)
        return self.import_statement(path.read_text(encoding=encoding), path.name)

    def _store_transactions(
        self,
        statement_id: str,
        parsed: Iterable[ParsedTransaction],
        result: ImportResult,
    ) -> None:
        known_refs = {
            tx.external_ref
            for tx in self.store.get_all(EntityType.TRANSACTIONS)
            if tx.external_ref
        }
        payers = self.store.get_all(EntityType.PAYERS)
        members = self.store.get_all(EntityType.MEMBERS)

        for entry in parsed:
            if entry.external_ref in known_refs:
                result.duplicate_count += 1
                logger.debug("transaction_duplicate_skipped", external_ref=entry.external_ref)
                continue

            match = self.matcher.match(entry, payers, members)
            transaction = self.store.create(
                EntityType.TRANSACTIONS,
                Transaction(
                    statement_id=statement_id,
                    amount=entry.amount,
                    currency=entry.currency,
                    booking_date=entry.booking_date,
                    value_date=entry.value_date,
                    payer_name=entry.payer_name,
                    payer_account_id=entry.payer_account_id,
                    description=entry.description,
                    reference=entry.reference,
                    external_ref=entry.external_ref,
                    bank_fee=entry.bank_fee,
                    match_status=(
                        MatchStatus.MATCHED if match.has_payer else MatchStatus.UNMATCHED
                    ),
                    matched_payer_id=match.payer_id,
                    matched_member_id=match.member_id,
                    match_confidence=match.confidence,
                    match_reason=match.reason,
                ),
            )
            known_refs.add(entry.external_ref)

            result.transactions.append(transaction)
            result.imported_count += 1
            if entry.generated_ref:
                result.generated_ref_count += 1
            if match.has_payer:
                result.matched_count += 1
            else:
                result.unmatched_count += 1

    # ------------------------------------------------------------------
    # Matching
    # ------------------------------------------------------------------

    def override_match(self, transaction_id: str, payer_id: str | None) -> Transaction:
        """Set or clear a transaction's payer by hand.

        Raises:
            NotFoundError: If the transaction or payer does not exist
            ValidationError: If the transaction is already confirmed
        """
        transaction = self.store.get(EntityType.TRANSACTIONS, transaction_id)
        if transaction.is_confirmed:
            raise ValidationError(
                "Confirmed transactions cannot be re-matched",
                field="transaction_id",
                value=transaction_id,
                constraint="not_confirmed",
            )

        if payer_id is None:
            patch = {
                "match_status": MatchStatus.UNMATCHED,
                "matched_payer_id": None,
                "matched_member_id": None,
                "match_confidence": MatchConfidence.NONE,
                "match_reason": None,
            }
        else:
            self.store.get(EntityType.PAYERS, payer_id)
            roster = Roster.build([], self.store.get_all(EntityType.MEMBERS))
            patch = {
                "match_status": MatchStatus.MATCHED,
                "matched_payer_id": payer_id,
                "matched_member_id": roster.first_member_for(payer_id),
                "match_confidence": MatchConfidence.LOW,
                "match_reason": MANUAL_OVERRIDE_REASON,
            }

        self.store.update(EntityType.TRANSACTIONS, transaction_id, patch)
        self._refresh_statement_counts(transaction.statement_id)
        logger.info(
            "transaction_match_overridden", transaction_id=transaction_id, payer_id=payer_id
        )
        return self.store.get(EntityType.TRANSACTIONS, transaction_id)

    def payer_suggestions(self, transaction_id: str, limit: int = 5) -> list[PayerSuggestion]:
        """Payers whose name resembles the transaction's payer name, best first."""
        transaction = self.store.get(EntityType.TRANSACTIONS, transaction_id)
        return suggest_payers(transaction, self.store.get_all(EntityType.PAYERS), limit=limit)

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------

    def confirm_transaction(self, transaction_id: str) -> "AllocationSession":
        """Create a pending payment from a transaction and open its allocation.

        Raises:
            NotFoundError: If the transaction does not exist
            ValidationError: If the transaction is already confirmed
        """
        transaction = self.store.get(EntityType.TRANSACTIONS, transaction_id)
        if transaction.is_confirmed or transaction.payment_id:
            raise ValidationError(
                "Transaction is already confirmed",
                field="transaction_id",
                value=transaction_id,
                constraint="not_confirmed",
            )

        payer = self.store.find(EntityType.PAYERS, transaction.matched_payer_id)
        payment = self.store.create(
            EntityType.PAYMENTS,
            Payment(
                payer_id=payer.id if payer else None,
                payer_name=payer.full_name if payer else transaction.payer_name,
                amount=transaction.amount,
                payment_date=transaction.booking_date or transaction.value_date or date.today(),
                method=PaymentMethod.BANK_TRANSFER,
                reference=transaction.reference,
                notes=transaction.description,
                origin=PaymentOrigin.IMPORTED,
                transaction_id=transaction.id,
                status=PaymentStatus.PENDING,
            ),
        )
        self.store.update(
            EntityType.TRANSACTIONS,
            transaction_id,
            {"match_status": MatchStatus.CONFIRMED, "payment_id": payment.id},
        )

        logger.info(
            "transaction_confirmed",
            transaction_id=transaction_id,
            payment_id=payment.id,
            payer_id=payment.payer_id,
            amount=str(payment.amount),
        )
        return AllocationSession(self, payment.id, pending_rollback=True)

    def record_manual_payment(
        self,
        amount: Decimal,
        payment_date: date,
        *,
        payer_id: str | None = None,
        payer_name: str = "",
        method: PaymentMethod = PaymentMethod.CASH,
        reference: str | None = None,
        notes: str = "",
    ) -> "AllocationSession":
        """Record a payment received outside the bank import and open its allocation.

        Raises:
            ValidationError: If the amount is not positive
            NotFoundError: If ``payer_id`` is unknown
        """
        if amount <= 0:
            raise ValidationError(
                "Payment amount must be positive",
                field="amount",
                value=amount,
                constraint="positive",
            )
        if payer_id is not None:
            payer_name = self.store.get(EntityType.PAYERS, payer_id).full_name

        payment = self.store.create(
            EntityType.PAYMENTS,
            Payment(
                payer_id=payer_id,
                payer_name=payer_name,
                amount=amount,
                payment_date=payment_date,
                method=method,
                reference=reference,
                notes=notes,
                origin=PaymentOrigin.MANUAL,
            ),
        )
        logger.info("manual_payment_recorded", payment_id=payment.id, amount=str(amount))
        return AllocationSession(self, payment.id, pending_rollback=True)

    def open_allocation(self, payment_id: str) -> "AllocationSession":
        """Re-open allocation for an existing payment; closing it never deletes the payment."""
        self.store.get(EntityType.PAYMENTS, payment_id)
        return AllocationSession(self, payment_id, pending_rollback=False)

    # ------------------------------------------------------------------
    # Statements
    # ------------------------------------------------------------------

    def delete_statement(self, statement_id: str) -> int:
        """Delete a statement and its transactions.

        Payments created from those transactions are kept; their transaction
        link is cleared.

        Returns:
            Number of transactions deleted
        """
        self.store.get(EntityType.STATEMENTS, statement_id)
        transactions = self.store.filter(
            EntityType.TRANSACTIONS, lambda tx: tx.statement_id == statement_id
        )

        for transaction in transactions:
            for payment in self.store.filter(
                EntityType.PAYMENTS, lambda p, tx_id=transaction.id: p.transaction_id == tx_id
            ):
                self.store.update(EntityType.PAYMENTS, payment.id, {"transaction_id": None})
            self.store.delete(EntityType.TRANSACTIONS, transaction.id)

        self.store.delete(EntityType.STATEMENTS, statement_id)
        logger.info(
            "statement_deleted", statement_id=statement_id, transactions=len(transactions)
        )
        return len(transactions)

    def _refresh_statement_counts(self, statement_id: str, **extra) -> None:
        if self.store.find(EntityType.STATEMENTS, statement_id) is None:
            return
        transactions = self.store.filter(
            EntityType.TRANSACTIONS, lambda tx: tx.statement_id == statement_id
        )
        unmatched = sum(1 for tx in transactions if tx.match_status == MatchStatus.UNMATCHED)
        self.store.update(
            EntityType.STATEMENTS,
            statement_id,
            {
                "total_transactions": len(transactions),
                "matched_transactions": len(transactions) - unmatched,
                "unmatched_transactions": unmatched,
                **extra,
            },
        )


class AllocationSession:
    """Allocation of one payment, committed once or abandoned.

    ``pending_rollback`` is True while the session belongs to a payment that
    was created just for it. Committing clears the flag before anything is
    written; closing with the flag still set deletes the payment (with
    cascade) and reverts its transaction.

    Usable as a context manager; leaving the block calls ``close()``.
    """

    def __init__(
        self,
        coordinator: ReconciliationCoordinator,
        payment_id: str,
        pending_rollback: bool = False,
    ) -> None:
        self.coordinator = coordinator
        self.store = coordinator.store
        self.payment_id = payment_id
        self.pending_rollback = pending_rollback
        self.closed = False

    @property
    def payment(self) -> Payment:
        return self.store.get(EntityType.PAYMENTS, self.payment_id)

    def candidates(self, system_wide: bool = True) -> list[Obligation]:
        """Obligations this payment may be allocated to, oldest due date first."""
        return self.coordinator.allocator.candidate_obligations(
            self.payment.payer_id,
            self.store.get_all(EntityType.OBLIGATIONS),
            self.store.get_all(EntityType.MEMBERS),
            system_wide=system_wide,
        )

    def allocated_elsewhere(self) -> dict[str, Decimal]:
        return allocated_totals(
            self.store.get_all(EntityType.ALLOCATIONS), exclude_payment_id=self.payment_id
        )

    def auto_select(self) -> list[AllocationLine]:
        return self.coordinator.allocator.auto_select(
            self.payment.amount, self.candidates(), self.allocated_elsewhere()
        )

    def commit(
        self, lines: Iterable[AllocationLine], payer_id: str | None = None
    ) -> CascadeResult:
        """Validate and write the allocation set; the payment becomes ``confirmed``.

        Args:
            lines: Allocation set summing to the payment amount
            payer_id: Payer to link; required when the payment has none

        Raises:
            ValidationError: If the session is closed, no payer is known or a
                line is invalid
            MismatchError: If the lines do not sum to the payment amount
        """
        if self.closed:
            raise ValidationError(
                "Allocation session is closed", field="payment_id", value=self.payment_id
            )

        payment = self.payment
        if payer_id is None and payment.payer_id is None:
            raise ValidationError(
                "A payer must be linked before allocating",
                field="payer_id",
                constraint="required",
            )

        changes = {}
        if payer_id is not None and payer_id != payment.payer_id:
            payer = self.store.get(EntityType.PAYERS, payer_id)
            changes = {"payer_id": payer.id, "payer_name": payer.full_name}

        lines = list(lines)
        self.coordinator.allocator.validate(
            payment.amount,
            lines,
            obligations=self.store.get_all(EntityType.OBLIGATIONS),
            allocated=self.allocated_elsewhere(),
        )

        self.pending_rollback = False
        result = self.coordinator.cascade.update_payment(
            self.payment_id, allocations=lines, **changes
        )
        self.closed = True

        logger.info(
            "allocation_committed",
            payment_id=self.payment_id,
            lines=len(lines),
            obligations=len(result.affected_obligation_ids),
        )
        return result

    def close(self) -> CascadeResult | None:
        """End the session, rolling back the payment if it was never committed."""
        if self.closed:
            return None
        self.closed = True

        if not self.pending_rollback:
            return None
        self.pending_rollback = False

        result = self.coordinator.cascade.delete_payment(self.payment_id, operation="rollback")
        logger.info(
            "allocation_abandoned",
            payment_id=self.payment_id,
            reverted_transaction_id=result.reverted_transaction_id,
        )
        return result

    def __enter__(self) -> "AllocationSession":
        return self

    def __exit__(self, *args) -> None:
        self.close()

    def __repr__(self) -> str:
        return (
            f"<AllocationSession(payment_id={self.payment_id}, "
            f"pending_rollback={self.pending_rollback}, closed={self.closed})>"
        )
