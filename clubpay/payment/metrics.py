"""Prometheus metrics instrumentation for the reconciliation engine.

Counters and histograms live in the default registry; exposing them (HTTP
exporter, push gateway) is left to the host application.
"""

from typing import Any

from prometheus_client import Counter, Histogram

# ============================================================================
# Metric Definitions
# ============================================================================

# Counter: Statement imports
statement_imports_total = Counter(
    "clubpay_statement_imports_total",
    "Total number of bank statement imports",
    ["status"],  # labels: completed/failed
)

# Counter: Bank transactions seen during import
transactions_imported_total = Counter(
    "clubpay_transactions_imported_total",
    "Total number of bank transactions processed during import",
    ["status"],  # labels: imported/duplicate
)

# Counter: Payer matches by confidence tier
payer_matches_total = Counter(
    "clubpay_payer_matches_total",
    "Total number of automatic payer matches",
    ["confidence"],  # labels: high/medium/low/none
)

# Counter: Allocations committed
allocations_committed_total = Counter(
    "clubpay_allocations_committed_total",
    "Total number of allocation records created",
)

# Counter: Payment cascades
payment_cascades_total = Counter(
    "clubpay_payment_cascades_total",
    "Total number of cascading payment mutations",
    ["operation"],  # labels: delete/update/rollback
)

# Counter: Recurring obligations generated
recurring_obligations_generated_total = Counter(
    "clubpay_recurring_obligations_generated_total",
    "Total number of obligation instances generated from templates",
)

# Counter: Persistence failures
persistence_failures_total = Counter(
    "clubpay_persistence_failures_total",
    "Total number of queued writes the backend rejected",
    ["entity", "operation"],
)

# Histogram: Import processing duration
import_processing_duration_seconds = Histogram(
    "clubpay_import_processing_duration_seconds",
    "Time taken to import a bank statement",
    buckets=(0.01, 0.05, 0.1, 0.5, 1.0, 2.0, 5.0, 10.0),
)


# ============================================================================
# Convenience Functions
# ============================================================================


def record_statement_import(status: str) -> None:
    statement_imports_total.labels(status=status).inc()


def record_transaction_import(status: str, count: int = 1) -> None:
    """Record processed bank transactions.

    Args:
        status: ``imported`` or ``duplicate``
        count: Number of transactions
    """
    if count:
        transactions_imported_total.labels(status=status).inc(count)


def record_payer_match(confidence: str) -> None:
    payer_matches_total.labels(confidence=confidence).inc()


def record_allocations(count: int) -> None:
    if count:
        allocations_committed_total.inc(count)


def record_cascade(operation: str) -> None:
    payment_cascades_total.labels(operation=operation).inc()


def record_recurring_generated(count: int) -> None:
    if count:
        recurring_obligations_generated_total.inc(count)


def record_persistence_failure(entity: str, operation: str) -> None:
    persistence_failures_total.labels(entity=entity, operation=operation).inc()


class track_import_duration:
    """Context manager to track import processing duration."""

    def __init__(self) -> None:
        self.timer: Any = None

    def __enter__(self) -> "track_import_duration":
        self.timer = import_processing_duration_seconds.time()
        self.timer.__enter__()
        return self

    def __exit__(self, *args: Any) -> None:
        if self.timer:
            self.timer.__exit__(*args)
