"""Business logic services for payment reconciliation.

Service Layer Pattern: services operate on the ``InMemoryStore`` and never
touch the persistence backend directly.
"""

__all__ = [
    "AllocationSession",
    "CascadeManager",
    "CostTypeService",
    "ObligationAllocator",
    "ReconciliationCoordinator",
    "RecurringScheduler",
    "allocated_totals",
    "next_due_date",
    "overdue_notice_for_payer",
    "overdue_notices",
    "title_for_period",
]

from .allocation_service import ObligationAllocator, allocated_totals
from .cascade_service import CascadeManager
from .cost_type_service import CostTypeService
from .export_service import overdue_notice_for_payer, overdue_notices
from .reconciliation_service import AllocationSession, ReconciliationCoordinator
from .recurring_scheduler import RecurringScheduler, next_due_date, title_for_period
