"""Generation of recurring obligation instances from templates.

A template is an obligation with ``is_recurring`` set and no
``recurring_template_id``. Each run materializes the instances that fall due
within the look-ahead window; running it again creates nothing new.
"""

import re
from datetime import date, timedelta

from dateutil.relativedelta import relativedelta

from ....utils.config import Settings, get_settings
from ....utils.logging import get_logger
from ...domain.enums import EntityType, ObligationStatus, RecurringPeriod
from ...domain.models import Obligation
from ...infrastructure.store import InMemoryStore
from ...metrics import record_recurring_generated

logger = get_logger(__name__)

MONTH_NAMES = [
    "January",
    "February",
    "March",
    "April",
    "May",
    "June",
    "July",
    "August",
    "September",
    "October",
    "November",
    "December",
]

_MONTH_YEAR = re.compile(rf"\b({'|'.join(MONTH_NAMES)})\s+\d{{4}}\b")


def next_due_date(template: Obligation, base: date) -> date | None:
    """Due date of the period following ``base``.

    Monthly and quarterly periods land on the template's anchor day, clamped
    to the last day of shorter months (anchor 31 gives Feb 28/29, Apr 30).

    Returns:
        None when the template has no period
    """
    period = template.recurring_period
    anchor = template.recurring_day_of_month

    if period == RecurringPeriod.WEEKLY:
        return base + timedelta(days=7)
    if period == RecurringPeriod.MONTHLY:
        return base + relativedelta(months=1, day=anchor)
    if period == RecurringPeriod.QUARTERLY:
        return base + relativedelta(months=3, day=anchor)
    if period == RecurringPeriod.YEARLY:
        return base + relativedelta(years=1)
    return None


def title_for_period(title: str, due_date: date) -> str:
    """Replace the "Month Year" token in ``title`` or append one.

    Example:
        >>> title_for_period("Training fee - January 2024", date(2024, 2, 15))
        'Training fee - February 2024'
    """
    label = f"{MONTH_NAMES[due_date.month - 1]} {due_date.year}"
    if _MONTH_YEAR.search(title):
        return _MONTH_YEAR.sub(label, title, count=1)
    return f"{title} - {label}"


class RecurringScheduler:
    """Materialize due instances of recurring obligation templates.

    Example:
        >>> scheduler = RecurringScheduler(store)
        >>> created = scheduler.run(today=date(2024, 3, 1))
    """

    def __init__(self, store: InMemoryStore, settings: Settings | None = None) -> None:
        self.store = store
        self.settings = settings or get_settings()

    def run(self, today: date | None = None) -> list[Obligation]:
        """Generate every missing instance due within the look-ahead window.

        Returns:
            The obligations created by this run
        """
        today = today or date.today()
        templates = self.store.filter(EntityType.OBLIGATIONS, lambda o: o.is_template)

        created: list[Obligation] = []
        for template in templates:
            created.extend(self._generate(template, today))

        record_recurring_generated(len(created))
        logger.info(
            "recurring_obligations_generated",
            templates=len(templates),
            created=len(created),
            today=today.isoformat(),
        )
        return created

    def should_generate(self, template: Obligation, today: date) -> bool:
        """True while ``today`` lies inside the template's active range."""
        if not template.is_template:
            return False
        if template.recurring_period is None or template.recurring_start_date is None:
            return False
        if today < template.recurring_start_date:
            return False
        if template.recurring_end_date is not None and today > template.recurring_end_date:
            return False
        return True

    def _generate(self, template: Obligation, today: date) -> list[Obligation]:
        if not self.should_generate(template, today):
            return []

        created = []
        for _ in range(self.settings.max_generations_per_run):
            due = next_due_date(template, self._base_date(template))
            if due is None or self._instance_exists(template, due):
                break
            if template.recurring_end_date is not None and due > template.recurring_end_date:
                break
            if (due - today).days > self.settings.lookahead_days:
                break

            instance = self.store.create(
                EntityType.OBLIGATIONS,
                Obligation(
                    member_id=template.member_id,
                    title=title_for_period(template.title, due),
                    description=template.description,
                    amount=template.amount,
                    cost_type=template.cost_type,
                    due_date=due,
                    status=ObligationStatus.PENDING,
                    is_recurring=False,
                    recurring_template_id=template.id,
                ),
            )
            created.append(instance)
            logger.debug(
                "recurring_instance_created",
                template_id=template.id,
                obligation_id=instance.id,
                due_date=due.isoformat(),
            )
        else:
            logger.warning(
                "recurring_generation_limit_reached",
                template_id=template.id,
                limit=self.settings.max_generations_per_run,
            )

        return created

    def _base_date(self, template: Obligation) -> date:
        """Latest generated due date, else the template's due date, else its start date."""
        instance_dates = [
            o.due_date
            for o in self.store.filter(
                EntityType.OBLIGATIONS, lambda o: o.recurring_template_id == template.id
            )
            if o.due_date is not None
        ]
        if instance_dates:
            return max(instance_dates)
        return template.due_date or template.recurring_start_date

    def _instance_exists(self, template: Obligation, due: date) -> bool:
        return any(
            o.member_id == template.member_id
            and o.cost_type == template.cost_type
            and o.due_date == due
            and (o.recurring_template_id == template.id or o.id == template.id)
            for o in self.store.get_all(EntityType.OBLIGATIONS)
        )
