"""Plain-text overdue notices, one block per payer.

Only payers with an email address are included. An obligation is overdue
when it is pending and its due date lies before ``today``.
"""

from collections.abc import Iterable
from datetime import date
from decimal import Decimal

from ....utils.config import Settings, get_settings
from ....utils.logging import get_logger
from ...domain.models import Member, Obligation, Payer

logger = get_logger(__name__)

NO_OVERDUE_MESSAGE = "No payers with overdue obligations and an email address.\n"


def overdue_notice_for_payer(
    payer: Payer,
    members: Iterable[Member],
    obligations: Iterable[Obligation],
    today: date | None = None,
    settings: Settings | None = None,
) -> str:
    """Notice listing the payer's overdue obligations grouped by member.

    Returns:
        The notice text, or an empty string when nothing is overdue
    """
    today = today or date.today()
    settings = settings or get_settings()

    own_members = [m for m in members if payer.id in m.payer_ids]
    if not own_members:
        return ""

    member_ids = {m.id for m in own_members}
    by_member: dict[str, list[Obligation]] = {}
    for obligation in obligations:
        if obligation.member_id in member_ids and obligation.is_overdue(today):
            by_member.setdefault(obligation.member_id, []).append(obligation)

    if not by_member:
        return ""

    lines = [
        f"Dear {payer.full_name},",
        "",
        "this is a reminder of the overdue obligations for your members:",
        "",
    ]
    total = Decimal("0.00")
    for member in own_members:
        overdue = sorted(by_member.get(member.id, []), key=lambda o: o.due_date)
        if not overdue:
            continue
        lines.append(f"{member.full_name}:")
        for obligation in overdue:
            lines.append(
                f"  - {obligation.title}: {obligation.amount:.2f} "
                f"(due {obligation.due_date.isoformat()} - OVERDUE)"
            )
            total += obligation.amount
        lines.append("")

    lines += [
        f"Total outstanding: {total:.2f}",
        "",
        "Please settle these obligations as soon as possible.",
        "",
        "Kind regards,",
        settings.club_name,
        "",
        "---",
        f"Email: {payer.email}",
        "",
        "",
    ]
    return "\n".join(lines) + "\n"


def overdue_notices(
    payers: Iterable[Payer],
    members: Iterable[Member],
    obligations: Iterable[Obligation],
    today: date | None = None,
    settings: Settings | None = None,
) -> str:
    """Notices for every payer with an email address and overdue obligations."""
    members = list(members)
    obligations = list(obligations)

    notices = []
    for payer in payers:
        if not payer.email or not payer.email.strip():
            continue
        notice = overdue_notice_for_payer(payer, members, obligations, today, settings)
        if notice:
            notices.append(notice)

    logger.info("overdue_notices_generated", payers=len(notices))
    if not notices:
        return NO_OVERDUE_MESSAGE
    return "".join(notices)
