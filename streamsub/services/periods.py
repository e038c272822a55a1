"""Billing-cycle calendar arithmetic."""
from __future__ import annotations

from datetime import datetime

from dateutil.relativedelta import relativedelta

from streamsub.core.exceptions import ValidationException

BILLING_CYCLES = {
    "monthly": relativedelta(months=1),
    "yearly": relativedelta(years=1),
}


def validate_billing_cycle(cycle: str) -> str:
    if cycle not in BILLING_CYCLES:
        raise ValidationException(
            f"Invalid billing cycle '{cycle}'. Use one of: {', '.join(BILLING_CYCLES)}"
        )
    return cycle


def period_end(start: datetime, cycle: str) -> datetime:
    """Return ``start`` advanced by exactly one calendar interval.

    Month ends clamp to the last day of the target month (Jan 31 -> Feb 28/29)
    and Feb 29 on a yearly cycle lands on Feb 28 of a non-leap year.
    """

    return start + BILLING_CYCLES[validate_billing_cycle(cycle)]
