from datetime import datetime, timezone

import pytest

from streamsub.core.exceptions import ValidationException
from streamsub.services.periods import period_end


def _utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "start, expected",
    [
        (_utc(2024, 1, 15, 8, 30), _utc(2024, 2, 15, 8, 30)),
        (_utc(2024, 1, 31), _utc(2024, 2, 29)),
        (_utc(2023, 1, 31), _utc(2023, 2, 28)),
        (_utc(2024, 3, 31), _utc(2024, 4, 30)),
        (_utc(2024, 12, 31, 23, 59), _utc(2025, 1, 31, 23, 59)),
    ],
)
def test_monthly_period_is_one_calendar_month(start, expected):
    assert period_end(start, "monthly") == expected


@pytest.mark.parametrize(
    "start, expected",
    [
        (_utc(2023, 6, 1), _utc(2024, 6, 1)),
        (_utc(2024, 2, 29), _utc(2025, 2, 28)),
        (_utc(2023, 3, 1), _utc(2024, 3, 1)),
    ],
)
def test_yearly_period_is_one_calendar_year(start, expected):
    assert period_end(start, "yearly") == expected


def test_yearly_period_spanning_leap_day_is_not_365_days():
    start = _utc(2023, 3, 1)
    assert (period_end(start, "yearly") - start).days == 366


def test_unknown_cycle_is_rejected():
    with pytest.raises(ValidationException):
        period_end(_utc(2024, 1, 1), "weekly")
