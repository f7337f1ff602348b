"""Calendar arithmetic for recurring schedules."""

import calendar
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Optional

from recurra.models.recurring import Frequency

# Cadences that roll by calendar months rather than fixed day counts
MONTH_STEPS = {
    Frequency.monthly: 1,
    Frequency.quarterly: 3,
    Frequency.yearly: 12,
}


@dataclass(frozen=True)
class Cadence:
    """A frequency together with its interval in days."""
    frequency: Frequency
    interval_days: int

    @classmethod
    def of(cls, frequency: Frequency, interval_days: Optional[int] = None) -> "Cadence":
        frequency = Frequency(frequency)
        if frequency == Frequency.custom:
            if not interval_days or interval_days < 1:
                raise ValueError("Custom frequency requires interval_days >= 1")
            return cls(frequency, int(interval_days))
        return cls(frequency, frequency.nominal_days)


def clamp_day_to_month(year: int, month: int, day: int) -> int:
    """Clamp day to valid range for the given year/month."""
    max_day = calendar.monthrange(year, month)[1]
    return min(day, max_day)


def add_months(d: date, n: int) -> date:
    """Add n months to date d, clamping day to month end."""
    month = d.month - 1 + n
    year = d.year + month // 12
    month = month % 12 + 1
    day = clamp_day_to_month(year, month, d.day)
    return d.replace(year=year, month=month, day=day)


def predict_next_date(
    last_date: date,
    frequency: Frequency,
    interval_days: Optional[int] = None
) -> date:
    """
    Calculate the next occurrence after last_date.

    Monthly, quarterly and yearly cadences keep the day of month and clamp to
    the end of shorter months (Jan 31 -> Feb 28/29). Daily, weekly and custom
    cadences add a fixed number of days.
    """
    frequency = Frequency(frequency)
    if frequency in MONTH_STEPS:
        return add_months(last_date, MONTH_STEPS[frequency])

    if frequency == Frequency.custom:
        days = max(1, int(round(interval_days or 0)))
    else:
        days = frequency.nominal_days
    return last_date + timedelta(days=days)
