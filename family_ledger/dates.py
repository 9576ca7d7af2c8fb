"""Date utilities for Family Ledger.

Pure functions for month/year periods, due dates and period keys.
"""

import calendar
from dataclasses import dataclass
from datetime import date, timedelta

from family_ledger.models.ledger import Frequency


@dataclass(frozen=True)
class Period:
    """Inclusive date range."""

    start: date
    end: date

    def contains(self, day: date) -> bool:
        return self.start <= day <= self.end

    @property
    def days(self) -> int:
        return (self.end - self.start).days + 1

    @property
    def label(self) -> str:
        if self.start.month == 1 and self.end == date(self.start.year, 12, 31):
            return str(self.start.year)
        return self.start.strftime("%B %Y")

    def previous(self) -> "Period":
        """Period of the same length ending the day before this one starts."""
        if self.start.day == 1 and self.end == _last_day_of_month(self.end):
            months = (self.end.year - self.start.year) * 12 + self.end.month - self.start.month + 1
            start = add_months(self.start, -months)
            return Period(start, self.start - timedelta(days=1))
        length = self.end - self.start
        end = self.start - timedelta(days=1)
        return Period(end - length, end)


def _last_day_of_month(day: date) -> date:
    return day.replace(day=calendar.monthrange(day.year, day.month)[1])


def month_period(day: date) -> Period:
    """Calendar month containing ``day``.

    Args:
        day: Any date in the month.

    Returns:
        Period from the 1st to the last day of the month.
    """
    return Period(day.replace(day=1), _last_day_of_month(day))


def year_period(day: date) -> Period:
    """Calendar year containing ``day``."""
    return Period(date(day.year, 1, 1), date(day.year, 12, 31))


def add_months(day: date, months: int) -> date:
    """Shift by whole months, clamping the day to the target month's length."""
    index = day.year * 12 + (day.month - 1) + months
    year, month = divmod(index, 12)
    last = calendar.monthrange(year, month + 1)[1]
    return date(year, month + 1, min(day.day, last))


def period_key(frequency: Frequency, day: date) -> str:
    """Stable key of the period containing ``day``: 'YYYY-MM' or 'YYYY'."""
    if frequency is Frequency.YEARLY:
        return f"{day.year:04d}"
    return f"{day.year:04d}-{day.month:02d}"


def due_date_in_period(start_date: date, frequency: Frequency, day: date) -> date:
    """Anniversary of ``start_date`` inside the period containing ``day``.

    A rule starting on the 31st falls due on the last day of shorter months;
    a yearly rule starting on 29 February falls due on 28 February in
    non-leap years.
    """
    if frequency is Frequency.YEARLY:
        month = start_date.month
        year = day.year
    else:
        month = day.month
        year = day.year
    last = calendar.monthrange(year, month)[1]
    return date(year, month, min(start_date.day, last))


def end_date_for(start_date: date, count: int, frequency: Frequency) -> date:
    """Last due date of a rule that should fire ``count`` times.

    Raises:
        ValueError: If count is not positive.
    """
    if count <= 0:
        raise ValueError("Duration must be a positive number")
    if frequency is Frequency.YEARLY:
        return add_months(start_date, 12 * (count - 1))
    return add_months(start_date, count - 1)
