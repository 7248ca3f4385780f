"""Due-date rollover for recurring bills and transactions.

Month based frequencies keep the day-of-month of the date being rolled and
clamp it to the length of the target month, so Jan 31 + 1 month is the last
day of February rather than an overflow into March. Each call re-derives the
day from its input: rolling 31 -> Feb 28 -> Mar 28 is expected.
"""

from __future__ import annotations

import calendar
from datetime import date, timedelta
from typing import Iterator

from fintrack.models import Frequency


_DAY_STEPS: dict[Frequency, int] = {
    Frequency.DAILY: 1,
    Frequency.WEEKLY: 7,
    Frequency.BIWEEKLY: 14,
}

_MONTH_STEPS: dict[Frequency, int] = {
    Frequency.MONTHLY: 1,
    Frequency.QUARTERLY: 3,
    Frequency.BIANNUALLY: 6,
    Frequency.ANNUALLY: 12,
}


def _add_month(year: int, month: int, delta: int) -> tuple[int, int]:
    total = year * 12 + (month - 1) + delta
    new_year = total // 12
    new_month = total % 12 + 1
    return new_year, new_month


def _clamp_day(year: int, month: int, day: int) -> date:
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day, last_day))


def add_months(value: date, months: int) -> date:
    """Shift ``value`` by whole months, clamping to the target month's last day."""
    year, month = _add_month(value.year, value.month, months)
    return _clamp_day(year, month, value.day)


def coerce_frequency(frequency: Frequency | str | None) -> Frequency:
    """Resolve a frequency value; anything unrecognised is treated as monthly."""
    if isinstance(frequency, Frequency):
        return frequency
    if isinstance(frequency, str):
        try:
            return Frequency(frequency.strip().lower())
        except ValueError:
            pass
    return Frequency.MONTHLY


def next_due_date(current_due_date: date, frequency: Frequency | str | None) -> date:
    """Return the occurrence after ``current_due_date`` for ``frequency``.

    Raises ``ValueError`` or ``OverflowError`` when the result is past ``date.max``.
    """
    kind = coerce_frequency(frequency)
    step = _DAY_STEPS.get(kind)
    if step is not None:
        return current_due_date + timedelta(days=step)
    # Feb 29 + annually lands on Feb 28 in non-leap years via the same clamp.
    return add_months(current_due_date, _MONTH_STEPS[kind])


def iter_due_dates(
    start: date,
    frequency: Frequency | str | None,
    *,
    until: date,
    limit: int | None = None,
) -> Iterator[date]:
    """Yield ``start`` and each following occurrence up to ``until`` inclusive."""
    current = start
    produced = 0
    while current <= until:
        if limit is not None and produced >= limit:
            return
        yield current
        produced += 1
        try:
            current = next_due_date(current, frequency)
        except (ValueError, OverflowError):
            return
