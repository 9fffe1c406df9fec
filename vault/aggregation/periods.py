"""
Calendar period arithmetic.

A period always starts on the first instant of a calendar month or year and
ends on the last microsecond before the next one starts. Stepping is done on
(year, month) numbers rather than by adding durations, so walking forward
from January 31st lands on February 1st, never on March 3rd.

Timezone information on the input is preserved.
"""

from datetime import datetime, timedelta

from vault.models.results import PeriodKind


_ONE_MICROSECOND = timedelta(microseconds=1)


def period_start(moment: datetime, kind: PeriodKind) -> datetime:
    """First instant of the month or year containing `moment`."""
    start = moment.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    if kind == PeriodKind.YEAR:
        start = start.replace(month=1)
    return start


def step_period(moment: datetime, kind: PeriodKind, steps: int = 1) -> datetime:
    """
    Start of the period `steps` periods away from the one containing `moment`.

    Negative steps walk backwards.
    """
    start = period_start(moment, kind)
    if kind == PeriodKind.YEAR:
        return start.replace(year=start.year + steps)

    month_index = start.year * 12 + (start.month - 1) + steps
    year, month = divmod(month_index, 12)
    return start.replace(year=year, month=month + 1)


def period_bounds(moment: datetime, kind: PeriodKind) -> tuple[datetime, datetime]:
    """Inclusive (start, end) of the period containing `moment`."""
    start = period_start(moment, kind)
    return start, step_period(start, kind, 1) - _ONE_MICROSECOND


def period_label(moment: datetime, kind: PeriodKind) -> str:
    """'Jan 2024' for months, '2024' for years."""
    if kind == PeriodKind.YEAR:
        return f"{moment.year}"
    return moment.strftime("%b %Y")
