"""
Date Helpers

Day and month arithmetic shared by the projection and XIRR modules.
"""

from typing import Union
from datetime import date, datetime
from dateutil.relativedelta import relativedelta

DAYS_PER_YEAR = 365.0


def to_date(value: Union[date, datetime]) -> date:
    """Drop any time-of-day component; flows are compared by whole days."""
    if isinstance(value, datetime):
        return value.date()
    return value


def days_between(start: date, end: date) -> int:
    """Calculate the number of whole days from start to end."""
    return (to_date(end) - to_date(start)).days


def year_fraction(start: date, end: date) -> float:
    """Actual/365 year fraction, matching Excel's XIRR day count."""
    return days_between(start, end) / DAYS_PER_YEAR


def add_months(start: date, months: int) -> date:
    """Add calendar months, clamping to month end (Jan 31 + 1 month = Feb 28)."""
    return to_date(start) + relativedelta(months=months)


def add_years(start: date, years: int) -> date:
    """Add calendar years, clamping Feb 29 to Feb 28 where needed."""
    return to_date(start) + relativedelta(years=years)


def whole_months_between(start: date, end: date) -> int:
    """Count complete calendar months from start to end."""
    delta = relativedelta(to_date(end), to_date(start))
    return delta.years * 12 + delta.months
