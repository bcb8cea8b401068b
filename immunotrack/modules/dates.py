"""
ImmunoTrack Date Arithmetic
Age, interval and birthday calculations anchored on an explicit reference date
"""

from datetime import date, datetime, timedelta
from typing import Optional

from dateutil.relativedelta import relativedelta

from immunotrack.errors import InvalidDateError


def require_date(value: Optional[date], field: str = "date") -> date:
    """
    Reject missing dates instead of substituting a default

    Args:
        value: Date (or datetime) to check
        field: Field name used in the error message

    Returns:
        The value as a plain date
    """
    if value is None:
        raise InvalidDateError(f"{field} is required")
    if isinstance(value, datetime):
        return value.date()
    if not isinstance(value, date):
        raise InvalidDateError(f"{field} must be a date, got {type(value).__name__}")
    return value


def days_between(start: date, end: date) -> int:
    """Signed number of days from start to end"""
    start = require_date(start, "start")
    end = require_date(end, "end")
    return (end - start).days


def age_in_days(birth_date: date, reference_date: date) -> int:
    """Age in days at the reference date (negative before birth)"""
    return days_between(require_date(birth_date, "birth_date"), require_date(reference_date, "reference_date"))


def add_days(value: date, days: int) -> date:
    return require_date(value) + timedelta(days=days)


def age_in_years(birth_date: date, reference_date: date) -> int:
    """Completed years of age at the reference date"""
    birth_date = require_date(birth_date, "birth_date")
    reference_date = require_date(reference_date, "reference_date")
    return relativedelta(reference_date, birth_date).years


def next_birthday(birth_date: date, reference_date: date) -> date:
    """
    Next birthday on or after the reference date

    The birth date is advanced to the reference year and rolled to the
    following year when it has already passed. Feb 29 birthdays fall on
    Feb 28 in common years.
    """
    birth_date = require_date(birth_date, "birth_date")
    reference_date = require_date(reference_date, "reference_date")

    years = max(0, reference_date.year - birth_date.year)
    candidate = birth_date + relativedelta(years=years)
    if candidate < reference_date:
        candidate = birth_date + relativedelta(years=years + 1)
    return candidate


def describe_age(age_days: Optional[int]) -> str:
    """Human label for an age in days, as printed on the esquema"""
    if age_days is None or age_days < 0:
        return "Edad no válida"
    if age_days == 0:
        return "Al nacer"
    if age_days <= 31:
        return f"{age_days} días"
    if age_days <= 365:
        months = age_days // 30
        return f"{months} mes" + ("es" if months > 1 else "")

    years = age_days // 365
    remaining_months = (age_days % 365) // 30
    label = f"{years} año" + ("s" if years > 1 else "")
    if remaining_months > 0:
        label += f" y {remaining_months} mes" + ("es" if remaining_months > 1 else "")
    return label
