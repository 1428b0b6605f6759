import calendar
import re
from datetime import date, datetime, timedelta
from utils.constants import (
    DATE_FORMAT, MONTH_FORMAT, DAY_INTERVALS, MONTH_INTERVALS, CUSTOM_UNITS,
)
from utils.errors import ConfigurationError, ValidationError

_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def today() -> date:
    return date.today()


def parse_date(date_str: str) -> date:
    """Parse a strict YYYY-MM-DD string. Raises ValidationError on anything else."""
    if isinstance(date_str, datetime):
        return date_str.date()
    if isinstance(date_str, date):
        return date_str
    if not isinstance(date_str, str) or not _ISO_DATE_RE.match(date_str):
        raise ValidationError(f"Invalid date {date_str!r}; expected YYYY-MM-DD.")
    try:
        return datetime.strptime(date_str, DATE_FORMAT).date()
    except ValueError as exc:
        raise ValidationError(f"Invalid date {date_str!r}: {exc}") from exc


def is_valid_date(date_str: str) -> bool:
    try:
        parse_date(date_str)
    except ValidationError:
        return False
    return True


def format_date(d: date) -> str:
    return d.strftime(DATE_FORMAT)


def format_month(d: date) -> str:
    return d.strftime(MONTH_FORMAT)


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


def add_years(d: date, n: int) -> date:
    return add_months(d, 12 * n)


def next_date(
    d: date,
    frequency: str,
    custom_interval: int | None = None,
    custom_unit: str | None = None,
) -> date:
    """Advance d by one period of the given frequency.

    Month arithmetic clamps to the last day of shorter months, so a rule on
    the 31st drifts to the 28th/29th after February and stays there.
    """
    if frequency in DAY_INTERVALS:
        return d + timedelta(days=DAY_INTERVALS[frequency])
    if frequency in MONTH_INTERVALS:
        return add_months(d, MONTH_INTERVALS[frequency])
    if frequency != "custom":
        raise ConfigurationError(f"Unknown frequency: {frequency!r}")

    interval = max(1, custom_interval or 1)
    unit = custom_unit or "month"
    if unit == "day":
        return d + timedelta(days=interval)
    if unit == "week":
        return d + timedelta(weeks=interval)
    if unit == "month":
        return add_months(d, interval)
    if unit == "year":
        return add_years(d, interval)
    raise ConfigurationError(
        f"Unknown custom unit {unit!r}; must be one of {', '.join(CUSTOM_UNITS)}."
    )


def month_bounds(d: date) -> tuple[date, date]:
    """Return (first_day, last_day) of d's month."""
    last_day = calendar.monthrange(d.year, d.month)[1]
    return d.replace(day=1), d.replace(day=last_day)


def friendly_month(month_str: str) -> str:
    """Convert YYYY-MM to e.g. 'February 2026'."""
    try:
        d = datetime.strptime(month_str, MONTH_FORMAT).date()
    except ValueError:
        return month_str
    return d.strftime("%B %Y")


def format_display_date(date_str: str) -> str:
    """Short display form, e.g. 'Mar 05'."""
    if not is_valid_date(date_str):
        return date_str
    return parse_date(date_str).strftime("%b %d")
