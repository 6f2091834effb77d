"""Date calculations shared by every task view.

All functions are pure. Anything that depends on "now" accepts an optional
``today`` so callers (and tests) can pin the reference day.
"""

from datetime import date, datetime, timedelta, timezone
from typing import NamedTuple, Optional, Union
from services.tasks.schemas import NO_DUE_DATE, as_naive_utc
import logging

logger = logging.getLogger(__name__)

DateInput = Union[date, datetime, str, None]

# Formats accepted besides ISO-8601 (the case-record source emits US dates)
_FALLBACK_FORMATS = ("%m/%d/%Y", "%m/%d/%Y %H:%M:%S", "%m/%d/%Y %I:%M:%S %p")


class DateCalculationResult(NamedTuple):
    """Due-date classification for a single task."""

    days_until_due: int
    is_overdue: bool
    is_today: bool
    is_due_soon: bool  # within 1-3 days
    formatted_date: str
    relative_description: str
    has_due_date: bool


def parse_date(value: DateInput) -> Optional[date]:
    """
    Parse a due-date-like value into a calendar date.

    Returns None for empty or unparseable input instead of raising.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    text = str(value).strip()
    if not text:
        return None

    iso_text = text[:-1] + "+00:00" if text.endswith("Z") else text
    try:
        return datetime.fromisoformat(iso_text).date()
    except ValueError:
        pass

    for fmt in _FALLBACK_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue

    logger.warning(f"Unparseable date value: {text!r}")
    return None


def parse_datetime(value: DateInput, default: Optional[datetime] = None) -> Optional[datetime]:
    """Parse a timestamp, falling back to ``default`` when missing or invalid."""
    if isinstance(value, datetime):
        return as_naive_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if value is None or not str(value).strip():
        return default

    text = str(value).strip()
    iso_text = text[:-1] + "+00:00" if text.endswith("Z") else text
    try:
        parsed = datetime.fromisoformat(iso_text)
    except ValueError:
        parsed_date = parse_date(text)
        if parsed_date is None:
            return default
        parsed = datetime(parsed_date.year, parsed_date.month, parsed_date.day)

    return as_naive_utc(parsed)


def utcnow() -> datetime:
    """Current time as naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _no_due_date(label: str) -> DateCalculationResult:
    return DateCalculationResult(
        days_until_due=NO_DUE_DATE,
        is_overdue=False,
        is_today=False,
        is_due_soon=False,
        formatted_date=label,
        relative_description=label if label == "Invalid date" else "No due date",
        has_due_date=False,
    )


def calculate_task_dates(due: DateInput, today: Optional[date] = None) -> DateCalculationResult:
    """
    Classify a due date relative to today.

    Both dates are compared as calendar days so time-of-day never shifts the
    count. Missing input yields "No date set"; unparseable input yields
    "Invalid date". Either way ``days_until_due`` is NO_DUE_DATE and every
    flag is False.
    """
    if due is None or (isinstance(due, str) and not due.strip()):
        return _no_due_date("No date set")

    due_date = parse_date(due)
    if due_date is None:
        return _no_due_date("Invalid date")

    reference = today or date.today()
    days_until_due = (due_date - reference).days

    is_overdue = days_until_due < 0
    is_today = days_until_due == 0
    is_due_soon = 0 < days_until_due <= 3

    return DateCalculationResult(
        days_until_due=days_until_due,
        is_overdue=is_overdue,
        is_today=is_today,
        is_due_soon=is_due_soon,
        formatted_date=format_date(due_date),
        relative_description=get_relative_description(days_until_due, is_overdue, is_today),
        has_due_date=True,
    )


def format_date(value: DateInput) -> str:
    """Format as e.g. 'Mar 4, 2026'."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return "No date set"
    parsed = parse_date(value)
    if parsed is None:
        return "Invalid date"
    return f"{parsed:%b} {parsed.day}, {parsed.year}"


def get_relative_description(days_until_due: int, is_overdue: bool, is_today: bool) -> str:
    """Human-readable distance to a due date ('2 days overdue', 'Due in 3 weeks')."""
    if is_overdue:
        days_overdue = abs(days_until_due)
        return "1 day overdue" if days_overdue == 1 else f"{days_overdue} days overdue"

    if is_today:
        return "Due today"

    if days_until_due == 1:
        return "Due tomorrow"

    if days_until_due <= 7:
        return f"Due in {days_until_due} days"

    if days_until_due <= 30:
        weeks = -(-days_until_due // 7)
        return "Due in 1 week" if weeks == 1 else f"Due in {weeks} weeks"

    months = -(-days_until_due // 30)
    return "Due in 1 month" if months == 1 else f"Due in {months} months"


def calculate_recommended_due_date(current: DateInput, recommended_days: int) -> date:
    """Add calendar days (not business days) to ``current`` (default: today)."""
    start = parse_date(current) or date.today()
    return start + timedelta(days=recommended_days)


def is_business_day(value: DateInput) -> bool:
    parsed = parse_date(value)
    return parsed is not None and parsed.weekday() < 5


def add_business_days(start: DateInput, business_days: int) -> date:
    """Count forward ``business_days`` weekdays from ``start``, skipping Saturday/Sunday."""
    current = parse_date(start) or date.today()
    added = 0
    while added < business_days:
        current += timedelta(days=1)
        if current.weekday() < 5:
            added += 1
    return current


def get_business_days_between(start: DateInput, end: DateInput) -> int:
    """Count weekdays from ``start`` to ``end``, inclusive of both ends."""
    start_date = parse_date(start)
    end_date = parse_date(end)
    if start_date is None or end_date is None:
        return 0

    business_days = 0
    current = start_date
    while current <= end_date:
        if current.weekday() < 5:
            business_days += 1
        current += timedelta(days=1)
    return business_days


def get_next_business_day(value: DateInput) -> date:
    current = parse_date(value) or date.today()
    current += timedelta(days=1)
    while current.weekday() >= 5:
        current += timedelta(days=1)
    return current


def format_date_for_context(value: DateInput, context: str, today: Optional[date] = None) -> str:
    """Format a date for 'short', 'long', 'relative' or 'time-ago' display."""
    parsed = parse_date(value)
    if parsed is None:
        return "No date"

    reference = today or date.today()

    if context == "short":
        return f"{parsed:%b} {parsed.day}"
    if context == "long":
        return f"{parsed:%A}, {parsed:%B} {parsed.day}, {parsed.year}"
    if context == "relative":
        diff_days = (parsed - reference).days
        return get_relative_description(diff_days, diff_days < 0, diff_days == 0)
    if context == "time-ago":
        days_ago = (reference - parsed).days
        if days_ago == 0:
            return "Today"
        if days_ago == 1:
            return "Yesterday"
        if days_ago < 7:
            return f"{days_ago} days ago"
        if days_ago < 30:
            return f"{days_ago // 7} weeks ago"
        return f"{days_ago // 30} months ago"

    return format_date(parsed)
