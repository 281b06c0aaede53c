"""Local civil-date and timestamp helpers."""

from datetime import date, datetime, timezone


def parse_local_date(value) -> date | None:
    """Parse ``YYYY-MM-DD`` (or an ISO timestamp) as a local calendar date.

    Only the date part is used, so a join date never shifts across a
    timezone boundary.  Returns None for anything unparseable.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or len(value) < 10:
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        return None


def format_local_date(value: date | None) -> str | None:
    return value.isoformat() if value else None


def today_local() -> date:
    return date.today()


def days_since(start: date, today: date | None = None) -> int:
    """Whole calendar days from *start* to *today*."""
    return ((today or today_local()) - start).days


def utc_now_iso() -> str:
    """Current UTC time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()
