import re
from datetime import date, datetime, time, timezone

_DATE_ONLY = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def parse_instant(raw, end_of_day=False):
    """
    Parse an ISO-8601 instant into an aware UTC datetime; return None on failure.

    A trailing 'Z' is accepted. Date-only values resolve to the start of that
    UTC day, or its last microsecond when ``end_of_day`` is set.
    """
    if raw is None:
        return None
    if isinstance(raw, datetime):
        value = raw
    elif isinstance(raw, date):
        value = datetime.combine(raw, time.max if end_of_day else time.min)
    else:
        s = str(raw).strip()
        if not s:
            return None
        if _DATE_ONLY.match(s):
            try:
                day = datetime.strptime(s, "%Y-%m-%d").date()
            except ValueError:
                return None
            value = datetime.combine(day, time.max if end_of_day else time.min)
        else:
            if s[-1] in "zZ":
                s = s[:-1] + "+00:00"
            try:
                value = datetime.fromisoformat(s)
            except ValueError:
                return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    try:
        return value.astimezone(timezone.utc)
    except (OverflowError, ValueError):
        return None


def to_naive_utc(value):
    """Strip tzinfo from an aware UTC datetime for storage."""
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.replace(tzinfo=None)


def parse_record_id(raw):
    try:
        value = int(str(raw))
    except (TypeError, ValueError):
        return None
    return value if value > 0 else None


def parse_non_negative_int(raw):
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, float) and not raw.is_integer():
        return None
    try:
        value = int(raw)
    except (TypeError, ValueError):
        return None
    return value if value >= 0 else None


def check_text(data, field, max_len, required=False):
    """
    Validate an optional/required string field.

    Returns ``(value, error)``; ``value`` is stripped, or None when absent.
    """
    raw = data.get(field)
    if raw is None:
        if required:
            return None, f"{field} is required"
        return None, None
    if not isinstance(raw, str):
        return None, f"{field} must be a string"
    value = raw.strip()
    if required and not value:
        return None, f"{field} is required"
    if len(value) > max_len:
        return None, f"{field} must be at most {max_len} characters"
    return value, None
