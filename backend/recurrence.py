"""On-demand expansion of recurring calendar events.

Occurrences are computed for a query window and never stored. Counting for
``max_occurrences`` always starts from the base event's own start date, so a
window late in a rule's life still sees the earlier occurrences as spent.
"""

import calendar
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple

logger = logging.getLogger(__name__)

DAILY = 'daily'
WEEKLY = 'weekly'
MONTHLY = 'monthly'
FREQUENCIES = (DAILY, WEEKLY, MONTHLY)

# ISO numbering: 1 = Monday .. 7 = Sunday
DAY_NAMES = {
    'monday': 1,
    'tuesday': 2,
    'wednesday': 3,
    'thursday': 4,
    'friday': 5,
    'saturday': 6,
    'sunday': 7,
}

DEFAULT_MAX_RESULTS = 1000
DEFAULT_MAX_ITERATIONS = 200000

# Upper bounds accepted on a stored rule
MAX_INTERVAL = 10000
MAX_OCCURRENCES_LIMIT = 1000000


class RecurrenceError(ValueError):
    """Raised for a recurrence rule that cannot be expanded."""


def to_utc(value):
    """Return ``value`` as an aware UTC datetime (naive values are taken as UTC)."""
    if value is None:
        return None
    if isinstance(value, str):
        raw = value.strip()
        if raw.endswith('Z') or raw.endswith('z'):
            raw = raw[:-1] + '+00:00'
        try:
            value = datetime.fromisoformat(raw)
        except ValueError as exc:
            raise RecurrenceError(f"Invalid datetime: {value!r}") from exc
    if not isinstance(value, datetime):
        raise RecurrenceError(f"Expected a datetime, got {type(value).__name__}")
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    try:
        return value.astimezone(timezone.utc)
    except (OverflowError, ValueError) as exc:
        raise RecurrenceError(f"Datetime out of range: {value!r}") from exc


def parse_weekday(raw) -> int:
    if isinstance(raw, bool):
        raise RecurrenceError(f"Invalid day of week: {raw!r}")
    if isinstance(raw, str) and raw.strip().lower() in DAY_NAMES:
        return DAY_NAMES[raw.strip().lower()]
    try:
        day = int(raw)
    except (TypeError, ValueError):
        raise RecurrenceError(f"Invalid day of week: {raw!r}") from None
    if not 1 <= day <= 7:
        raise RecurrenceError(f"Day of week must be 1 (Monday) to 7 (Sunday), got {day}")
    return day


@dataclass(frozen=True)
class RecurrenceRule:
    """Frequency-tagged recurrence rule attached to a base event."""

    frequency: str
    interval: int = 1
    days_of_week: Tuple[int, ...] = ()
    end_date: Optional[datetime] = None
    max_occurrences: Optional[int] = None

    @classmethod
    def from_dict(cls, data):
        if isinstance(data, RecurrenceRule):
            return data
        if not isinstance(data, dict):
            raise RecurrenceError('Recurrence must be an object')

        frequency = str(data.get('frequency') or '').strip().lower()
        if frequency not in FREQUENCIES:
            raise RecurrenceError(f"Invalid recurrence frequency: {data.get('frequency')!r}")

        raw_interval = data.get('interval')
        if raw_interval is None or raw_interval == '':
            interval = 1
        else:
            if isinstance(raw_interval, bool):
                raise RecurrenceError(f"Invalid interval: {raw_interval!r}")
            try:
                interval = int(raw_interval)
            except (TypeError, ValueError):
                raise RecurrenceError(f"Invalid interval: {raw_interval!r}") from None
        interval = max(interval, 1)
        if interval > MAX_INTERVAL:
            raise RecurrenceError(f"interval must be at most {MAX_INTERVAL}")

        days = ()
        raw_days = data.get('days_of_week')
        if raw_days is None:
            raw_days = data.get('daysOfWeek')
        if frequency == WEEKLY and raw_days:
            if isinstance(raw_days, str):
                raw_days = [d for d in raw_days.split(',') if d.strip()]
            if not isinstance(raw_days, (list, tuple)):
                raise RecurrenceError('days_of_week must be a list')
            days = tuple(sorted({parse_weekday(d) for d in raw_days}))

        end_raw = data.get('end_date')
        if end_raw is None:
            end_raw = data.get('endDate')
        end_date = to_utc(end_raw) if end_raw not in (None, '') else None

        max_raw = data.get('max_occurrences')
        if max_raw is None:
            max_raw = data.get('maxOccurrences')
        max_occurrences = None
        if max_raw not in (None, ''):
            if isinstance(max_raw, bool):
                raise RecurrenceError(f"Invalid max_occurrences: {max_raw!r}")
            try:
                max_occurrences = int(max_raw)
            except (TypeError, ValueError):
                raise RecurrenceError(f"Invalid max_occurrences: {max_raw!r}") from None
            if max_occurrences < 1:
                raise RecurrenceError('max_occurrences must be at least 1')
            if max_occurrences > MAX_OCCURRENCES_LIMIT:
                raise RecurrenceError(f"max_occurrences must be at most {MAX_OCCURRENCES_LIMIT}")

        return cls(
            frequency=frequency,
            interval=interval,
            days_of_week=days,
            end_date=end_date,
            max_occurrences=max_occurrences,
        )

    def to_dict(self):
        return {
            'frequency': self.frequency,
            'interval': self.interval,
            'days_of_week': list(self.days_of_week),
            'end_date': self.end_date.isoformat() if self.end_date else None,
            'max_occurrences': self.max_occurrences,
        }


def _add_months(anchor, months):
    """Shift ``anchor`` by ``months``, clamping the day to the target month's last day."""
    month_index = anchor.month - 1 + months
    year = anchor.year + month_index // 12
    month = month_index % 12 + 1
    _, last_dom = calendar.monthrange(year, month)
    return anchor.replace(year=year, month=month, day=min(anchor.day, last_dom))


def _week_start(value):
    day = value.date()
    return day - timedelta(days=day.weekday())


def _iter_cursor(rule, anchor):
    """
    Walk the cursor of ``rule`` from ``anchor`` onward.

    Yields ``(cursor, is_candidate)`` pairs in ascending cursor order. Weekly
    rules step one day at a time and only flag matching weekdays in weeks
    that are a multiple of ``interval`` away from the anchor's week.
    """
    if rule.frequency == DAILY:
        cursor = anchor
        while True:
            yield cursor, True
            try:
                cursor += timedelta(days=rule.interval)
            except OverflowError:
                return

    elif rule.frequency == WEEKLY:
        days = set(rule.days_of_week) or {anchor.isoweekday()}
        anchor_week = _week_start(anchor)
        cursor = anchor
        while True:
            weeks_since = (_week_start(cursor) - anchor_week).days // 7
            yield cursor, (weeks_since % rule.interval == 0 and cursor.isoweekday() in days)
            try:
                cursor += timedelta(days=1)
            except OverflowError:
                return

    elif rule.frequency == MONTHLY:
        step = 0
        while True:
            try:
                cursor = _add_months(anchor, step * rule.interval)
            except ValueError:
                return
            yield cursor, True
            step += 1

    else:
        raise RecurrenceError(f"Invalid recurrence frequency: {rule.frequency!r}")


def _occurrence_id(parent_id, start):
    return f"{parent_id}:{start.strftime('%Y%m%dT%H%M%SZ')}"


def build_occurrence(base_event, start):
    occurrence = dict(base_event)
    if isinstance(occurrence.get('recurrence'), dict):
        occurrence['recurrence'] = dict(occurrence['recurrence'])
    occurrence['id'] = _occurrence_id(base_event.get('id'), start)
    occurrence['start_date'] = start
    occurrence['is_recurring_instance'] = True
    occurrence['parent_event_id'] = base_event.get('id')
    return occurrence


def expand(base_event, range_start, range_end,
           max_results=DEFAULT_MAX_RESULTS, max_iterations=DEFAULT_MAX_ITERATIONS):
    """
    Return the occurrences of a recurring base event that start inside
    ``[range_start, range_end]`` (inclusive), ascending by start.

    ``base_event`` is a mapping shaped like ``CalendarEvent.to_dict()`` with a
    non-empty ``recurrence``. Raises ``RecurrenceError`` for a malformed rule.
    """
    raw_rule = base_event.get('recurrence')
    if not raw_rule:
        raise RecurrenceError('Base event has no recurrence rule')
    rule = RecurrenceRule.from_dict(raw_rule)

    anchor = to_utc(base_event.get('start_date'))
    if anchor is None:
        raise RecurrenceError('Base event has no start_date')
    range_start = to_utc(range_start)
    range_end = to_utc(range_end)
    if range_start > range_end:
        return []

    upper = range_end
    if rule.end_date is not None and rule.end_date < upper:
        upper = rule.end_date
    if anchor > upper:
        return []

    occurrences = []
    counted = 0
    steps = 0
    for candidate, is_candidate in _iter_cursor(rule, anchor):
        if candidate > upper:
            break
        steps += 1
        if steps > max_iterations:
            logger.warning(
                "Recurrence expansion for event %s stopped after %s steps",
                base_event.get('id'), max_iterations,
            )
            break
        if not is_candidate:
            continue
        counted += 1
        if candidate >= range_start:
            occurrences.append(build_occurrence(base_event, candidate))
            if len(occurrences) >= max_results:
                logger.warning(
                    "Recurrence expansion for event %s truncated at %s occurrences",
                    base_event.get('id'), max_results,
                )
                break
        if rule.max_occurrences is not None and counted >= rule.max_occurrences:
            break
    return occurrences


def occurs_in_range(base_event, range_start, range_end):
    """True when a single (non-recurring) event starts inside the inclusive range."""
    start = to_utc(base_event.get('start_date'))
    if start is None:
        return False
    return to_utc(range_start) <= start <= to_utc(range_end)
