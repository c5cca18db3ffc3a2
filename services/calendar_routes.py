"""Calendar event route handlers: CRUD, range queries and recurrence examples."""

from datetime import datetime

from backend.recurrence import RecurrenceError, RecurrenceRule, expand, occurs_in_range
from services.validation_service import (
    check_text,
    parse_instant,
    parse_non_negative_int,
    parse_record_id,
    to_naive_utc,
)

TITLE_MAX = 25
DESCRIPTION_MAX = 100
LOCATION_MAX = 50
CATEGORY_MAX = 25
COLOR_MAX = 20
DEFAULT_CATEGORY = 'General'
DEFAULT_DURATION = 60

RECURRENCE_EXAMPLES = [
    {
        'description': 'Weekly meeting on Mondays and Wednesdays, ten times',
        'payload': {
            'title': 'Team Standup',
            'description': 'Weekly standup meeting',
            'location': 'Room 1',
            'start_date': '2024-12-02T09:00:00Z',
            'duration': 30,
            'category': 'Meeting',
            'recurrence': {
                'frequency': 'weekly',
                'interval': 1,
                'days_of_week': [1, 3],
                'max_occurrences': 10,
            },
        },
    },
    {
        'description': 'Monthly review on the same day of month until June 2025',
        'payload': {
            'title': 'Monthly Review',
            'description': 'Review goals for the month',
            'location': 'Office',
            'start_date': '2024-12-02T09:00:00Z',
            'duration': 60,
            'category': 'Meeting',
            'recurrence': {
                'frequency': 'monthly',
                'interval': 1,
                'end_date': '2025-06-01T23:59:59Z',
            },
        },
    },
]


def _serialize(record):
    data = dict(record)
    for key in ('start_date', 'created_at', 'updated_at'):
        value = data.get(key)
        if isinstance(value, datetime):
            data[key] = value.isoformat()
    return data


def _apply_event_fields(event, data, partial=False):
    """Validate ``data`` and copy it onto ``event``. Returns an error message or None."""
    if not isinstance(data, dict):
        return 'Request body must be a JSON object'

    if not partial or 'title' in data:
        title, error = check_text(data, 'title', TITLE_MAX, required=True)
        if error:
            return error
        event.title = title

    for field, max_len in (('description', DESCRIPTION_MAX), ('location', LOCATION_MAX), ('color', COLOR_MAX)):
        if field in data:
            value, error = check_text(data, field, max_len)
            if error:
                return error
            setattr(event, field, value or None)

    if 'category' in data:
        category, error = check_text(data, 'category', CATEGORY_MAX)
        if error:
            return error
        event.category = category or DEFAULT_CATEGORY
    elif not partial:
        event.category = DEFAULT_CATEGORY

    if not partial or 'start_date' in data:
        start_raw = data.get('start_date')
        if start_raw is None:
            return 'start_date is required'
        start = parse_instant(start_raw)
        if not start:
            return 'Invalid start_date'
        event.start_date = to_naive_utc(start)

    if 'duration' in data:
        duration = parse_non_negative_int(data.get('duration'))
        if duration is None:
            return 'duration must be a non-negative integer (minutes)'
        event.duration = duration
    elif not partial:
        event.duration = DEFAULT_DURATION

    if 'recurrence' in data:
        raw_rule = data.get('recurrence')
        if raw_rule is None:
            event.set_recurrence(None)
        else:
            try:
                event.set_recurrence(RecurrenceRule.from_dict(raw_rule))
            except RecurrenceError as exc:
                return str(exc)
    return None


def _load_owned_event(user, raw_id):
    """Return ``(event, None)`` or ``(None, error_response)``."""
    import app as a
    CalendarEvent = a.CalendarEvent
    db = a.db
    jsonify = a.jsonify

    event_id = parse_record_id(raw_id)
    if event_id is None:
        return None, (jsonify({'error': 'Invalid event id'}), 400)
    event = db.session.get(CalendarEvent, event_id)
    if not event:
        return None, (jsonify({'error': 'Event not found'}), 404)
    if event.user_id != user.id:
        return None, (jsonify({'error': 'You do not have access to this event'}), 403)
    return event, None


def events_collection():
    import app as a
    CalendarEvent = a.CalendarEvent
    app = a.app
    db = a.db
    get_current_user = a.get_current_user
    jsonify = a.jsonify
    request = a.request
    user = get_current_user()
    if not user:
        return jsonify({'error': 'No user selected'}), 401

    if request.method == 'POST':
        data = request.get_json(silent=True)
        event = CalendarEvent(user_id=user.id)
        error = _apply_event_fields(event, data)
        if error:
            return jsonify({'error': error}), 400
        db.session.add(event)
        db.session.commit()
        app.logger.info(f"Created calendar event {event.id} for user {user.id}")
        return jsonify(event.to_dict()), 201

    events = CalendarEvent.query.filter(
        CalendarEvent.user_id == user.id,
        CalendarEvent.is_recurring_instance.is_(False)
    ).order_by(CalendarEvent.start_date.asc(), CalendarEvent.id.asc()).all()
    return jsonify([ev.to_dict() for ev in events])


def collect_range_events(user_id, range_start, range_end):
    """
    Base events of a user within ``[range_start, range_end]``.

    Single events are included when their start is in range; recurring events
    are replaced by their expanded occurrences. Returns records sorted by start.
    """
    import app as a
    CalendarEvent = a.CalendarEvent
    app = a.app

    max_results = app.config['RECURRENCE_MAX_OCCURRENCES']
    max_iterations = app.config['RECURRENCE_MAX_ITERATIONS']

    base_events = CalendarEvent.query.filter(
        CalendarEvent.user_id == user_id,
        CalendarEvent.is_recurring_instance.is_(False)
    ).order_by(CalendarEvent.start_date.asc(), CalendarEvent.id.asc()).all()

    results = []
    for ev in base_events:
        try:
            record = ev.to_record()
            if record['recurrence']:
                results.extend(expand(record, range_start, range_end,
                                      max_results=max_results, max_iterations=max_iterations))
            elif occurs_in_range(record, range_start, range_end):
                results.append(record)
        except RecurrenceError as exc:
            app.logger.warning(f"Skipping event {ev.id} with invalid recurrence: {exc}")
            continue

    results.sort(key=lambda r: (r['start_date'], str(r['id'])))
    return results


def events_in_range():
    import app as a
    get_current_user = a.get_current_user
    jsonify = a.jsonify
    request = a.request
    user = get_current_user()
    if not user:
        return jsonify({'error': 'No user selected'}), 401

    start_raw = request.args.get('start_date') or request.args.get('startDate')
    end_raw = request.args.get('end_date') or request.args.get('endDate')
    if not start_raw or not end_raw:
        return jsonify({'error': 'start_date and end_date are required'}), 400
    range_start = parse_instant(start_raw)
    if not range_start:
        return jsonify({'error': 'Invalid start_date'}), 400
    range_end = parse_instant(end_raw, end_of_day=True)
    if not range_end:
        return jsonify({'error': 'Invalid end_date'}), 400
    if range_end < range_start:
        return jsonify({'error': 'end_date must be on/after start_date'}), 400

    records = collect_range_events(user.id, range_start, range_end)
    return jsonify([_serialize(r) for r in records])


def event_detail(event_id):
    import app as a
    app = a.app
    db = a.db
    get_current_user = a.get_current_user
    jsonify = a.jsonify
    request = a.request
    user = get_current_user()
    if not user:
        return jsonify({'error': 'No user selected'}), 401

    event, error_response = _load_owned_event(user, event_id)
    if error_response:
        return error_response

    if request.method == 'DELETE':
        payload = event.to_dict()
        db.session.delete(event)
        db.session.commit()
        app.logger.info(f"Deleted calendar event {payload['id']} for user {user.id}")
        return jsonify(payload)

    if request.method == 'PATCH':
        data = request.get_json(silent=True)
        error = _apply_event_fields(event, data, partial=True)
        if error:
            db.session.rollback()
            return jsonify({'error': error}), 400
        db.session.commit()
        return jsonify(event.to_dict())

    return jsonify(event.to_dict())


def recurring_examples():
    import app as a
    get_current_user = a.get_current_user
    jsonify = a.jsonify
    user = get_current_user()
    if not user:
        return jsonify({'error': 'No user selected'}), 401
    return jsonify({
        'message': 'Recurring events module working correctly',
        'examples': RECURRENCE_EXAMPLES,
    })
