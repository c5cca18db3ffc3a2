"""Countdown and stopwatch route handlers."""

from datetime import datetime, timezone

from backend.timer_jobs import cancel_countdown_completion, schedule_countdown_completion, settle_countdown
from services.validation_service import check_text, parse_non_negative_int, parse_record_id

NAME_MAX = 100
DESCRIPTION_MAX = 255
TIMER_ACTIONS = ('start', 'pause', 'resume', 'stop')


def _utcnow():
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _elapsed_ms(since, now):
    return max(int((now - since).total_seconds() * 1000), 0)


def _load_timer(model, user, raw_id):
    timer_id = parse_record_id(raw_id)
    if timer_id is None:
        return None
    return model.query.filter_by(id=timer_id, user_id=user.id).first()


# --- Countdown ---

def countdown_collection():
    import app as a
    Countdown = a.Countdown
    TIMER_STOPPED = a.TIMER_STOPPED
    app = a.app
    db = a.db
    get_current_user = a.get_current_user
    jsonify = a.jsonify
    request = a.request
    user = get_current_user()
    if not user:
        return jsonify({'error': 'No user selected'}), 401

    if request.method == 'POST':
        data = request.get_json(silent=True) or {}
        name, error = check_text(data, 'name', NAME_MAX, required=True)
        if error:
            return jsonify({'error': error}), 400
        description, error = check_text(data, 'description', DESCRIPTION_MAX)
        if error:
            return jsonify({'error': error}), 400
        duration = parse_non_negative_int(data.get('duration'))
        if duration is None:
            return jsonify({'error': 'duration must be a non-negative integer (milliseconds)'}), 400

        countdown = Countdown(
            user_id=user.id,
            name=name,
            description=description or None,
            status=TIMER_STOPPED,
            duration=duration,
            remaining_time=duration
        )
        db.session.add(countdown)
        db.session.commit()
        app.logger.info(f"Created countdown {countdown.id} for user {user.id}")
        return jsonify(countdown.to_dict()), 201

    countdowns = Countdown.query.filter_by(user_id=user.id).order_by(Countdown.created_at.asc()).all()
    changed = [c for c in countdowns if settle_countdown(c)]
    if changed:
        db.session.commit()
    return jsonify([c.to_dict() for c in countdowns])


def countdown_detail(countdown_id):
    import app as a
    Countdown = a.Countdown
    app = a.app
    db = a.db
    get_current_user = a.get_current_user
    jsonify = a.jsonify
    request = a.request
    user = get_current_user()
    if not user:
        return jsonify({'error': 'No user selected'}), 401

    countdown = _load_timer(Countdown, user, countdown_id)
    if not countdown:
        return jsonify({'error': 'Countdown not found'}), 404

    if request.method == 'DELETE':
        cancel_countdown_completion(countdown)
        db.session.delete(countdown)
        db.session.commit()
        app.logger.info(f"Deleted countdown {countdown_id} for user {user.id}")
        return '', 204

    if settle_countdown(countdown):
        db.session.commit()
    return jsonify(countdown.to_dict())


def countdown_action(countdown_id, action):
    import app as a
    Countdown = a.Countdown
    TIMER_FINISHED = a.TIMER_FINISHED
    TIMER_PAUSED = a.TIMER_PAUSED
    TIMER_RUNNING = a.TIMER_RUNNING
    TIMER_STOPPED = a.TIMER_STOPPED
    db = a.db
    get_current_user = a.get_current_user
    jsonify = a.jsonify
    user = get_current_user()
    if not user:
        return jsonify({'error': 'No user selected'}), 401
    if action not in TIMER_ACTIONS:
        return jsonify({'error': 'Unknown timer action'}), 404

    countdown = _load_timer(Countdown, user, countdown_id)
    if not countdown:
        return jsonify({'error': 'Countdown not found'}), 404

    now = _utcnow()
    settle_countdown(countdown, now)

    if action == 'start':
        if countdown.status == TIMER_RUNNING:
            return jsonify(countdown.to_dict())
        if countdown.status in (TIMER_STOPPED, TIMER_FINISHED):
            countdown.remaining_time = countdown.duration
        countdown.status = TIMER_RUNNING
        countdown.started_at = now
        countdown.paused_at = None
        db.session.commit()
        schedule_countdown_completion(countdown)

    elif action == 'pause':
        if countdown.status != TIMER_RUNNING:
            return jsonify(countdown.to_dict())
        countdown.remaining_time = countdown.live_remaining_time(now)
        countdown.status = TIMER_PAUSED
        countdown.started_at = None
        countdown.paused_at = now
        countdown.interruptions = (countdown.interruptions or 0) + 1
        db.session.commit()
        cancel_countdown_completion(countdown)

    elif action == 'resume':
        if countdown.status != TIMER_PAUSED:
            return jsonify(countdown.to_dict())
        countdown.status = TIMER_RUNNING
        countdown.started_at = now
        countdown.paused_at = None
        db.session.commit()
        schedule_countdown_completion(countdown)

    elif action == 'stop':
        if countdown.status != TIMER_STOPPED:
            countdown.status = TIMER_STOPPED
            countdown.remaining_time = countdown.duration
            countdown.started_at = None
            countdown.paused_at = None
        db.session.commit()
        cancel_countdown_completion(countdown)

    return jsonify(countdown.to_dict())


# --- Stopwatch ---

def stopwatch_collection():
    import app as a
    Stopwatch = a.Stopwatch
    TIMER_STOPPED = a.TIMER_STOPPED
    app = a.app
    db = a.db
    get_current_user = a.get_current_user
    jsonify = a.jsonify
    request = a.request
    user = get_current_user()
    if not user:
        return jsonify({'error': 'No user selected'}), 401

    if request.method == 'POST':
        data = request.get_json(silent=True) or {}
        name, error = check_text(data, 'name', NAME_MAX, required=True)
        if error:
            return jsonify({'error': error}), 400
        description, error = check_text(data, 'description', DESCRIPTION_MAX)
        if error:
            return jsonify({'error': error}), 400

        stopwatch = Stopwatch(
            user_id=user.id,
            name=name,
            description=description or None,
            status=TIMER_STOPPED,
            elapsed_time=0,
            total_elapsed_time=0
        )
        db.session.add(stopwatch)
        db.session.commit()
        app.logger.info(f"Created stopwatch {stopwatch.id} for user {user.id}")
        return jsonify(stopwatch.to_dict()), 201

    stopwatches = Stopwatch.query.filter_by(user_id=user.id).order_by(Stopwatch.created_at.asc()).all()
    return jsonify([s.to_dict() for s in stopwatches])


def stopwatch_detail(stopwatch_id):
    import app as a
    Stopwatch = a.Stopwatch
    app = a.app
    db = a.db
    get_current_user = a.get_current_user
    jsonify = a.jsonify
    request = a.request
    user = get_current_user()
    if not user:
        return jsonify({'error': 'No user selected'}), 401

    stopwatch = _load_timer(Stopwatch, user, stopwatch_id)
    if not stopwatch:
        return jsonify({'error': 'Stopwatch not found'}), 404

    if request.method == 'DELETE':
        db.session.delete(stopwatch)
        db.session.commit()
        app.logger.info(f"Deleted stopwatch {stopwatch_id} for user {user.id}")
        return '', 204

    return jsonify(stopwatch.to_dict())


def stopwatch_action(stopwatch_id, action):
    import app as a
    Stopwatch = a.Stopwatch
    TIMER_PAUSED = a.TIMER_PAUSED
    TIMER_RUNNING = a.TIMER_RUNNING
    TIMER_STOPPED = a.TIMER_STOPPED
    db = a.db
    get_current_user = a.get_current_user
    jsonify = a.jsonify
    user = get_current_user()
    if not user:
        return jsonify({'error': 'No user selected'}), 401
    if action not in TIMER_ACTIONS:
        return jsonify({'error': 'Unknown timer action'}), 404

    stopwatch = _load_timer(Stopwatch, user, stopwatch_id)
    if not stopwatch:
        return jsonify({'error': 'Stopwatch not found'}), 404

    now = _utcnow()
    if action == 'start':
        if stopwatch.status == TIMER_RUNNING:
            return jsonify(stopwatch.to_dict())
        if stopwatch.status == TIMER_PAUSED:
            # Starting a paused stopwatch behaves like resume
            stopwatch.paused_at = None
        stopwatch.status = TIMER_RUNNING
        stopwatch.started_at = now

    elif action == 'pause':
        if stopwatch.status != TIMER_RUNNING:
            return jsonify(stopwatch.to_dict())
        stopwatch.elapsed_time = (stopwatch.elapsed_time or 0) + _elapsed_ms(stopwatch.started_at, now)
        stopwatch.total_elapsed_time = stopwatch.elapsed_time
        stopwatch.status = TIMER_PAUSED
        stopwatch.paused_at = now
        stopwatch.started_at = None

    elif action == 'resume':
        if stopwatch.status != TIMER_PAUSED:
            return jsonify(stopwatch.to_dict())
        stopwatch.status = TIMER_RUNNING
        stopwatch.started_at = now
        stopwatch.paused_at = None

    elif action == 'stop':
        stopwatch.status = TIMER_STOPPED
        stopwatch.started_at = None
        stopwatch.paused_at = None
        stopwatch.elapsed_time = 0
        stopwatch.total_elapsed_time = 0

    db.session.commit()
    return jsonify(stopwatch.to_dict())
