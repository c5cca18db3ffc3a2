import os

import pytz
from dotenv import load_dotenv
from flask import Flask, request, jsonify, session

load_dotenv()

from models import (
    db, User, CalendarEvent, Countdown, Stopwatch,
    TIMER_RUNNING, TIMER_PAUSED, TIMER_STOPPED, TIMER_FINISHED,
)
from backend.recurrence import DEFAULT_MAX_ITERATIONS, DEFAULT_MAX_RESULTS
from backend.timer_jobs import schedule_running_countdowns
from services import calendar_routes, timer_routes, user_routes
from apscheduler.schedulers.background import BackgroundScheduler


def _env_int(name, default):
    try:
        return int(os.environ.get(name, default))
    except (TypeError, ValueError):
        return default


app = Flask(__name__)
app.config['SQLALCHEMY_DATABASE_URI'] = os.environ.get('DATABASE_URL', 'sqlite:///productivity.db')
app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
app.config['SECRET_KEY'] = os.environ.get('SECRET_KEY', 'dev-secret-key-change-in-production')
app.config['PERMANENT_SESSION_LIFETIME'] = 30 * 24 * 60 * 60  # 30 days in seconds
app.config['API_SHARED_KEY'] = os.environ.get('API_SHARED_KEY')  # Optional shared key for API callers
app.config['DEFAULT_TIMEZONE'] = os.environ.get('DEFAULT_TIMEZONE', 'UTC')
app.config['RECURRENCE_MAX_OCCURRENCES'] = _env_int('RECURRENCE_MAX_OCCURRENCES', DEFAULT_MAX_RESULTS)
app.config['RECURRENCE_MAX_ITERATIONS'] = _env_int('RECURRENCE_MAX_ITERATIONS', DEFAULT_MAX_ITERATIONS)

db.init_app(app)
scheduler = None


def get_current_user():
    """Resolve the current user from a shared API key + user id header, else fall back to session."""
    # Header-based auth for service callers
    api_key = request.headers.get('X-API-Key')
    api_user_id = request.headers.get('X-User-Id')
    shared_key = app.config.get('API_SHARED_KEY')
    if shared_key and api_key and api_user_id:
        try:
            api_uid_int = int(api_user_id)
        except (TypeError, ValueError):
            api_uid_int = None
        if api_uid_int and api_key == shared_key:
            user = db.session.get(User, api_uid_int)
            if user:
                return user

    # Session-based auth for browser users
    user_id = session.get('user_id')
    if user_id:
        return db.session.get(User, user_id)
    return None


with app.app_context():
    db.create_all()


# User / session API
@app.route('/api/register', methods=['POST'])
def register():
    return user_routes.register_user()


@app.route('/api/login', methods=['POST'])
def login():
    return user_routes.login_user()


@app.route('/api/logout', methods=['POST'])
def logout():
    return user_routes.logout_user()


@app.route('/api/current-user')
def current_user_info():
    return user_routes.current_user_info()


# Calendar API
@app.route('/api/events-calendar', methods=['GET', 'POST'])
def events_calendar():
    return calendar_routes.events_collection()


@app.route('/api/events-calendar/range', methods=['GET'])
def events_calendar_range():
    return calendar_routes.events_in_range()


@app.route('/api/events-calendar/admin/test', methods=['GET'])
def events_calendar_examples():
    return calendar_routes.recurring_examples()


@app.route('/api/events-calendar/<event_id>', methods=['GET', 'PATCH', 'DELETE'])
def events_calendar_detail(event_id):
    return calendar_routes.event_detail(event_id)


# Timer API
@app.route('/api/countdown', methods=['GET', 'POST'])
def countdowns():
    return timer_routes.countdown_collection()


@app.route('/api/countdown/<countdown_id>', methods=['GET', 'DELETE'])
def countdown_detail(countdown_id):
    return timer_routes.countdown_detail(countdown_id)


@app.route('/api/countdown/<countdown_id>/<action>', methods=['POST'])
def countdown_action(countdown_id, action):
    return timer_routes.countdown_action(countdown_id, action)


@app.route('/api/stopwatch', methods=['GET', 'POST'])
def stopwatches():
    return timer_routes.stopwatch_collection()


@app.route('/api/stopwatch/<stopwatch_id>', methods=['GET', 'DELETE'])
def stopwatch_detail(stopwatch_id):
    return timer_routes.stopwatch_detail(stopwatch_id)


@app.route('/api/stopwatch/<stopwatch_id>/<action>', methods=['POST'])
def stopwatch_action(stopwatch_id, action):
    return timer_routes.stopwatch_action(stopwatch_id, action)


def _start_scheduler():
    """Start the background scheduler used for countdown completion."""
    global scheduler
    if os.environ.get('ENABLE_TIMER_JOBS', '1') != '1':
        return
    if scheduler and scheduler.running:
        return
    # Avoid double-start in Flask debug reloader
    if app.debug and os.environ.get('WERKZEUG_RUN_MAIN') != 'true':
        return
    scheduler = BackgroundScheduler(timezone=pytz.timezone(app.config['DEFAULT_TIMEZONE']))
    scheduler.start()
    app.logger.info("Background scheduler started")

    # Re-arm countdowns that were running when the process stopped
    schedule_running_countdowns()


_jobs_bootstrapped = False


@app.before_request
def _bootstrap_background_jobs():
    global _jobs_bootstrapped
    if _jobs_bootstrapped:
        return
    _start_scheduler()
    _jobs_bootstrapped = True


# Start scheduler on process startup (not request-dependent).
# Can be disabled for tooling/tests that only need app context.
if os.environ.get('BOOTSTRAP_JOBS_ON_IMPORT', '1') == '1':
    try:
        _start_scheduler()
        _jobs_bootstrapped = bool(scheduler and scheduler.running)
    except Exception as e:
        app.logger.error(f"Error starting scheduler on startup: {e}")

if __name__ == '__main__':
    app.run(host='0.0.0.0', debug=True)
