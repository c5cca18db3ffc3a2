from flask_sqlalchemy import SQLAlchemy
from flask_login import UserMixin
from werkzeug.security import generate_password_hash, check_password_hash
from datetime import datetime, timezone

from backend.recurrence import RecurrenceRule

db = SQLAlchemy()

TIMER_RUNNING = 'running'
TIMER_PAUSED = 'paused'
TIMER_STOPPED = 'stopped'
TIMER_FINISHED = 'finished'


def _utcnow():
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _as_utc(value):
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def _iso_utc(value):
    """Serialize a naive UTC datetime column as an ISO instant."""
    value = _as_utc(value)
    return value.isoformat() if value else None


class User(UserMixin, db.Model):
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(80), unique=True, nullable=False)
    email = db.Column(db.String(120), unique=True, nullable=True)
    password_hash = db.Column(db.String(256), nullable=False)
    created_at = db.Column(db.DateTime, default=_utcnow)

    # Relationships
    events = db.relationship('CalendarEvent', backref='owner', lazy=True, cascade="all, delete-orphan")
    countdowns = db.relationship('Countdown', backref='owner', lazy=True, cascade="all, delete-orphan")
    stopwatches = db.relationship('Stopwatch', backref='owner', lazy=True, cascade="all, delete-orphan")

    def set_password(self, password):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        return check_password_hash(self.password_hash, password)

    def to_dict(self):
        return {
            'id': self.id,
            'username': self.username,
            'email': self.email,
            'created_at': _iso_utc(self.created_at),
        }


class CalendarEvent(db.Model):
    """
    Base calendar event, optionally carrying a recurrence rule.

    Recurring occurrences are expanded on read and never stored; rows here are
    always base events. Datetimes are stored as naive UTC.
    """
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    title = db.Column(db.String(25), nullable=False)
    description = db.Column(db.String(100), nullable=True)
    location = db.Column(db.String(50), nullable=True)
    category = db.Column(db.String(25), nullable=False, default='General')
    color = db.Column(db.String(20), nullable=True)
    start_date = db.Column(db.DateTime, nullable=False)
    duration = db.Column(db.Integer, nullable=False, default=60)  # minutes

    # Recurrence rule, NULL frequency means a single event
    recurrence_frequency = db.Column(db.String(10), nullable=True)  # daily | weekly | monthly
    recurrence_interval = db.Column(db.Integer, nullable=True)
    recurrence_days_of_week = db.Column(db.String(20), nullable=True)  # "1,3" (ISO, Monday = 1)
    recurrence_end_date = db.Column(db.DateTime, nullable=True)
    recurrence_max_occurrences = db.Column(db.Integer, nullable=True)

    is_recurring_instance = db.Column(db.Boolean, default=False, nullable=False)
    parent_event_id = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime, default=_utcnow)
    updated_at = db.Column(db.DateTime, default=_utcnow, onupdate=_utcnow)

    def get_recurrence(self):
        if not self.recurrence_frequency:
            return None
        return RecurrenceRule.from_dict({
            'frequency': self.recurrence_frequency,
            'interval': self.recurrence_interval,
            'days_of_week': self.recurrence_days_of_week,
            'end_date': self.recurrence_end_date,
            'max_occurrences': self.recurrence_max_occurrences,
        })

    def set_recurrence(self, rule):
        """Store a RecurrenceRule (or clear it with None)."""
        if rule is None:
            self.recurrence_frequency = None
            self.recurrence_interval = None
            self.recurrence_days_of_week = None
            self.recurrence_end_date = None
            self.recurrence_max_occurrences = None
            return
        self.recurrence_frequency = rule.frequency
        self.recurrence_interval = rule.interval
        self.recurrence_days_of_week = ','.join(str(d) for d in rule.days_of_week) or None
        self.recurrence_end_date = rule.end_date.replace(tzinfo=None) if rule.end_date else None
        self.recurrence_max_occurrences = rule.max_occurrences

    def to_record(self):
        """Plain mapping consumed by the recurrence expander (datetimes kept as objects)."""
        rule = self.get_recurrence()
        return {
            'id': self.id,
            'user_id': self.user_id,
            'title': self.title,
            'description': self.description,
            'location': self.location,
            'category': self.category,
            'color': self.color,
            'start_date': _as_utc(self.start_date),
            'duration': self.duration,
            'recurrence': rule.to_dict() if rule else None,
            'is_recurring_instance': bool(self.is_recurring_instance),
            'parent_event_id': self.parent_event_id,
            'created_at': _as_utc(self.created_at),
            'updated_at': _as_utc(self.updated_at),
        }

    def to_dict(self):
        data = self.to_record()
        for key in ('start_date', 'created_at', 'updated_at'):
            data[key] = _iso_utc(data[key])
        return data


class Countdown(db.Model):
    """Countdown timer; durations are milliseconds."""
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.String(255), nullable=True)
    status = db.Column(db.String(20), nullable=False, default=TIMER_STOPPED)
    duration = db.Column(db.Integer, nullable=False)
    remaining_time = db.Column(db.Integer, nullable=False, default=0)
    started_at = db.Column(db.DateTime, nullable=True)
    paused_at = db.Column(db.DateTime, nullable=True)
    interruptions = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime, default=_utcnow)
    updated_at = db.Column(db.DateTime, default=_utcnow, onupdate=_utcnow)

    def live_remaining_time(self, now=None):
        if self.status != TIMER_RUNNING or not self.started_at:
            return self.remaining_time
        now = now or _utcnow()
        elapsed_ms = int((now - self.started_at).total_seconds() * 1000)
        return max(self.remaining_time - elapsed_ms, 0)

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'name': self.name,
            'description': self.description,
            'status': self.status,
            'duration': self.duration,
            'remaining_time': self.remaining_time,
            'current_remaining_time': self.live_remaining_time(),
            'started_at': _iso_utc(self.started_at),
            'paused_at': _iso_utc(self.paused_at),
            'interruptions': self.interruptions,
            'created_at': _iso_utc(self.created_at),
            'updated_at': _iso_utc(self.updated_at),
        }


class Stopwatch(db.Model):
    """Stopwatch timer; elapsed times are milliseconds."""
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.String(255), nullable=True)
    status = db.Column(db.String(20), nullable=False, default=TIMER_STOPPED)
    started_at = db.Column(db.DateTime, nullable=True)
    paused_at = db.Column(db.DateTime, nullable=True)
    elapsed_time = db.Column(db.Integer, nullable=False, default=0)
    total_elapsed_time = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime, default=_utcnow)
    updated_at = db.Column(db.DateTime, default=_utcnow, onupdate=_utcnow)

    def live_elapsed_time(self, now=None):
        if self.status != TIMER_RUNNING or not self.started_at:
            return self.elapsed_time
        now = now or _utcnow()
        return self.elapsed_time + max(int((now - self.started_at).total_seconds() * 1000), 0)

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'name': self.name,
            'description': self.description,
            'status': self.status,
            'elapsed_time': self.elapsed_time,
            'total_elapsed_time': self.total_elapsed_time,
            'current_elapsed_time': self.live_elapsed_time(),
            'started_at': _iso_utc(self.started_at),
            'paused_at': _iso_utc(self.paused_at),
            'created_at': _iso_utc(self.created_at),
            'updated_at': _iso_utc(self.updated_at),
        }
