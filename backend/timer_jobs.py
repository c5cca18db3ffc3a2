"""Background completion jobs for countdown timers."""

from datetime import datetime, timedelta, timezone


def _job_id(countdown_id):
    return f"countdown_{countdown_id}"


def _utcnow():
    return datetime.now(timezone.utc).replace(tzinfo=None)


def schedule_countdown_completion(countdown):
    """Schedule a one-time job that finishes a running countdown."""
    import app as a
    app = a.app
    scheduler = a.scheduler
    if not scheduler or not scheduler.running or not countdown.started_at:
        return

    run_at = countdown.started_at + timedelta(milliseconds=countdown.remaining_time)
    try:
        scheduler.add_job(
            complete_countdown,
            'date',
            run_date=run_at.replace(tzinfo=timezone.utc),
            args=[countdown.id],
            id=_job_id(countdown.id),
            replace_existing=True
        )
    except Exception as e:
        app.logger.error(f"Error scheduling completion for countdown {countdown.id}: {e}")


def cancel_countdown_completion(countdown):
    import app as a
    app = a.app
    scheduler = a.scheduler
    if not scheduler or not scheduler.running:
        return
    try:
        scheduler.remove_job(_job_id(countdown.id))
        app.logger.info(f"Cancelled completion job for countdown {countdown.id}")
    except Exception as e:
        app.logger.debug(f"No completion job to cancel for countdown {countdown.id}: {e}")


def settle_countdown(countdown, now=None):
    """Mark a running countdown finished once its time has run out. Returns True on change."""
    import app as a
    TIMER_FINISHED = a.TIMER_FINISHED
    TIMER_RUNNING = a.TIMER_RUNNING
    if countdown.status != TIMER_RUNNING:
        return False
    now = now or _utcnow()
    if countdown.live_remaining_time(now) > 0:
        return False
    countdown.status = TIMER_FINISHED
    countdown.remaining_time = 0
    countdown.started_at = None
    countdown.paused_at = None
    return True


def complete_countdown(countdown_id):
    """Scheduler entry point: finish the countdown if it is still running."""
    import app as a
    Countdown = a.Countdown
    app = a.app
    db = a.db
    with app.app_context():
        try:
            countdown = db.session.get(Countdown, countdown_id)
            if not countdown:
                return
            if settle_countdown(countdown):
                db.session.commit()
                app.logger.info(f"Countdown {countdown_id} finished")
        except Exception as e:
            db.session.rollback()
            app.logger.error(f"Error completing countdown {countdown_id}: {e}")


def schedule_running_countdowns():
    """Re-arm completion jobs for countdowns left running across a restart."""
    import app as a
    Countdown = a.Countdown
    TIMER_RUNNING = a.TIMER_RUNNING
    app = a.app
    db = a.db
    with app.app_context():
        try:
            now = _utcnow()
            running = Countdown.query.filter(Countdown.status == TIMER_RUNNING).all()
            settled = 0
            for countdown in running:
                if settle_countdown(countdown, now):
                    settled += 1
                else:
                    schedule_countdown_completion(countdown)
            if settled:
                db.session.commit()
                app.logger.info(f"Finished {settled} countdown(s) that expired while offline")
        except Exception as e:
            db.session.rollback()
            app.logger.error(f"Error in schedule_running_countdowns: {e}")
