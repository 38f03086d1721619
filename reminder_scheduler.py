"""Daily email reminders.

Two cron jobs run on a background thread: the task check (tasks due
tomorrow) and the pinned notes digest. Nothing records what was sent; a
job firing once per day is what keeps recipients from getting duplicates,
so calling a scan by hand will send again.
"""
import logging
from contextlib import contextmanager
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from flask import current_app, has_app_context

from models import db, Note, Task, User
from schemas import to_local_naive

logger = logging.getLogger(__name__)

TASK_CHECK_JOB = 'task-check'
NOTES_DIGEST_JOB = 'notes-digest'
DEFAULT_DIGEST_LIMIT = 5


def reminder_window(now):
    """Half-open [tomorrow 00:00, day after tomorrow 00:00) relative to now.

    An aware ``now`` picks "tomorrow" in its own zone; the bounds come back as
    naive local time to match stored due dates.
    """
    start = (now + timedelta(days=1)).replace(hour=0, minute=0, second=0, microsecond=0)
    return to_local_naive(start), to_local_naive(start + timedelta(days=1))


def find_tasks_due_tomorrow(now):
    start, end = reminder_window(now)
    query = (
        db.select(Task, User)
        .outerjoin(User, Task.user_id == User.id)
        .where(Task.status == 'pending', Task.due_date >= start, Task.due_date < end)
        .order_by(Task.due_date, Task.id)
    )
    return db.session.execute(query).all()


def _dispatch(send, recipient, *args):
    try:
        delivered = send(recipient, *args)
    except Exception:
        logger.exception(f"Error sending reminder to {recipient}")
        return False
    if not delivered:
        logger.warning(f"Reminder to {recipient} was not delivered")
    return bool(delivered)


def check_task_reminders(mailer, now=None):
    """Email every opted-in owner of a pending task due tomorrow.

    Returns the number of reminders delivered. Database errors propagate.
    """
    now = now or datetime.now()
    logger.info("Checking for task reminders...")

    rows = find_tasks_due_tomorrow(now)
    logger.info(f"Found {len(rows)} tasks due tomorrow")

    sent = 0
    for task, user in rows:
        if user is None or not user.email_notifications or not user.email:
            continue
        logger.info(f"Sending reminder for task '{task.title}' to {user.email}")
        if _dispatch(mailer.send_task_reminder, user.email, user.name, task):
            sent += 1

    logger.info("Task reminder check completed")
    return sent


def send_notes_digest(mailer, limit=DEFAULT_DIGEST_LIMIT):
    """Email each opted-in user up to ``limit`` of their pinned notes."""
    logger.info("Sending notes digest...")

    users = db.session.scalars(
        db.select(User).where(User.email_notifications.is_(True)).order_by(User.id)
    ).all()

    sent = 0
    for user in users:
        pinned_notes = db.session.scalars(
            db.select(Note)
            .where(Note.user_id == user.id, Note.is_pinned.is_(True))
            .order_by(Note.id)
            .limit(limit)
        ).all()
        if not pinned_notes or not user.email:
            continue
        logger.info(f"Sending notes digest to {user.email} ({len(pinned_notes)} notes)")
        if _dispatch(mailer.send_note_reminder, user.email, user.name, pinned_notes):
            sent += 1

    logger.info("Notes digest completed")
    return sent


class ReminderScheduler:
    """Start/stop handle around the two daily reminder jobs.

    ``trigger_task_reminders`` and ``trigger_notes_digest`` run the same scans
    on demand; they raise on failure, while the scheduled runs log and carry on.
    """

    def __init__(self, app=None, mailer=None):
        self.app = None
        self.mailer = mailer
        self._scheduler = None
        if app is not None:
            self.init_app(app)

    def init_app(self, app):
        self.app = app
        app.extensions['reminder_scheduler'] = self

    @property
    def running(self):
        return self._scheduler is not None and self._scheduler.running

    def _get_mailer(self):
        return self.mailer or self.app.extensions['mailer']

    def _now(self):
        timezone = self.app.config.get('SCHEDULER_TIMEZONE')
        return datetime.now(ZoneInfo(timezone)) if timezone else datetime.now()

    @contextmanager
    def _app_context(self):
        # Reuse the caller's context (and session) when already inside this app
        if has_app_context() and current_app._get_current_object() is self.app:
            yield
        else:
            with self.app.app_context():
                yield

    def start(self):
        if self.running:
            return
        config = self.app.config
        timezone = config.get('SCHEDULER_TIMEZONE')
        options = {'timezone': timezone} if timezone else {}

        logger.info("Starting reminder scheduler...")
        scheduler = BackgroundScheduler(**options)
        # one running instance per job; overlapping firings collapse into one
        job_defaults = {'max_instances': 1, 'coalesce': True, 'replace_existing': True}
        scheduler.add_job(
            self._run_task_check,
            CronTrigger(hour=config.get('TASK_REMINDER_HOUR', 9), minute=0, **options),
            id=TASK_CHECK_JOB,
            name='Task reminders',
            **job_defaults,
        )
        scheduler.add_job(
            self._run_notes_digest,
            CronTrigger(hour=config.get('NOTES_DIGEST_HOUR', 8), minute=0, **options),
            id=NOTES_DIGEST_JOB,
            name='Notes digest',
            **job_defaults,
        )
        scheduler.start()
        self._scheduler = scheduler

        logger.info("Reminder scheduler started successfully")
        logger.info(f"- Task reminders: daily at {config.get('TASK_REMINDER_HOUR', 9):02d}:00")
        logger.info(f"- Notes digest: daily at {config.get('NOTES_DIGEST_HOUR', 8):02d}:00")

    def shutdown(self, wait=False):
        if self._scheduler is None:
            return
        if self._scheduler.running:
            self._scheduler.shutdown(wait=wait)
        self._scheduler = None
        logger.info("Reminder scheduler stopped")

    def get_job(self, job_id):
        if self._scheduler is None:
            return None
        return self._scheduler.get_job(job_id)

    def trigger_task_reminders(self, now=None):
        logger.info("Manually triggering task reminders...")
        with self._app_context():
            return check_task_reminders(self._get_mailer(), now=now or self._now())

    def trigger_notes_digest(self):
        logger.info("Manually triggering notes digest...")
        with self._app_context():
            limit = self.app.config.get('NOTES_DIGEST_LIMIT', DEFAULT_DIGEST_LIMIT)
            return send_notes_digest(self._get_mailer(), limit=limit)

    def _run_task_check(self):
        logger.info("Running scheduled task reminder check...")
        try:
            with self._app_context():
                check_task_reminders(self._get_mailer(), now=self._now())
        except Exception:
            logger.exception("Error checking task reminders")

    def _run_notes_digest(self):
        logger.info("Running scheduled notes digest...")
        try:
            with self._app_context():
                limit = self.app.config.get('NOTES_DIGEST_LIMIT', DEFAULT_DIGEST_LIMIT)
                send_notes_digest(self._get_mailer(), limit=limit)
        except Exception:
            logger.exception("Error sending notes digest")
