import logging
import smtplib
from email.message import EmailMessage
from email.utils import formataddr, make_msgid

from flask import current_app, render_template

logger = logging.getLogger(__name__)

CATEGORY_ICONS = {
    'daily': '☀️',
    'weekly': '📅',
    'project': '🎯',
    'meeting': '👥',
    'custom': '⚡',
}


def format_long_date(value):
    """Monday, January 1, 2024"""
    return f"{value.strftime('%A, %B')} {value.day}, {value.year}"


def darken(color, amount=20):
    """Shift every channel of a #rrggbb color by -amount, clamped to 0..255."""
    hex_value = color.lstrip('#')
    if len(hex_value) != 6:
        return color
    channels = [int(hex_value[i:i + 2], 16) for i in range(0, 6, 2)]
    return '#' + ''.join(f"{max(0, min(255, c - amount)):02x}" for c in channels)


class EmailService:
    """Renders notification emails from templates and sends them over SMTP.

    Every ``send_*`` method returns True on success and False when delivery
    failed; SMTP errors are logged, never raised.
    """

    def __init__(self, app=None):
        self.app = app
        if app is not None:
            self.init_app(app)

    def init_app(self, app):
        app.extensions['mailer'] = self

    def _config(self, key):
        return current_app.config.get(key)

    def send(self, to_address, subject, html, text=None):
        if not self._config('MAIL_ENABLED'):
            logger.info(f"Email delivery disabled, not sending '{subject}' to {to_address}")
            return False

        sender_address = self._config('MAIL_USERNAME')
        message = EmailMessage()
        message['Subject'] = subject
        message['From'] = formataddr((self._config('MAIL_SENDER'), sender_address or 'no-reply@localhost'))
        message['To'] = to_address
        message['Message-ID'] = make_msgid()
        message.set_content(text or subject)
        message.add_alternative(html, subtype='html')

        try:
            with smtplib.SMTP(self._config('MAIL_SERVER'), self._config('MAIL_PORT'),
                              timeout=self._config('MAIL_TIMEOUT')) as smtp:
                if self._config('MAIL_USE_TLS'):
                    smtp.starttls()
                if sender_address and self._config('MAIL_PASSWORD'):
                    smtp.login(sender_address, self._config('MAIL_PASSWORD'))
                smtp.send_message(message)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Error sending email '{subject}' to {to_address}: {e}")
            return False

        logger.info(f"Email '{subject}' sent to {to_address}: {message['Message-ID']}")
        return True

    def send_task_reminder(self, user_email, user_name, task):
        subject = f'⏰ Task Reminder: "{task.title}" is due tomorrow'
        html = render_template(
            'email/task_reminder.html',
            user_name=user_name,
            task=task,
            due_date=format_long_date(task.due_date),
            app_url=self._config('APP_URL'),
        )
        text = f"Hi {user_name}, your task \"{task.title}\" is due tomorrow."
        return self.send(user_email, subject, html, text)

    def send_note_reminder(self, user_email, user_name, notes):
        count = len(notes)
        subject = f"📝 You have {count} pinned note{'s' if count > 1 else ''} to review"
        html = render_template(
            'email/notes_digest.html',
            user_name=user_name,
            notes=notes,
            app_url=self._config('APP_URL'),
        )
        text = f"Hi {user_name}, here are your pinned notes: " + ', '.join(n.title for n in notes)
        return self.send(user_email, subject, html, text)

    def send_test_email(self, user_email):
        html = render_template('email/test_email.html')
        return self.send(user_email, '✅ Email Notifications Enabled', html,
                         'Email notifications are now enabled for your Task Manager account.')

    def send_workflow_notification(self, user_email, user_name, workflow):
        icon = CATEGORY_ICONS.get(workflow.category, '⚡')
        color = workflow.color or '#3b82f6'
        subject = f'{icon} New Workflow Created: "{workflow.title}"'
        html = render_template(
            'email/workflow_created.html',
            user_name=user_name,
            workflow=workflow,
            icon=icon,
            color=color,
            color_dark=darken(color),
            start_date=format_long_date(workflow.start_date),
            steps=sorted(workflow.steps or [], key=lambda step: step.get('order', 0)),
            recurring_days=[day.capitalize() for day in workflow.recurring_days or []]
            if workflow.is_recurring else [],
            app_url=self._config('APP_URL'),
        )
        return self.send(user_email, subject, html, f"Your workflow \"{workflow.title}\" was created.")
