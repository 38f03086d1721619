from datetime import datetime
from types import SimpleNamespace

import pytest

from email_service import EmailService, darken, format_long_date


@pytest.fixture()
def captured(app, monkeypatch):
    """Real EmailService with SMTP replaced by a recorder."""
    messages = []

    def fake_send(self, to_address, subject, html, text=None):
        messages.append({"to": to_address, "subject": subject, "html": html, "text": text})
        return True

    monkeypatch.setattr(EmailService, 'send', fake_send)
    with app.app_context():
        yield EmailService(), messages


def test_format_long_date():
    assert format_long_date(datetime(2024, 1, 2, 8, 0)) == 'Tuesday, January 2, 2024'


def test_darken_clamps_channels():
    assert darken('#3b82f6') == '#276ee2'
    assert darken('#0a0a0a') == '#000000'
    assert darken('red') == 'red'


def test_task_reminder_renders_task(captured):
    service, messages = captured
    task = SimpleNamespace(title='Pay <rent>', description='Before noon', due_date=datetime(2024, 1, 2, 8, 0))

    assert service.send_task_reminder('ada@example.com', 'Ada', task) is True

    message = messages[0]
    assert message['subject'] == '⏰ Task Reminder: "Pay <rent>" is due tomorrow'
    assert 'Hi Ada!' in message['html']
    assert 'Pay &lt;rent&gt;' in message['html']
    assert 'Tuesday, January 2, 2024' in message['html']


def test_notes_digest_subject_and_truncation(captured):
    service, messages = captured
    notes = [
        SimpleNamespace(title='Long', content='x' * 150, color='#ffffff'),
        SimpleNamespace(title='Short', content='short body', color='#fde68a'),
    ]

    service.send_note_reminder('ada@example.com', 'Ada', notes)

    message = messages[0]
    assert message['subject'] == '📝 You have 2 pinned notes to review'
    assert 'x' * 100 + '...' in message['html']
    assert 'x' * 101 not in message['html']
    assert 'short body' in message['html']


def test_workflow_notification_lists_steps(captured):
    service, messages = captured
    workflow = SimpleNamespace(
        title='Morning routine', description=None, category='daily', color='#3b82f6',
        start_date=datetime(2024, 3, 4, 0, 0), start_time='07:00', is_recurring=True,
        recurring_days=['monday', 'friday'],
        steps=[{"title": "Stretch", "duration": 10, "order": 1}, {"title": "Wake up", "duration": 5, "order": 0}],
    )

    service.send_workflow_notification('ada@example.com', 'Ada', workflow)

    html = messages[0]['html']
    assert messages[0]['subject'] == '☀️ New Workflow Created: "Morning routine"'
    assert 'Monday, Friday' in html
    assert html.index('Wake up') < html.index('Stretch')


def test_disabled_mail_reports_failure(app):
    with app.app_context():
        assert EmailService().send('ada@example.com', 'Hello', '<p>Hi</p>') is False
