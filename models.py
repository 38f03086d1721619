from flask_sqlalchemy import SQLAlchemy
from datetime import datetime

db = SQLAlchemy()

TASK_STATUSES = ('pending', 'complete')
WORKFLOW_CATEGORIES = ('daily', 'weekly', 'project', 'meeting', 'custom')
WORKFLOW_STATUSES = ('scheduled', 'in-progress', 'completed', 'cancelled')
WEEKDAYS = ('monday', 'tuesday', 'wednesday', 'thursday', 'friday', 'saturday', 'sunday')


def isoformat(value):
    return value.isoformat() if value else None


class User(db.Model):
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(120), unique=True, nullable=False)
    password_hash = db.Column(db.String(256), nullable=False)
    email_notifications = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, default=datetime.now)

    tasks = db.relationship('Task', backref='user', lazy=True, cascade='all, delete-orphan')
    notes = db.relationship('Note', backref='user', lazy=True, cascade='all, delete-orphan')
    workflows = db.relationship('Workflow', backref='user', lazy=True, cascade='all, delete-orphan')

    def to_summary(self, include_preferences=False):
        summary = {"id": self.id, "name": self.name, "email": self.email}
        if include_preferences:
            summary["emailNotifications"] = self.email_notifications
        return summary

    def __repr__(self):
        return f'<User {self.email}>'


class Task(db.Model):
    __tablename__ = 'tasks'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)
    due_date = db.Column(db.DateTime, index=True)
    status = db.Column(db.String(20), nullable=False, default='pending')
    created_at = db.Column(db.DateTime, default=datetime.now)

    def to_dict(self):
        return {
            "id": self.id,
            "userId": self.user_id,
            "title": self.title,
            "description": self.description,
            "dueDate": isoformat(self.due_date),
            "status": self.status,
            "createdAt": isoformat(self.created_at),
        }

    def __repr__(self):
        return f'<Task {self.title}>'


class Note(db.Model):
    __tablename__ = 'notes'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    title = db.Column(db.String(200), nullable=False)
    content = db.Column(db.Text, nullable=False)
    # Attachment descriptors: [{"filename", "path", "uploadedAt"}]
    images = db.Column(db.JSON, nullable=False, default=list)
    color = db.Column(db.String(20), nullable=False, default='#ffffff')
    is_pinned = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, default=datetime.now)
    updated_at = db.Column(db.DateTime, default=datetime.now, onupdate=datetime.now)

    def to_dict(self):
        return {
            "id": self.id,
            "userId": self.user_id,
            "title": self.title,
            "content": self.content,
            "images": list(self.images or []),
            "color": self.color,
            "isPinned": self.is_pinned,
            "createdAt": isoformat(self.created_at),
            "updatedAt": isoformat(self.updated_at),
        }

    def __repr__(self):
        return f'<Note {self.title}>'


class Workflow(db.Model):
    """A workflow and its embedded steps, persisted as one row.

    Steps live in a JSON column so a step toggle is always written together
    with the recomputed progress and status of the parent.
    """
    __tablename__ = 'workflows'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)
    category = db.Column(db.String(20), nullable=False, default='custom')
    start_date = db.Column(db.DateTime, nullable=False, index=True)
    end_date = db.Column(db.DateTime)
    start_time = db.Column(db.String(5), nullable=False, default='09:00')
    is_recurring = db.Column(db.Boolean, nullable=False, default=False)
    recurring_days = db.Column(db.JSON, nullable=False, default=list)
    # Step documents: [{"id", "title", "description", "duration",
    #                   "isCompleted", "completedAt", "order"}]
    steps = db.Column(db.JSON, nullable=False, default=list)
    status = db.Column(db.String(20), nullable=False, default='scheduled')
    progress = db.Column(db.Integer, nullable=False, default=0)
    color = db.Column(db.String(20), nullable=False, default='#3b82f6')
    created_at = db.Column(db.DateTime, default=datetime.now)
    updated_at = db.Column(db.DateTime, default=datetime.now, onupdate=datetime.now)

    def to_dict(self):
        return {
            "id": self.id,
            "userId": self.user_id,
            "title": self.title,
            "description": self.description,
            "category": self.category,
            "startDate": isoformat(self.start_date),
            "endDate": isoformat(self.end_date),
            "startTime": self.start_time,
            "isRecurring": self.is_recurring,
            "recurringDays": list(self.recurring_days or []),
            "steps": sorted(self.steps or [], key=lambda step: step.get('order', 0)),
            "status": self.status,
            "progress": self.progress,
            "color": self.color,
            "createdAt": isoformat(self.created_at),
            "updatedAt": isoformat(self.updated_at),
        }

    def __repr__(self):
        return f'<Workflow {self.title}>'
