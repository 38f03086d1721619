"""Progress and status rules for workflows and their embedded steps.

Everything here is a plain function over step documents (dicts) so the
rules can be exercised without a database. The write path calls
``recompute`` right before committing a workflow.
"""
import uuid
from datetime import datetime

from models import WORKFLOW_STATUSES

COPY_SUFFIX = ' (Copy)'
DEFAULT_STEP_DURATION = 30


class WorkflowNotFound(LookupError):
    pass


class StepNotFound(LookupError):
    pass


def calculate_progress(steps):
    """Percentage of completed steps, rounded half up. No steps means 0."""
    total = len(steps)
    if total == 0:
        return 0
    completed = sum(1 for step in steps if step.get('isCompleted'))
    return (200 * completed + total) // (2 * total)


def derive_status(progress, status):
    if progress == 100 and status != 'cancelled':
        return 'completed'
    if 0 < progress < 100 and status == 'scheduled':
        return 'in-progress'
    return status


def recompute(steps, status, explicit_status=False):
    """Return the (progress, status) pair a workflow must be saved with.

    An explicitly requested status is kept as-is for this write; progress is
    always recomputed.
    """
    if status not in WORKFLOW_STATUSES:
        raise ValueError(f"Unknown workflow status: {status}")
    progress = calculate_progress(steps)
    if explicit_status:
        return progress, status
    return progress, derive_status(progress, status)


def new_step_id():
    return uuid.uuid4().hex


def _as_iso(value):
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def normalize_steps(steps, now=None):
    """Copy step documents, filling ids, order and completion timestamps."""
    now = now or datetime.now()
    normalized = []
    for position, step in enumerate(steps):
        completed = bool(step.get('isCompleted', False))
        completed_at = _as_iso(step.get('completedAt')) if completed else None
        if completed and not completed_at:
            completed_at = now.isoformat()
        order = step.get('order')
        normalized.append({
            "id": step.get('id') or new_step_id(),
            "title": step['title'],
            "description": step.get('description'),
            "duration": step.get('duration', DEFAULT_STEP_DURATION),
            "isCompleted": completed,
            "completedAt": completed_at,
            "order": position if order is None else order,
        })
    return normalized


def toggle_step(steps, step_id, now=None):
    """Flip one step's completion. Returns (new_steps, toggled_step).

    Raises StepNotFound without touching the input when ``step_id`` is not
    part of the list.
    """
    now = now or datetime.now()
    index = next((i for i, step in enumerate(steps) if step.get('id') == step_id), None)
    if index is None:
        raise StepNotFound(step_id)

    updated = [dict(step) for step in steps]
    step = updated[index]
    step['isCompleted'] = not step.get('isCompleted', False)
    step['completedAt'] = now.isoformat() if step['isCompleted'] else None
    return updated, step


def occurs_on(start_date, day):
    """A workflow occurs only on the calendar day of its start date."""
    if start_date is None:
        return False
    if isinstance(day, datetime):
        day = day.date()
    return start_date.date() == day


def summarize(workflows):
    workflows = list(workflows)
    total = len(workflows)
    counts = {status: 0 for status in WORKFLOW_STATUSES}
    progress_sum = 0
    for workflow in workflows:
        counts[workflow.status] = counts.get(workflow.status, 0) + 1
        progress_sum += workflow.progress or 0

    average = 0 if total == 0 else (2 * progress_sum + total) // (2 * total)
    return {
        "total": total,
        "scheduled": counts['scheduled'],
        "inProgress": counts['in-progress'],
        "completed": counts['completed'],
        "cancelled": counts['cancelled'],
        "averageProgress": average,
    }


def duplicate_fields(workflow, now=None):
    """Field values for a fresh copy of ``workflow`` starting at ``now``."""
    now = now or datetime.now()
    steps = [
        {
            "id": new_step_id(),
            "title": step['title'],
            "description": step.get('description'),
            "duration": step.get('duration', DEFAULT_STEP_DURATION),
            "isCompleted": False,
            "completedAt": None,
            "order": step.get('order', position),
        }
        for position, step in enumerate(workflow.steps or [])
    ]
    progress, status = recompute(steps, 'scheduled')
    return {
        "user_id": workflow.user_id,
        "title": f"{workflow.title}{COPY_SUFFIX}",
        "description": workflow.description,
        "category": workflow.category,
        "start_date": now,
        "start_time": workflow.start_time,
        "is_recurring": workflow.is_recurring,
        "recurring_days": list(workflow.recurring_days or []),
        "steps": steps,
        "status": status,
        "progress": progress,
        "color": workflow.color,
    }
