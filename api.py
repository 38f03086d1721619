import logging
from datetime import datetime, timedelta

from flask import Blueprint, current_app, g, jsonify, request
from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError

import workflow_engine
from auth import hash_password, issue_token, login_required, verify_password
from models import db, Note, Task, User, Workflow
from schemas import (
    LoginRequest, NoteForm, NoteUpdateForm, NotificationSettings, RegisterRequest,
    TaskCreate, TaskStatusUpdate, TaskUpdate, WorkflowCreate, WorkflowFilter,
    WorkflowStatusUpdate, WorkflowUpdate,
)
from storage import UploadError
from workflow_engine import StepNotFound, WorkflowNotFound

logger = logging.getLogger(__name__)

api = Blueprint('api', __name__, url_prefix='/api')

WORKFLOW_FIELDS = {
    'title': 'title',
    'description': 'description',
    'category': 'category',
    'startDate': 'start_date',
    'endDate': 'end_date',
    'startTime': 'start_time',
    'isRecurring': 'is_recurring',
    'recurringDays': 'recurring_days',
    'status': 'status',
    'color': 'color',
}


def _json_body():
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _form_body():
    if request.is_json:
        return _json_body()
    return request.form.to_dict()


def _mailer():
    return current_app.extensions['mailer']


def _storage():
    return current_app.extensions['attachment_storage']


def _not_found(kind):
    return jsonify({"success": False, "message": f"{kind} not found"}), 404


# Error handlers
@api.errorhandler(ValidationError)
def handle_validation_error(e):
    errors = [
        {"field": ".".join(str(part) for part in err['loc']), "message": err['msg']}
        for err in e.errors()
    ]
    return jsonify({"success": False, "message": "Validation failed", "errors": errors}), 400


@api.errorhandler(UploadError)
def handle_upload_error(e):
    return jsonify({"success": False, "message": str(e)}), 400


@api.errorhandler(WorkflowNotFound)
def handle_workflow_not_found(e):
    return _not_found('Workflow')


@api.errorhandler(StepNotFound)
def handle_step_not_found(e):
    return _not_found('Step')


# Auth
def _user_exists():
    return jsonify({"success": False, "message": "User already exists with this email"}), 400


@api.route('/auth/register', methods=['POST'])
def register():
    payload = RegisterRequest.model_validate(_json_body())

    if db.session.scalar(db.select(User).where(User.email == payload.email)):
        return _user_exists()

    user = User(name=payload.name, email=payload.email, password_hash=hash_password(payload.password))
    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError:
        # lost a race with a concurrent registration for the same email
        db.session.rollback()
        return _user_exists()
    logger.info(f"Registered user {user.email}")

    return jsonify({
        "success": True,
        "message": "User registered successfully",
        "token": issue_token(user.id),
        "user": user.to_summary(),
    }), 201


@api.route('/auth/login', methods=['POST'])
def login():
    payload = LoginRequest.model_validate(_json_body())

    user = db.session.scalar(db.select(User).where(User.email == payload.email))
    if not user or not verify_password(user, payload.password):
        return jsonify({"success": False, "message": "Invalid email or password"}), 401

    return jsonify({
        "success": True,
        "message": "Login successful",
        "token": issue_token(user.id),
        "user": user.to_summary(),
    })


@api.route('/auth/me', methods=['GET'])
@login_required
def me():
    return jsonify({"success": True, "user": g.user.to_summary(include_preferences=True)})


@api.route('/auth/settings/notifications', methods=['PATCH'])
@login_required
def update_notifications():
    data = _json_body()
    try:
        payload = NotificationSettings.model_validate(data)
    except ValidationError:
        return jsonify({"success": False, "message": "emailNotifications must be a boolean"}), 400

    g.user.email_notifications = payload.emailNotifications
    db.session.commit()

    # Confirmation email is best-effort
    if payload.emailNotifications:
        try:
            _mailer().send_test_email(g.user.email)
        except Exception as e:
            logger.error(f"Error sending test email to {g.user.email}: {e}")

    return jsonify({
        "success": True,
        "message": "Notification settings updated successfully",
        "emailNotifications": g.user.email_notifications,
    })


@api.route('/auth/test-reminder', methods=['POST'])
@login_required
def test_reminder():
    try:
        sent = current_app.extensions['reminder_scheduler'].trigger_task_reminders()
    except Exception as e:
        logger.exception("Error triggering task reminders")
        return jsonify({"success": False, "message": f"Error triggering task reminders: {str(e)}"}), 500
    return jsonify({"success": True, "message": "Task reminders triggered successfully", "sent": sent})


@api.route('/auth/test-digest', methods=['POST'])
@login_required
def test_digest():
    try:
        sent = current_app.extensions['reminder_scheduler'].trigger_notes_digest()
    except Exception as e:
        logger.exception("Error triggering notes digest")
        return jsonify({"success": False, "message": f"Error triggering notes digest: {str(e)}"}), 500
    return jsonify({"success": True, "message": "Notes digest triggered successfully", "sent": sent})


# Tasks
def _get_owned_task(task_id):
    return db.session.scalar(db.select(Task).where(Task.id == task_id, Task.user_id == g.user.id))


@api.route('/tasks', methods=['GET'])
@login_required
def get_tasks():
    tasks = db.session.scalars(
        db.select(Task).where(Task.user_id == g.user.id).order_by(Task.created_at.desc(), Task.id.desc())
    ).all()
    return jsonify({"success": True, "tasks": [task.to_dict() for task in tasks]})


@api.route('/tasks', methods=['POST'])
@login_required
def create_task():
    payload = TaskCreate.model_validate(_json_body())

    task = Task(
        user_id=g.user.id,
        title=payload.title,
        description=payload.description,
        due_date=payload.dueDate,
        status=payload.status,
    )
    db.session.add(task)
    db.session.commit()

    return jsonify({"success": True, "task": task.to_dict()}), 201


@api.route('/tasks/<int:task_id>', methods=['GET'])
@login_required
def get_task(task_id):
    task = _get_owned_task(task_id)
    if not task:
        return _not_found('Task')
    return jsonify({"success": True, "task": task.to_dict()})


@api.route('/tasks/<int:task_id>', methods=['PUT'])
@login_required
def update_task(task_id):
    task = _get_owned_task(task_id)
    if not task:
        return _not_found('Task')

    changes = TaskUpdate.model_validate(_json_body()).model_dump(exclude_unset=True)
    if 'title' in changes:
        if changes['title'] is None:
            return jsonify({"success": False, "message": "Task title is required"}), 400
        task.title = changes['title']
    if 'description' in changes:
        task.description = changes['description']
    if 'dueDate' in changes:
        task.due_date = changes['dueDate']
    if changes.get('status'):
        task.status = changes['status']
    db.session.commit()

    return jsonify({"success": True, "task": task.to_dict()})


@api.route('/tasks/<int:task_id>/status', methods=['PATCH'])
@login_required
def update_task_status(task_id):
    task = _get_owned_task(task_id)
    if not task:
        return _not_found('Task')

    payload = TaskStatusUpdate.model_validate(_json_body())
    task.status = payload.status
    db.session.commit()

    return jsonify({"success": True, "message": "Task status updated", "task": task.to_dict()})


@api.route('/tasks/<int:task_id>', methods=['DELETE'])
@login_required
def delete_task(task_id):
    task = _get_owned_task(task_id)
    if not task:
        return _not_found('Task')

    db.session.delete(task)
    db.session.commit()
    return jsonify({"success": True, "message": "Task deleted successfully"})


@api.route('/tasks', methods=['DELETE'])
@login_required
def clear_tasks():
    result = db.session.execute(db.delete(Task).where(Task.user_id == g.user.id))
    db.session.commit()
    return jsonify({"success": True, "message": "All tasks cleared", "deleted": result.rowcount})


# Notes
def _get_owned_note(note_id):
    return db.session.scalar(db.select(Note).where(Note.id == note_id, Note.user_id == g.user.id))


@api.route('/notes', methods=['GET'])
@login_required
def get_notes():
    notes = db.session.scalars(
        db.select(Note).where(Note.user_id == g.user.id)
        .order_by(Note.is_pinned.desc(), Note.updated_at.desc(), Note.id.desc())
    ).all()
    return jsonify({"success": True, "notes": [note.to_dict() for note in notes]})


@api.route('/notes/<int:note_id>', methods=['GET'])
@login_required
def get_note(note_id):
    note = _get_owned_note(note_id)
    if not note:
        return _not_found('Note')
    return jsonify({"success": True, "note": note.to_dict()})


@api.route('/notes', methods=['POST'])
@login_required
def create_note():
    payload = NoteForm.model_validate(_form_body())
    storage = _storage()
    images = storage.save_all(request.files.getlist('images'))

    note = Note(
        user_id=g.user.id,
        title=payload.title,
        content=payload.content,
        color=payload.color,
        is_pinned=payload.isPinned,
        images=images,
    )
    try:
        db.session.add(note)
        db.session.commit()
    except Exception:
        # Clean up uploaded files if note creation fails
        db.session.rollback()
        storage.delete_all(image['filename'] for image in images)
        raise

    return jsonify({"success": True, "note": note.to_dict()}), 201


@api.route('/notes/<int:note_id>', methods=['PUT'])
@login_required
def update_note(note_id):
    note = _get_owned_note(note_id)
    if not note:
        return _not_found('Note')

    payload = NoteUpdateForm.model_validate(_form_body())
    storage = _storage()
    new_images = storage.save_all(request.files.getlist('images'))

    if payload.title:
        note.title = payload.title
    if payload.content:
        note.content = payload.content
    if payload.color:
        note.color = payload.color
    if payload.isPinned is not None:
        note.is_pinned = payload.isPinned

    removed = set(payload.removedImages)
    kept = [image for image in note.images or [] if image['filename'] not in removed]
    dropped = [image['filename'] for image in note.images or [] if image['filename'] in removed]
    note.images = kept + new_images

    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        storage.delete_all(image['filename'] for image in new_images)
        raise

    storage.delete_all(dropped)
    return jsonify({"success": True, "note": note.to_dict()})


@api.route('/notes/<int:note_id>/pin', methods=['PATCH'])
@login_required
def toggle_pin(note_id):
    note = _get_owned_note(note_id)
    if not note:
        return _not_found('Note')

    note.is_pinned = not note.is_pinned
    db.session.commit()
    return jsonify({"success": True, "note": note.to_dict()})


@api.route('/notes/<int:note_id>', methods=['DELETE'])
@login_required
def delete_note(note_id):
    note = _get_owned_note(note_id)
    if not note:
        return _not_found('Note')

    filenames = [image['filename'] for image in note.images or []]
    db.session.delete(note)
    db.session.commit()

    # The note is gone either way; leftover files are only logged
    _storage().delete_all(filenames)
    return jsonify({"success": True, "message": "Note deleted"})


@api.route('/notes', methods=['DELETE'])
@login_required
def delete_all_notes():
    notes = db.session.scalars(db.select(Note).where(Note.user_id == g.user.id)).all()
    filenames = [image['filename'] for note in notes for image in note.images or []]
    for note in notes:
        db.session.delete(note)
    db.session.commit()

    _storage().delete_all(filenames)
    return jsonify({"success": True, "message": "All notes deleted", "deleted": len(notes)})


# Workflows
def persist_workflow(workflow, explicit_status=False):
    """Recompute derived fields and write the workflow in a single commit."""
    workflow.progress, workflow.status = workflow_engine.recompute(
        workflow.steps or [], workflow.status or 'scheduled', explicit_status=explicit_status
    )
    db.session.add(workflow)
    db.session.commit()
    return workflow


def get_owned_workflow(workflow_id):
    workflow = db.session.scalar(
        db.select(Workflow).where(Workflow.id == workflow_id, Workflow.user_id == g.user.id)
    )
    if workflow is None:
        raise WorkflowNotFound(workflow_id)
    return workflow


def _notify_workflow_created(workflow):
    user = g.user
    if not user.email_notifications or not user.email:
        return
    try:
        _mailer().send_workflow_notification(user.email, user.name, workflow)
    except Exception as e:
        logger.error(f"Error sending workflow notification to {user.email}: {e}")


@api.route('/workflows', methods=['GET'])
@login_required
def get_workflows():
    filters = WorkflowFilter.model_validate(request.args.to_dict())

    query = db.select(Workflow).where(Workflow.user_id == g.user.id)
    if filters.startDate:
        query = query.where(Workflow.start_date >= filters.startDate)
    if filters.endDate:
        query = query.where(Workflow.start_date <= filters.endDate)
    if filters.day:
        day_start = datetime.combine(filters.day, datetime.min.time())
        query = query.where(Workflow.start_date >= day_start,
                            Workflow.start_date < day_start + timedelta(days=1))
    if filters.category:
        query = query.where(Workflow.category == filters.category)
    if filters.status:
        query = query.where(Workflow.status == filters.status)

    workflows = db.session.scalars(
        query.order_by(Workflow.start_date, Workflow.start_time, Workflow.id)
    ).all()
    if filters.day:
        workflows = [w for w in workflows if workflow_engine.occurs_on(w.start_date, filters.day)]

    return jsonify({"success": True, "workflows": [workflow.to_dict() for workflow in workflows]})


@api.route('/workflows/stats/summary', methods=['GET'])
@login_required
def get_workflow_stats():
    workflows = db.session.scalars(db.select(Workflow).where(Workflow.user_id == g.user.id)).all()
    return jsonify({"success": True, "stats": workflow_engine.summarize(workflows)})


@api.route('/workflows/<int:workflow_id>', methods=['GET'])
@login_required
def get_workflow(workflow_id):
    workflow = get_owned_workflow(workflow_id)
    return jsonify({"success": True, "workflow": workflow.to_dict()})


@api.route('/workflows', methods=['POST'])
@login_required
def create_workflow():
    payload = WorkflowCreate.model_validate(_json_body())

    workflow = Workflow(
        user_id=g.user.id,
        title=payload.title,
        description=payload.description,
        category=payload.category,
        start_date=payload.startDate,
        end_date=payload.endDate,
        start_time=payload.startTime,
        is_recurring=payload.isRecurring,
        recurring_days=list(payload.recurringDays),
        steps=workflow_engine.normalize_steps([step.model_dump() for step in payload.steps]),
        status=payload.status,
        color=payload.color,
    )
    persist_workflow(workflow)
    logger.info(f"Workflow {workflow.id} created for user {g.user.id}")

    _notify_workflow_created(workflow)
    return jsonify({"success": True, "workflow": workflow.to_dict()}), 201


@api.route('/workflows/<int:workflow_id>', methods=['PUT'])
@login_required
def update_workflow(workflow_id):
    workflow = get_owned_workflow(workflow_id)
    changes = WorkflowUpdate.model_validate(_json_body()).model_dump(exclude_unset=True)

    for key, column in WORKFLOW_FIELDS.items():
        if key not in changes:
            continue
        value = changes[key]
        if value is None and key in ('title', 'category', 'startDate', 'startTime', 'status', 'color'):
            return jsonify({"success": False, "message": f"{key} cannot be empty"}), 400
        if key == 'recurringDays':
            value = list(value or [])
        if key == 'isRecurring':
            value = bool(value)
        setattr(workflow, column, value)

    if 'steps' in changes:
        workflow.steps = workflow_engine.normalize_steps(changes['steps'] or [])

    persist_workflow(workflow)
    return jsonify({"success": True, "workflow": workflow.to_dict()})


@api.route('/workflows/<int:workflow_id>/steps/<step_id>/toggle', methods=['PATCH'])
@login_required
def toggle_workflow_step(workflow_id, step_id):
    workflow = get_owned_workflow(workflow_id)
    steps, step = workflow_engine.toggle_step(workflow.steps or [], step_id)

    workflow.steps = steps
    persist_workflow(workflow)
    logger.debug(f"Step {step_id} of workflow {workflow_id} -> completed={step['isCompleted']}")

    return jsonify({"success": True, "workflow": workflow.to_dict()})


@api.route('/workflows/<int:workflow_id>/status', methods=['PATCH'])
@login_required
def update_workflow_status(workflow_id):
    data = _json_body()
    try:
        payload = WorkflowStatusUpdate.model_validate(data)
    except ValidationError:
        return jsonify({"success": False, "message": "Invalid status"}), 400

    workflow = get_owned_workflow(workflow_id)
    workflow.status = payload.status
    persist_workflow(workflow, explicit_status=True)

    return jsonify({"success": True, "workflow": workflow.to_dict()})


@api.route('/workflows/<int:workflow_id>', methods=['DELETE'])
@login_required
def delete_workflow(workflow_id):
    workflow = get_owned_workflow(workflow_id)
    db.session.delete(workflow)
    db.session.commit()
    return jsonify({"success": True, "message": "Workflow deleted"})


@api.route('/workflows/<int:workflow_id>/duplicate', methods=['POST'])
@login_required
def duplicate_workflow(workflow_id):
    original = get_owned_workflow(workflow_id)

    duplicate = Workflow(**workflow_engine.duplicate_fields(original))
    persist_workflow(duplicate)

    return jsonify({"success": True, "workflow": duplicate.to_dict()}), 201
