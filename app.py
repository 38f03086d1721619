import logging
import os

import click
from flask import Flask, jsonify, send_from_directory
from flask_cors import CORS
from sqlalchemy.exc import SQLAlchemyError

from api import api
from config import Config
from email_service import EmailService
from models import db
from reminder_scheduler import ReminderScheduler
from storage import AttachmentStorage

logger = logging.getLogger(__name__)


def configure_logging(app):
    logging.basicConfig(
        level=getattr(logging, str(app.config.get('LOG_LEVEL', 'INFO')).upper(), logging.INFO),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )
    # APScheduler is chatty at INFO about every job run
    logging.getLogger('apscheduler').setLevel(logging.WARNING)


def register_error_handlers(app):
    @app.errorhandler(SQLAlchemyError)
    def handle_database_error(e):
        db.session.rollback()
        logger.error(f"Database error: {e}")
        return jsonify({"success": False, "message": "Server error"}), 500

    @app.errorhandler(404)
    def handle_not_found(e):
        return jsonify({"success": False, "message": "Not found"}), 404

    @app.errorhandler(405)
    def handle_method_not_allowed(e):
        return jsonify({"success": False, "message": "Method not allowed"}), 405

    @app.errorhandler(413)
    def handle_too_large(e):
        return jsonify({"success": False, "message": "Upload too large"}), 413


def register_commands(app):
    @app.cli.command('init-db')
    def init_db_command():
        """Create all database tables."""
        db.create_all()
        click.echo('Initialized the database.')

    @app.cli.command('send-task-reminders')
    def send_task_reminders_command():
        """Run the task reminder scan now."""
        sent = app.extensions['reminder_scheduler'].trigger_task_reminders()
        click.echo(f'Sent {sent} task reminder(s).')

    @app.cli.command('send-notes-digest')
    def send_notes_digest_command():
        """Run the pinned notes digest now."""
        sent = app.extensions['reminder_scheduler'].trigger_notes_digest()
        click.echo(f'Sent {sent} notes digest(s).')


def create_app(config_class=Config):
    app = Flask(__name__)
    app.config.from_object(config_class)
    # Whole multipart request: every image at full size plus form fields
    if not app.config.get('MAX_CONTENT_LENGTH'):
        app.config['MAX_CONTENT_LENGTH'] = app.config['MAX_NOTE_IMAGES'] * app.config['MAX_IMAGE_SIZE'] + 1024 * 1024

    configure_logging(app)
    CORS(app, resources={r"/api/*": {"origins": "*"}})

    db.init_app(app)
    EmailService(app)
    app.extensions['attachment_storage'] = AttachmentStorage(
        app.config['UPLOAD_FOLDER'],
        max_files=app.config['MAX_NOTE_IMAGES'],
        max_size=app.config['MAX_IMAGE_SIZE'],
    )
    scheduler = ReminderScheduler(app)

    app.register_blueprint(api)
    register_error_handlers(app)
    register_commands(app)

    @app.route('/uploads/<path:filename>')
    def uploaded_file(filename):
        return send_from_directory(os.path.abspath(app.config['UPLOAD_FOLDER']), filename)

    with app.app_context():
        db.create_all()

    if app.config.get('SCHEDULER_ENABLED'):
        scheduler.start()

    return app


if __name__ == '__main__':
    app = create_app()
    try:
        app.run(host='0.0.0.0', port=int(os.environ.get('PORT', 5000)), debug=False)
    finally:
        app.extensions['reminder_scheduler'].shutdown()
