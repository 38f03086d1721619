import os


def _env_bool(name, default=False):
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


class Config:
    SECRET_KEY = os.environ.get('SESSION_SECRET', 'dev-key-placeholder')
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL', 'sqlite:///tasks.db')
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')

    # Bearer tokens
    JWT_SECRET = os.environ.get('JWT_SECRET', 'dev-jwt-secret-placeholder-change-me')
    JWT_EXPIRES_DAYS = int(os.environ.get('JWT_EXPIRES_DAYS', 7))

    # Note attachments
    UPLOAD_FOLDER = os.environ.get('UPLOAD_FOLDER', 'uploads')
    MAX_NOTE_IMAGES = 5
    MAX_IMAGE_SIZE = 5 * 1024 * 1024

    # Outbound email
    MAIL_SERVER = os.environ.get('MAIL_SERVER', 'smtp.gmail.com')
    MAIL_PORT = int(os.environ.get('MAIL_PORT', 587))
    MAIL_USE_TLS = _env_bool('MAIL_USE_TLS', True)
    MAIL_USERNAME = os.environ.get('EMAIL_USER')
    MAIL_PASSWORD = os.environ.get('EMAIL_PASSWORD')
    MAIL_SENDER = os.environ.get('MAIL_SENDER', 'Task Manager')
    MAIL_TIMEOUT = int(os.environ.get('MAIL_TIMEOUT', 30))
    MAIL_ENABLED = _env_bool('MAIL_ENABLED', True)
    APP_URL = os.environ.get('APP_URL', 'http://localhost:5173')

    # Reminder scheduler
    SCHEDULER_ENABLED = _env_bool('SCHEDULER_ENABLED', True)
    SCHEDULER_TIMEZONE = os.environ.get('SCHEDULER_TIMEZONE')
    TASK_REMINDER_HOUR = int(os.environ.get('TASK_REMINDER_HOUR', 9))
    NOTES_DIGEST_HOUR = int(os.environ.get('NOTES_DIGEST_HOUR', 8))
    NOTES_DIGEST_LIMIT = 5


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    JWT_SECRET = 'test-jwt-secret-with-enough-bytes-for-hs256'
    SCHEDULER_ENABLED = False
    MAIL_ENABLED = False
