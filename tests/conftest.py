import pytest

from app import create_app
from config import TestConfig
from models import db

from .fakes import FakeMailer


@pytest.fixture()
def mailer():
    return FakeMailer()


@pytest.fixture()
def app(tmp_path, mailer):
    """App on a fresh in-memory database with uploads under tmp_path."""
    class _Config(TestConfig):
        UPLOAD_FOLDER = str(tmp_path / 'uploads')

    app = create_app(_Config)
    app.extensions['mailer'] = mailer
    yield app

    app.extensions['reminder_scheduler'].shutdown()
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(app):
    return app.test_client()


def register(client, name='Ada', email='ada@example.com', password='secret123'):
    response = client.post('/api/auth/register', json={
        "name": name,
        "email": email,
        "password": password,
    })
    assert response.status_code == 201, response.get_json()
    return response.get_json()


@pytest.fixture()
def auth_headers(client):
    token = register(client)['token']
    return {"Authorization": f"Bearer {token}"}
