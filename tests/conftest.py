import os

os.environ['DATABASE_URL'] = 'sqlite:///:memory:'
os.environ['BOOTSTRAP_JOBS_ON_IMPORT'] = '0'
os.environ['ENABLE_TIMER_JOBS'] = '0'
os.environ['API_SHARED_KEY'] = 'test-shared-key'

import pytest

from app import app as flask_app, db


@pytest.fixture
def app():
    flask_app.config['TESTING'] = True
    with flask_app.app_context():
        db.drop_all()
        db.create_all()
        yield flask_app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


def register(client, username='alice', password='password123'):
    resp = client.post('/api/register', json={'username': username, 'password': password})
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()['user']


@pytest.fixture
def user(client):
    return register(client)


@pytest.fixture
def other_client(app):
    other = app.test_client()
    register(other, username='bob')
    return other
