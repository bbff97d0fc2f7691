import os
import sys
import pytest

# Ensure the backend root (containing the `quizflow` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from quizflow import create_app, db, socketio
from quizflow.models import Question, User, seed_demo_quiz


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    BCRYPT_LOG_ROUNDS = 4
    DEFAULT_SHOW_QUESTION_TIME = 10
    DEFAULT_ANSWERING_TIME = 30
    DEFAULT_EXPLANATION_TIME = 10
    LEADERBOARD_LIMIT = 100
    COUNTDOWN_LEAD_MS = 3000
    GAME_CODE_ATTEMPTS = 5
    CORS_ORIGINS = ['http://localhost:5173']
    LOG_LEVEL = 'DEBUG'


class RecordingBroadcaster:
    """Stands in for the Socket.IO server and keeps every emitted event."""

    def __init__(self):
        self.events = []

    def emit(self, game_id, event, payload):
        self.events.append((game_id, event, payload))

    def named(self, event):
        return [payload for (_, name, payload) in self.events if name == event]


class FailingBroadcaster:
    def emit(self, game_id, event, payload):
        raise RuntimeError('socket server unavailable')


@pytest.fixture()
def recorder():
    return RecordingBroadcaster()


@pytest.fixture()
def flask_app(recorder):
    # The app context is not held across requests so each request loads its own user
    application = create_app(TestConfig, broadcaster=recorder)
    with application.app_context():
        import quizflow.models  # noqa: F401
        db.create_all()
    yield application
    with application.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


def make_user(flask_app, username, password='password'):
    with flask_app.app_context():
        user = User(username=username)
        user.set_password(password)
        db.session.add(user)
        db.session.commit()
        return user.id


def login(client, username, password='password'):
    res = client.post('/login', json={'username': username, 'password': password})
    assert res.status_code == 200
    return client


@pytest.fixture()
def host_id(flask_app):
    return make_user(flask_app, 'host')


@pytest.fixture()
def host_client(flask_app, host_id):
    return login(flask_app.test_client(), 'host')


@pytest.fixture()
def quiz(flask_app, host_id):
    """Three-question quiz; each question has answers A-D with A correct."""
    with flask_app.app_context():
        quiz_set = seed_demo_quiz(db.session.get(User, host_id))
        return {
            'id': quiz_set.id,
            'questions': [
                {'id': q.id, 'answers': {a.answer_text: a.id for a in q.answers}}
                for q in Question.ordered_for_quiz(quiz_set.id)
            ],
        }


@pytest.fixture()
def game(host_client, quiz):
    res = host_client.post('/games', json={'quiz_set_id': quiz['id']})
    assert res.status_code == 201
    return res.get_json()['game']


@pytest.fixture()
def started_game(host_client, game):
    res = host_client.post(f"/games/{game['id']}/start")
    assert res.status_code == 200
    return game


def join(client, game_id, name, device_id=None):
    res = client.post(f'/games/{game_id}/players', json={
        'player_name': name,
        'device_id': device_id or f'device-{name.lower()}',
    })
    assert res.status_code == 201
    return res.get_json()


@pytest.fixture()
def sio_client(flask_app):
    test_client = socketio.test_client(
        flask_app,
        flask_test_client=flask_app.test_client(),
        namespace='/ws'
    )
    yield test_client
    if test_client.is_connected('/ws'):
        test_client.disconnect(namespace='/ws')
