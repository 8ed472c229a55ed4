import os
import random
import sys
import pytest

# Ensure the project root (containing the `loto` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from loto import create_app, get_session, socketio
from loto.services.session import HostSession


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    LOG_LEVEL = 'INFO'
    LANGUAGE = 'en'
    AUTO_DRAW_INTERVAL_MS = 6000
    AUTO_DRAW_MIN_MS = 2000
    AUTO_DRAW_MAX_MS = 10000
    CHAT_LOG_LIMIT = 40
    CHAT_BOTS_ENABLED = 0
    BOT_CHAT_INTERVAL_SEC = 4
    PHRASE_MODEL = ''
    CONTROLLER_DEBOUNCE_MS = 0
    SESSION_CODE = 'ABC123'
    SESSION_CODE_LENGTH = 6


class FakeChannel:
    """In-memory peer channel recording everything sent to it."""

    def __init__(self, channel_id, fail=False):
        self.id = channel_id
        self.fail = fail
        self.sent = []

    def send(self, message):
        if self.fail:
            raise ConnectionError(f"channel {self.id} is closed")
        self.sent.append(message)

    def types(self):
        return [m['type'] for m in self.sent]


class RecordingSpawner:
    """Stands in for start_background_task: keeps the task instead of running it."""

    def __init__(self):
        self.tasks = []

    def __call__(self, fn, *args):
        self.tasks.append((fn, args))

    def run_all(self):
        tasks, self.tasks = self.tasks, []
        for fn, args in tasks:
            fn(*args)


def run_inline(fn, *args):
    fn(*args)


def no_sleep(seconds):
    return None


@pytest.fixture()
def make_channel():
    return FakeChannel


@pytest.fixture()
def timers():
    return RecordingSpawner()


@pytest.fixture()
def host(timers):
    session = HostSession(code='abc123', language='en', spawn=run_inline, timer_spawn=timers,
                          sleep=no_sleep, rng=random.Random(7))
    yield session
    session.shutdown()


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        yield application
        get_session().shutdown()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def sio_factory(flask_app):
    clients = []

    def _make():
        test_client = socketio.test_client(
            flask_app,
            flask_test_client=flask_app.test_client(),
            namespace='/ws'
        )
        clients.append(test_client)
        return test_client

    yield _make
    for test_client in clients:
        try:
            if test_client.is_connected('/ws'):
                test_client.disconnect(namespace='/ws')
        except RuntimeError:
            pass


@pytest.fixture()
def sio_client(sio_factory):
    return sio_factory()
