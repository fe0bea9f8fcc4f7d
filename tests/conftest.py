import random

import pytest

from secretsanta import create_app
from secretsanta.extensions import db


class RecordingNotifier:
    def __init__(self):
        self.sent = []
        self.fail = False

    def send(self, notification):
        if self.fail:
            raise ConnectionError("smtp down")
        self.sent.append(notification)

    def events(self):
        return [n.event for n in self.sent]


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def app(notifier):
    app = create_app({
        "TESTING": True,
        "SECRET_KEY": "test-secret",
        "SQLALCHEMY_DATABASE_URI": "sqlite://",
        "SANTA_NOTIFIER": notifier,
    })
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def rng():
    return random.Random(1234)
