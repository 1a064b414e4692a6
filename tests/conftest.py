import pytest

from familytree import create_app, db


@pytest.fixture
def app():
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite://',
        'LOG_LEVEL': 'WARNING',
    })
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


def member(member_id, **fields):
    data = {'id': member_id, 'name': f'Member {member_id}', 'gender': 'other', 'generation': 1}
    data.update(fields)
    return data


@pytest.fixture
def couple_with_child():
    """1 and 2 married to each other, 3 their child"""
    return [
        member(1, gender='male', spouse_id=2),
        member(2, gender='female', spouse_id=1),
        member(3, generation=2, father_id=1, mother_id=2),
    ]


class FakeTimer:
    def __init__(self, delay, callback):
        self.delay = delay
        self.callback = callback
        self.started = False
        self.cancelled = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        self.callback()


@pytest.fixture
def timers():
    created = []

    def factory(delay, callback):
        timer = FakeTimer(delay, callback)
        created.append(timer)
        return timer

    factory.created = created
    return factory
