import os

# point the engine at a shared in-memory database before the package is imported
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ENV", "dev")

import pytest
from sqlmodel import Session

from studytrack import services
from studytrack.auth import AuthContext
from studytrack.database import engine, create_db_and_tables, drop_db_and_tables


@pytest.fixture(autouse=True)
def reset_db():
    """Give every test an empty schema."""
    drop_db_and_tables()
    create_db_and_tables()
    yield


@pytest.fixture
def session():
    with Session(engine) as s:
        yield s


def _provision(session, external_id, name):
    services.UserService(session).create_user({
        'external_id': external_id,
        'name': name,
        'email': f'{name.lower()}@example.com',
    })
    return AuthContext(external_id=external_id, name=name, email=f'{name.lower()}@example.com')


@pytest.fixture
def alice(session):
    """An existing user with no subjects."""
    return _provision(session, 'user_alice', 'Alice')


@pytest.fixture
def bob(session):
    return _provision(session, 'user_bob', 'Bob')


@pytest.fixture
def alice_subject(session, alice):
    return services.SubjectService(session).create_subject(alice, {
        'name': 'Control Systems', 'progress': 10, 'status': 'weak', 'weightage': 12,
    })


@pytest.fixture
def bob_subject(session, bob):
    return services.SubjectService(session).create_subject(bob, {
        'name': 'Network Theory', 'progress': 0, 'status': 'pending', 'weightage': 5,
    })
