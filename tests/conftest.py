import pytest

from vesitrail import create_app, db as _db
from vesitrail.config import Config
from vesitrail.models import User, UserRole
from vesitrail.services import releases


class TestConfig(Config):
    TESTING = True
    SECRET_KEY = "test"
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SQLALCHEMY_ENGINE_OPTIONS = {}
    SCHEDULER_ENABLED = False
    ALLOCATION_BACKOFF_SECONDS = 0
    GITHUB_TOKEN = None


@pytest.fixture
def app():
    app = create_app(TestConfig)
    with app.app_context():
        _db.create_all()
        yield app
        _db.session.remove()
        _db.drop_all()
    releases.clear_cache()


@pytest.fixture
def db(app):
    return _db


@pytest.fixture
def client(app):
    return app.test_client()


def _make_user(email, role, first_name, last_name):
    user = User(email=email, role=role, first_name=first_name, last_name=last_name)
    user.set_password("secret")
    _db.session.add(user)
    _db.session.commit()
    return user


@pytest.fixture
def admin(db):
    return _make_user("admin@ves.ac.in", UserRole.ADMIN, "Asha", "Rao")


@pytest.fixture
def student(db):
    return _make_user("student@ves.ac.in", UserRole.STUDENT, "Rohan", "Mehta")


@pytest.fixture
def other_student(db):
    return _make_user("other@ves.ac.in", UserRole.STUDENT, "Neha", "Iyer")


@pytest.fixture
def login(client):
    def do_login(user):
        response = client.post("/auth/login", json={"email": user.email, "password": "secret"})
        assert response.status_code == 200
        return response
    return do_login
