import pytest

from engagement import create_app
from engagement.extensions import db
from engagement.services.registry import get_services
from engagement.utils.jwt_utils import create_system_token


@pytest.fixture()
def app(tmp_path):
    app = create_app({
        "TESTING": True,
        "SECRET_KEY": "test-secret-key-0123456789",
        "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
        "LEADERBOARD_ARTIFACT_DIR": str(tmp_path / "leaderboards"),
    })
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def services(app):
    return get_services()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def system_headers(app):
    return {"Authorization": f"Bearer {create_system_token('course-service')}"}
