import pytest

from ctrltab import create_app, seed_admin
from ctrltab.config import TestConfig
from ctrltab.extensions import db


@pytest.fixture
def app(tmp_path):
    app = create_app(TestConfig)
    app.config["UPLOAD_FOLDER"] = str(tmp_path / "icons")
    with app.app_context():
        db.drop_all()
        db.create_all()
        seed_admin(app)
    yield app


@pytest.fixture
def client(app):
    return app.test_client()
