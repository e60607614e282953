import pytest
from fastapi.testclient import TestClient

from hipergallery.config import Settings
from hipergallery.db import RemoteStore, init_db, make_engine
from hipergallery.local_store import LocalStore
from hipergallery.main import create_app
from hipergallery.permissions import Role, SessionUser

ADMIN_EMAIL = "admin@test.art"


@pytest.fixture
def settings(tmp_path):
    return Settings(
        database_url="",
        media_root=tmp_path / "media",
        local_store_dir=tmp_path / "local",
        admin_email=ADMIN_EMAIL,
        secret_key="test-secret",
    )


@pytest.fixture
def db_settings(settings):
    settings.database_url = "sqlite://"
    return settings


@pytest.fixture
def local(tmp_path):
    return LocalStore(tmp_path / "store")


@pytest.fixture
def remote():
    engine = make_engine("sqlite://")
    init_db(engine)
    return RemoteStore(engine)


@pytest.fixture
def client(settings):
    return TestClient(create_app(settings))


@pytest.fixture
def db_client(db_settings):
    return TestClient(create_app(db_settings))


@pytest.fixture
def admin():
    return SessionUser(id="admin-1", email=ADMIN_EMAIL, name="Admin", role=Role.ADMIN)


@pytest.fixture
def artist():
    return SessionUser(id="artist-1", email="artist@test.art", name="Ada", role=Role.ARTIST)


@pytest.fixture
def viewer():
    return SessionUser(id="viewer-1", email="viewer@test.art", name="Vic", role=Role.VIEWER)
