import io
from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient

from linkvault import models
from linkvault.app import create_app
from linkvault.config import Settings
from linkvault.database import Base, make_engine, make_session_factory
from linkvault.schemas import CreateShareRequest, UploadedFile
from linkvault.shares import ShareEngine
from linkvault.storage import FileStore

ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "admin-password"


class FakeClock:
    def __init__(self, now=None):
        self.now = now or datetime(2026, 1, 1, 12, 0, 0)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def settings(tmp_path):
    return Settings(
        database_url=f"sqlite:///{tmp_path / 'linkvault.db'}",
        upload_dir=str(tmp_path / "uploads"),
        secret_key="test-secret",
        base_url="http://testserver",
        admin_email=ADMIN_EMAIL,
        admin_password=ADMIN_PASSWORD,
        cleanup_enabled=False,
        max_file_size_mb=1,
    )


@pytest.fixture
def session_factory(settings):
    engine = make_engine(settings.database_url)
    Base.metadata.create_all(bind=engine)
    yield make_session_factory(engine)
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def file_store(settings):
    store = FileStore(settings.upload_dir, settings.max_file_size_bytes)
    store.ensure_dir()
    return store


@pytest.fixture
def engine(settings, file_store, clock):
    return ShareEngine(settings, file_store, clock=clock)


def make_user(db, email, role=models.ROLE_USER, name="Tester"):
    # Engine tests never log in, so a placeholder credential is enough.
    user = models.User(name=name, email=email, password_hash="x", password_salt="y", role=role)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def owner(db):
    return make_user(db, "owner@example.com", name="Owner")


@pytest.fixture
def other_user(db):
    return make_user(db, "other@example.com", name="Other")


@pytest.fixture
def admin(db):
    return make_user(db, "boss@example.com", role=models.ROLE_ADMIN, name="Boss")


def text_request(text="secret", **kwargs):
    return CreateShareRequest(text=text, **kwargs)


def upload(content=b"hello world", filename="notes.txt", content_type="text/plain"):
    return UploadedFile(filename=filename, content_type=content_type, stream=io.BytesIO(content))


@pytest.fixture
def client(settings):
    app = create_app(settings)
    with TestClient(app) as test_client:
        yield test_client


def register(client, email, name="Tester", password="password123"):
    response = client.post("/api/auth/register", json={"name": name, "email": email, "password": password})
    assert response.status_code == 201, response.text
    return {"Authorization": f"Bearer {response.json()['token']}"}


def login(client, email, password):
    response = client.post("/api/auth/login", json={"email": email, "password": password})
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['token']}"}
