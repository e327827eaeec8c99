import os

# configure an isolated in-memory database before spacio reads its settings
os.environ["SPACIO_DATABASE_URL"] = "sqlite://"
os.environ["GOOGLE_API_KEY"] = ""
os.environ["SPACIO_SEED_ROOMS"] = "true"
os.environ["SPACIO_ADMIN_EMAIL"] = ""
os.environ["SPACIO_ADMIN_PASSWORD"] = ""

from datetime import date

import pytest
from fastapi.testclient import TestClient
from langchain_core.messages import AIMessage

from spacio import auth
from spacio.config import Settings, get_settings
from spacio.database import Base, SessionLocal, engine, init_db
from spacio.gemini_client import GeminiClient


MEETING_DAY = date(2030, 1, 15)


class FakeChatModel:
    """Stands in for ChatGoogleGenerativeAI; replays canned replies or raises queued errors."""

    def __init__(self, replies=None):
        self.replies = list(replies or [])
        self.prompts = []

    def invoke(self, prompt):
        self.prompts.append(prompt)
        reply = self.replies.pop(0) if self.replies else '{"message": "OK", "action": "continue"}'
        if isinstance(reply, Exception):
            raise reply
        return AIMessage(content=reply)


@pytest.fixture
def settings():
    return Settings()


@pytest.fixture
def db():
    Base.metadata.drop_all(bind=engine)
    init_db()
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def user(db):
    return auth.register(db, "alice", "alice@example.com", "secret123", full_name="Alice Tan")


@pytest.fixture
def other_user(db):
    return auth.register(db, "bob", "bob@example.com", "secret123", full_name="Bob Lim")


@pytest.fixture
def admin(db):
    return auth.register(db, "admin", "admin@example.com", "adminpass", full_name="Administrator", role="admin")


@pytest.fixture
def fake_llm():
    return FakeChatModel()


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def gemini(settings, fake_llm, sleeps):
    return GeminiClient(settings=settings, llm=fake_llm, sleep=sleeps.append)


@pytest.fixture
def offline_gemini(settings):
    return GeminiClient(settings=settings)


@pytest.fixture
def upload_dir(tmp_path, monkeypatch):
    monkeypatch.setattr(get_settings(), "rispat_upload_dir", str(tmp_path / "rispat"))
    return tmp_path / "rispat"


@pytest.fixture
def api(db, offline_gemini, upload_dir):
    from spacio.main import app
    from spacio.routers.assistant import get_gemini_client

    app.dependency_overrides[get_gemini_client] = lambda: offline_gemini
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def login_headers(api, email, password):
    response = api.post("/api/auth/login", json={"email": email, "password": password})
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['data']['session_token']}"}


@pytest.fixture
def alice_headers(api, user):
    return login_headers(api, "alice@example.com", "secret123")


@pytest.fixture
def bob_headers(api, other_user):
    return login_headers(api, "bob@example.com", "secret123")


@pytest.fixture
def admin_headers(api, admin):
    return login_headers(api, "admin@example.com", "adminpass")
