"""
Pytest configuration: temporary metadata stores, a fake Telegram API and an app client.
"""
import io

import pytest
from fastapi.testclient import TestClient
from PIL import Image

from dal.folder_dal import FolderDAL
from dal.image_dal import ImageDAL
from dal.kv_store import KVStore
from main import create_app
from tests.fake_telegram import BOT_TOKEN, CHANNEL_ID, FakeTelegram
from utils.database_init import AsyncDatabaseInitializer
from utils.settings import Settings

ADMIN_PASSWORD = "correct-horse"
JWT_SECRET = "test-signing-secret"


class FakeClock:
    """Wall clock the tests can move forward."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_png(width: int = 8, height: int = 6, padding: int = 0) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (width, height), color=(200, 30, 30)).save(buf, format="PNG")
    return buf.getvalue() + b"\0" * padding


@pytest.fixture
def db_initializer(tmp_path):
    return AsyncDatabaseInitializer(tmp_path / "db")


@pytest.fixture
def kv(db_initializer):
    return KVStore(db_initializer)


@pytest.fixture
def image_dal(kv):
    return ImageDAL(kv)


@pytest.fixture
def folder_dal(kv):
    return FolderDAL(kv)


@pytest.fixture
def fake_telegram():
    return FakeTelegram(CHANNEL_ID)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings(tmp_path):
    return Settings(
        database_dir=str(tmp_path / "app-db"),
        admin_username="admin",
        admin_password=ADMIN_PASSWORD,
        jwt_secret=JWT_SECRET,
        telegram_bot_token=BOT_TOKEN,
        telegram_chat_id=CHANNEL_ID,
    )


@pytest.fixture
def client(settings, fake_telegram, clock):
    """FastAPI test client with the lifespan running."""
    app = create_app(settings=settings, telegram_transport=fake_telegram.transport, clock=clock)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def admin_headers(client):
    response = client.post("/admin-login", json={"username": "admin", "password": ADMIN_PASSWORD})
    assert response.status_code == 200
    return {"Authorization": f"Bearer {response.json()['token']}"}
