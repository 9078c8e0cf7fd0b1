import asyncio
import os

# settings are read once at import time
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("ADMIN_TOKEN", "test-admin-token")
os.environ["RATE_LIMIT_SEND"] = "10000/minute"
os.environ["RATE_LIMIT_HEALTH"] = "10000/minute"
os.environ["METRICS_ENABLED"] = "false"
os.environ.pop("REDIS_URL", None)

import pytest
from fastapi.testclient import TestClient

from chatcore.core.settings import settings
from chatcore.db.session import Database
from chatcore.main import create_app
from chatcore.services.auth import create_access_token


@pytest.fixture
def db(tmp_path):
    """A fresh file-backed database with the schema created."""
    database = Database(f"sqlite+aiosqlite:///{tmp_path}/store.db")
    asyncio.run(database.create_all())
    yield database
    asyncio.run(database.dispose())


@pytest.fixture
def app(tmp_path):
    return create_app(settings.model_copy(update={"database_url": f"sqlite+aiosqlite:///{tmp_path}/chat.db"}))


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


def token_for(sub: str, name: str | None = None, picture: str | None = None, email: str | None = None) -> str:
    return create_access_token(sub, name=name, picture=picture, email=email)


def auth(sub: str, name: str | None = None) -> dict:
    return {"Authorization": f"Bearer {token_for(sub, name=name)}"}


ADMIN = {"X-Admin-Token": settings.admin_token}
