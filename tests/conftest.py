"""Pytest configuration and fixtures."""

import asyncio
import os
import tempfile

# Settings are read at import time, so the environment must be in place first.
os.environ["JWT_SECRET"] = "test-secret"
os.environ["DATABASE_URL"] = f"sqlite:///{tempfile.mkdtemp()}/juicebot.db"
os.environ["WHATSAPP_VERIFY_TOKEN"] = "verify-me"
os.environ["WHATSAPP_ACCESS_TOKEN"] = ""
os.environ["WHATSAPP_PHONE_NUMBER_ID"] = ""
os.environ["WHATSAPP_APP_SECRET"] = ""
os.environ["ADMIN_USERNAME"] = "admin"
os.environ["ADMIN_PASSWORD"] = "s3cret"
os.environ["ENVIRONMENT"] = "test"

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

from app.dependencies import get_db_path, get_whatsapp_client
from app.main import app
from app.models import catalog
from app.models.database import init_db
from app.security import create_access_token


class FakeWhatsApp:
    """Records outbound replies instead of calling the Cloud API."""

    configured = True

    def __init__(self):
        self.sent: list[tuple[str, str]] = []

    async def send_text(self, to: str, body: str):
        self.sent.append((to, body))
        return {"messages": [{"id": f"wamid.out{len(self.sent)}"}]}

    async def close(self):
        pass


@pytest.fixture
def db_path(tmp_path):
    path = str(tmp_path / "test.db")
    asyncio.run(init_db(path))
    return path


@pytest.fixture
def whatsapp():
    return FakeWhatsApp()


@pytest.fixture
def client(db_path, whatsapp):
    app.dependency_overrides[get_db_path] = lambda: db_path
    app.dependency_overrides[get_whatsapp_client] = lambda: whatsapp
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    return {"Authorization": f"Bearer {create_access_token('admin')}"}


async def seed_catalog(db_path: str) -> dict:
    """Two categories, three products; returns their ids by name."""
    citrus = await catalog.create_category(db_path, "Citrus", "Citrus juices")
    green = await catalog.create_category(db_path, "Green", "Green blends")
    orange = await catalog.create_product(
        db_path, "Orange Juice", 3.5, citrus["id"], "Freshly squeezed", ["orange"]
    )
    lemonade = await catalog.create_product(
        db_path, "Mint Lemonade", 4.0, citrus["id"], None, ["lemon", "mint", "sugar"]
    )
    kale = await catalog.create_product(
        db_path, "Kale Kick", 5.25, green["id"], None, ["kale", "apple", "ginger"]
    )
    return {
        "Citrus": citrus["id"],
        "Green": green["id"],
        "Orange Juice": orange["id"],
        "Mint Lemonade": lemonade["id"],
        "Kale Kick": kale["id"],
    }


@pytest.fixture
def seeded(db_path):
    return asyncio.run(seed_catalog(db_path))


# Async tests get their own fixtures so the database is created on the test's loop.

@pytest_asyncio.fixture
async def async_db_path(tmp_path):
    path = str(tmp_path / "async.db")
    await init_db(path)
    return path


@pytest_asyncio.fixture
async def async_seeded(async_db_path):
    return await seed_catalog(async_db_path)
