"""Shared pytest fixtures for Tether tests."""

import pytest
from httpx import ASGITransport, AsyncClient

from tether.chat.continuity import ContinuityManager
from tether.chat.router import get_chat_controller, get_vault_storage
from tether.chat.service import ChatController
from tether.db.connection import Database
from tether.importer.router import get_import_service
from tether.importer.service import ImportService
from tether.main import app
from tether.storage.vault import VaultStorage
from tests.fixtures import FIXED_NOW, FakeBackend


@pytest.fixture
async def db():
    """In-memory database for tests."""
    database = await Database.connect(":memory:")
    yield database
    await database.close()


@pytest.fixture
async def storage(db, tmp_path):
    """VaultStorage rooted in a temporary vault folder."""
    return VaultStorage(tmp_path / "vault", db)


@pytest.fixture
async def import_service(storage):
    """ImportService with a fixed reference time."""
    return ImportService(storage, clock=lambda: FIXED_NOW)


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
async def continuity(storage, backend):
    return ContinuityManager(storage, backend)


@pytest.fixture
async def controller(backend, continuity):
    return ChatController(backend, continuity)


@pytest.fixture
async def client(storage, controller, import_service):
    """Async test client with in-memory services wired into the app."""
    app.dependency_overrides[get_vault_storage] = lambda: storage
    app.dependency_overrides[get_chat_controller] = lambda: controller
    app.dependency_overrides[get_import_service] = lambda: import_service
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client
    app.dependency_overrides.clear()
