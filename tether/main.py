"""Tether FastAPI application entry point."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from tether.backends.http import HttpBackend
from tether.chat.continuity import ContinuityManager
from tether.chat.router import get_chat_controller, get_vault_storage
from tether.chat.router import router as chat_router
from tether.chat.service import ChatController
from tether.config import Settings
from tether.db.connection import Database
from tether.importer.router import get_import_service
from tether.importer.router import router as import_router
from tether.importer.service import ImportService
from tether.storage.vault import VaultStorage


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage database and backend client lifecycle and service wiring."""
    settings = Settings.from_env()
    logging.basicConfig(level=settings.log_level)

    settings.index_path.parent.mkdir(parents=True, exist_ok=True)
    db = await Database.connect(str(settings.index_path))

    storage = VaultStorage(settings.vault_path, db)
    app.dependency_overrides[get_vault_storage] = lambda: storage

    backend = HttpBackend(
        settings.backend_url,
        request_timeout=settings.request_timeout,
        stream_timeout=settings.stream_timeout,
    )

    # Chat controller: one bound session per process
    continuity = ContinuityManager(storage, backend)
    controller = ChatController(backend, continuity)
    app.dependency_overrides[get_chat_controller] = lambda: controller

    # Import service
    import_svc = ImportService(storage, archived_default=settings.import_archived)
    app.dependency_overrides[get_import_service] = lambda: import_svc

    app.state.db = db
    app.state.settings = settings
    yield

    await controller.abort()
    await backend.aclose()
    await db.close()


app = FastAPI(
    title="Tether",
    description=(
        "Session continuity for a remote agent backend: streaming exchanges,"
        " resume and recovery, and import of Claude and ChatGPT exports"
    ),
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173"],
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(chat_router)
app.include_router(import_router)


@app.get("/api/health")
async def health() -> dict:
    return {"status": "ok", "version": "0.1.0"}
