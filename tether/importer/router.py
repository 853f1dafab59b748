"""Import API routes."""

import logging
from collections.abc import AsyncIterator
from pathlib import Path

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import StreamingResponse

from tether.errors import ExportNotFoundError
from tether.importer.parsers.detection import discover_exports
from tether.importer.schemas import DiscoveredExport, ExportLocation
from tether.importer.service import ImportService
from tether.models import ExportKind, ImportProgress, ImportScanResult

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/import", tags=["import"])


def get_import_service() -> ImportService:
    """Dependency placeholder, overridden at startup."""
    raise RuntimeError("ImportService not configured")


def _resolve(location: ExportLocation) -> Path:
    path = Path(location.path).expanduser()
    if not path.is_dir():
        raise HTTPException(status_code=404, detail=f"Export not found: {location.path}")
    return path


@router.post("/scan")
async def scan_export(
    location: ExportLocation,
    service: ImportService = Depends(get_import_service),
) -> ImportScanResult:
    """Count conversations and memory data in an export without importing."""
    path = _resolve(location)
    try:
        return await service.scan(path, location.kind)
    except ExportNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e


@router.post("")
async def import_export(
    location: ExportLocation,
    service: ImportService = Depends(get_import_service),
) -> StreamingResponse:
    """Import an export, streaming progress updates and then the result."""
    path = _resolve(location)
    return StreamingResponse(
        _stream_import(service, path, location.kind),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@router.get("/exports")
async def list_exports(path: str = Query(...)) -> list[DiscoveredExport]:
    """Recognizable exports in the folders directly under ``path``."""
    return [
        DiscoveredExport(kind=kind, path=str(found))
        for kind, found in discover_exports(Path(path).expanduser())
    ]


async def _stream_import(
    service: ImportService, path: Path, kind: ExportKind | None
) -> AsyncIterator[str]:
    """Async generator that yields SSE-formatted progress and result events."""
    try:
        async for update in service.import_export(path, kind):
            event = "progress" if isinstance(update, ImportProgress) else "result"
            yield f"event: {event}\ndata: {update.model_dump_json()}\n\n"
    except Exception as e:
        logger.exception("Import of %s failed", path)
        error = ImportProgress(current_title="Error", phase="error", error=str(e))
        yield f"event: error\ndata: {error.model_dump_json()}\n\n"
