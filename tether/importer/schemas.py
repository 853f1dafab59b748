"""Pydantic schemas for the import API."""

from pydantic import BaseModel

from tether.models import ExportKind


class ExportLocation(BaseModel):
    path: str
    kind: ExportKind | None = None


class DiscoveredExport(BaseModel):
    kind: ExportKind
    path: str
