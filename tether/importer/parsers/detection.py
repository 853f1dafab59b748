"""Detect which service produced an export folder."""

import json
import logging
from pathlib import Path
from typing import Any

from tether.errors import UnknownExportError
from tether.models import ExportKind

logger = logging.getLogger(__name__)


def detect_format(data: Any) -> ExportKind:
    """Detect export kind from parsed conversations.json content.

    Raises UnknownExportError for unrecognized structures.
    """
    if isinstance(data, dict):
        data = [data]

    if isinstance(data, list) and len(data) > 0:
        first = data[0]
        if isinstance(first, dict):
            if "mapping" in first:
                return "chatgpt"
            if "chat_messages" in first:
                return "claude"

    if isinstance(data, list) and len(data) == 0:
        raise UnknownExportError("Empty array, nothing to import")

    raise UnknownExportError("Unrecognized format")


def detect_export_kind(path: Path) -> ExportKind:
    """Detect the export kind of a folder from the files it contains.

    Only Claude exports ship memories.json or projects.json. Otherwise the
    shape of conversations.json decides; an empty ChatGPT-looking folder
    defaults to ChatGPT.
    """
    if not path.is_dir():
        raise UnknownExportError(f"Not a folder: {path}")
    if (path / "memories.json").is_file() or (path / "projects.json").is_file():
        return "claude"

    conversations = path / "conversations.json"
    if not conversations.is_file():
        raise UnknownExportError(f"No conversations.json in {path}")
    try:
        with open(conversations, encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        raise UnknownExportError(f"Unreadable conversations.json in {path}: {e}") from e

    if isinstance(data, list) and len(data) == 0:
        return "chatgpt"
    return detect_format(data)


def discover_exports(imports_dir: Path) -> list[tuple[ExportKind, Path]]:
    """List the recognizable exports directly under ``imports_dir``.

    Claude exports come first, then ChatGPT; each group sorted by folder name.
    """
    if not imports_dir.is_dir():
        return []

    found: list[tuple[ExportKind, Path]] = []
    for child in sorted(imports_dir.iterdir()):
        if not child.is_dir() or child.name.startswith("."):
            continue
        try:
            found.append((detect_export_kind(child), child))
        except UnknownExportError as e:
            logger.debug("Skipping %s: %s", child, e)
    found.sort(key=lambda item: 0 if item[0] == "claude" else 1)
    return found
