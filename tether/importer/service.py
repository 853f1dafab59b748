"""ImportService: scans export folders and turns their conversations into artifacts."""

import json
import logging
from collections.abc import AsyncIterator, Callable
from datetime import datetime
from pathlib import Path
from typing import Any

from tether.errors import (
    ArtifactExistsError,
    ExportNotFoundError,
    MalformedExportError,
    UnknownExportError,
)
from tether.importer.context import chatgpt_context_file, claude_context_files
from tether.importer.models import (
    ChatGPTConversation,
    ClaudeConversation,
    ClaudeMemory,
    ClaudeProject,
    ParsedConversation,
)
from tether.importer.parsers.chatgpt import find_user_context, parse_chatgpt_conversation
from tether.importer.parsers.claude import parse_claude_conversation
from tether.importer.parsers.detection import detect_export_kind
from tether.models import (
    ExportKind,
    ImportFailure,
    ImportProgress,
    ImportResult,
    ImportScanResult,
    Session,
    import_identity,
    source_for_kind,
)
from tether.storage.vault import VaultStorage, is_valid_artifact_id
from tether.utils.timestamps import from_epoch, parse_iso, utcnow

logger = logging.getLogger(__name__)

_MEMORY_PREVIEW_CHARS = 200
# Folders that cannot be told apart are treated as ChatGPT exports
_DEFAULT_KIND: ExportKind = "chatgpt"


def _preview(text: str) -> str:
    if len(text) > _MEMORY_PREVIEW_CHARS:
        return f"{text[:_MEMORY_PREVIEW_CHARS]}..."
    return text


def _raw_title(raw: Any) -> str:
    if isinstance(raw, dict):
        for key in ("name", "title"):
            value = raw.get(key)
            if isinstance(value, str) and value:
                return value
    return "Untitled conversation"


class ImportService:
    def __init__(
        self,
        storage: VaultStorage,
        *,
        archived_default: bool = True,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._storage = storage
        self._archived_default = archived_default
        self._clock = clock

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def scan(self, export_path: Path, kind: ExportKind | None = None) -> ImportScanResult:
        """Count what an export holds without writing anything.

        A missing folder raises ExportNotFoundError. Anything unreadable or
        unrecognizable inside it degrades to an empty result.
        """
        if not export_path.is_dir():
            raise ExportNotFoundError(str(export_path))
        if kind is None:
            try:
                kind = detect_export_kind(export_path)
            except UnknownExportError as e:
                logger.warning("Could not detect export at %s: %s", export_path, e)
                return ImportScanResult.empty(_DEFAULT_KIND)

        try:
            if kind == "claude":
                return await self._scan_claude(export_path)
            return await self._scan_chatgpt(export_path)
        except (MalformedExportError, ExportNotFoundError, OSError) as e:
            logger.warning("Could not scan %s export at %s: %s", kind, export_path, e)
            return ImportScanResult.empty(kind)

    async def import_export(
        self, export_path: Path, kind: ExportKind | None = None
    ) -> AsyncIterator[ImportProgress | ImportResult]:
        """Import every non-empty conversation of an export.

        Yields ImportProgress updates (scanning, one importing update per
        conversation in source order, complete) and finally the ImportResult.
        Conversations already imported are skipped; a failing conversation is
        recorded and the batch continues.
        """
        if not export_path.is_dir():
            raise ExportNotFoundError(str(export_path))
        result = ImportResult()

        conversations_file = export_path / "conversations.json"
        if not conversations_file.is_file():
            yield ImportProgress(
                current_title="Error", phase="error", error="conversations.json not found"
            )
            yield result
            return
        if kind is None:
            try:
                kind = detect_export_kind(export_path)
            except UnknownExportError as e:
                yield ImportProgress(current_title="Error", phase="error", error=str(e))
                yield result
                return

        yield ImportProgress(current_title="Reading export...", phase="scanning")

        try:
            data = await self._load_list(conversations_file)
        except MalformedExportError as e:
            yield ImportProgress(current_title="Error", phase="error", error=str(e))
            yield result
            return

        reference_time = self._clock()
        entries = self._parse_all(kind, data, reference_time)
        total = len(entries)

        for i, (title, parsed) in enumerate(entries):
            yield ImportProgress(
                current_title=title, processed=i, total=total, phase="importing"
            )
            if isinstance(parsed, Exception):
                result.failures.append(ImportFailure(title=title, error=str(parsed)))
                continue
            try:
                await self._import_conversation(parsed, reference_time, result)
            except Exception as e:
                logger.warning("Failed to import %r: %s", title, e)
                artifact_id = import_identity(kind, parsed.source_id) if parsed.source_id else None
                if artifact_id and not is_valid_artifact_id(artifact_id):
                    artifact_id = None
                result.failures.append(ImportFailure(
                    title=title,
                    artifact_id=artifact_id,
                    error=str(e),
                ))

        await self._extract_context(kind, export_path, data, result)

        yield ImportProgress(
            current_title="Complete", processed=total, total=total, phase="complete"
        )
        logger.info(
            "Imported %d %s conversations (%d skipped, %d failed, %d context files)",
            result.conversations_imported,
            kind,
            len(result.skipped),
            len(result.failures),
            result.context_files_created,
        )
        yield result

    # ------------------------------------------------------------------
    # Scanning
    # ------------------------------------------------------------------

    async def _scan_claude(self, export_path: Path) -> ImportScanResult:
        raw = await self._load_list(export_path / "conversations.json")
        conversations = [self._validate(ClaudeConversation, c) for c in raw]
        non_empty = [c for c in conversations if c.chat_messages]
        dates = [d for d in (parse_iso(c.created_at) for c in non_empty) if d is not None]

        memories = await self._load_models(export_path / "memories.json", ClaudeMemory)
        memory_text = memories[0].conversations_memory if memories else None
        projects = await self._load_models(export_path / "projects.json", ClaudeProject)

        return ImportScanResult(
            source="claude",
            conversation_count=len(conversations),
            non_empty_count=len(non_empty),
            has_memories=bool(memory_text),
            memory_preview=_preview(memory_text) if memory_text else None,
            project_count=len(projects),
            project_names=[p.name for p in projects if p.name],
            oldest_date=min(dates) if dates else None,
            newest_date=max(dates) if dates else None,
        )

    async def _scan_chatgpt(self, export_path: Path) -> ImportScanResult:
        raw = await self._load_list(export_path / "conversations.json")
        conversations = [self._validate(ChatGPTConversation, c) for c in raw]
        reference_time = self._clock()

        non_empty = [
            c for c in conversations
            if parse_chatgpt_conversation(c, reference_time) is not None
        ]
        dates = [d for d in (from_epoch(c.create_time) for c in non_empty) if d is not None]
        user_context = next(
            (ctx for ctx in map(find_user_context, conversations) if ctx is not None), None
        )

        return ImportScanResult(
            source="chatgpt",
            conversation_count=len(conversations),
            non_empty_count=len(non_empty),
            has_memories=user_context is not None,
            memory_preview=_preview(user_context[0]) if user_context else None,
            oldest_date=min(dates) if dates else None,
            newest_date=max(dates) if dates else None,
        )

    # ------------------------------------------------------------------
    # Importing
    # ------------------------------------------------------------------

    def _parse_all(
        self, kind: ExportKind, data: list, reference_time: datetime
    ) -> list[tuple[str, ParsedConversation | Exception]]:
        """Parse in source order, keeping failures and dropping empty conversations."""
        parse = parse_claude_conversation if kind == "claude" else parse_chatgpt_conversation
        entries: list[tuple[str, ParsedConversation | Exception]] = []
        for raw in data:
            if not isinstance(raw, dict):
                entries.append(("Untitled conversation", MalformedExportError("Not an object")))
                continue
            try:
                parsed = parse(raw, reference_time)
            except ValueError as e:
                entries.append((_raw_title(raw), MalformedExportError(str(e))))
                continue
            if parsed is not None:
                entries.append((parsed.title, parsed))
        return entries

    async def _import_conversation(
        self, parsed: ParsedConversation, imported_at: datetime, result: ImportResult
    ) -> None:
        if not parsed.source_id:
            raise MalformedExportError("Conversation has no id")
        artifact_id = import_identity(parsed.kind, parsed.source_id)
        if not is_valid_artifact_id(artifact_id):
            raise MalformedExportError(f"Unusable conversation id: {parsed.source_id!r}")

        if await self._storage.exists(artifact_id):
            await self._storage.restore_pointer(artifact_id)
            logger.debug("Already imported: %s", artifact_id)
            result.skipped.append(artifact_id)
            return

        created_at = parsed.created_at or parsed.messages[0].timestamp or imported_at
        session = Session(
            session_id=artifact_id,
            title=parsed.title,
            source=source_for_kind(parsed.kind),
            content_owner="local",
            source_id=parsed.source_id,
            artifact_id=artifact_id,
            summary=parsed.summary,
            archived=self._archived_default or parsed.archived_in_source,
            created_at=created_at,
            last_accessed=parsed.updated_at or created_at,
            imported_at=imported_at,
        )
        try:
            await self._storage.write_session(session, parsed.messages)
        except ArtifactExistsError:
            # Another import published the same conversation first
            result.skipped.append(artifact_id)
            return

        result.conversations_imported += 1
        result.created_artifacts.append(artifact_id)

    async def _extract_context(
        self, kind: ExportKind, export_path: Path, data: list, result: ImportResult
    ) -> None:
        """Write context files from the export's memory data. Never overwrites."""
        try:
            if kind == "claude":
                memories = await self._load_models(export_path / "memories.json", ClaudeMemory)
                projects = await self._load_models(export_path / "projects.json", ClaudeProject)
                files = claude_context_files(memories, projects)
            else:
                files = []
                for raw in data:
                    try:
                        conv = ChatGPTConversation.model_validate(raw)
                    except ValueError:
                        continue
                    user_context = find_user_context(conv)
                    if user_context is not None:
                        files = [chatgpt_context_file(*user_context)]
                        break
        except (MalformedExportError, OSError) as e:
            logger.warning("Skipping context extraction for %s: %s", export_path, e)
            return

        for name, content in files:
            if await self._storage.write_context_file(name, content):
                result.context_files_created += 1
                result.created_artifacts.append(name)

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def _load_json(self, path: Path) -> Any:
        text = await self._storage.read_raw_export_file(path)
        try:
            return json.loads(text)
        except ValueError as e:
            raise MalformedExportError(f"Invalid JSON in {path.name}: {e}") from e

    async def _load_list(self, path: Path) -> list:
        data = await self._load_json(path)
        if not isinstance(data, list):
            raise MalformedExportError(f"Expected a list in {path.name}")
        return data

    async def _load_models(self, path: Path, model: type) -> list:
        """Optional export file as a list of models; missing file is an empty list."""
        if not path.is_file():
            return []
        data = await self._load_json(path)
        items = [data] if isinstance(data, dict) else data
        if not isinstance(items, list):
            raise MalformedExportError(f"Expected a list in {path.name}")
        return [self._validate(model, item) for item in items]

    @staticmethod
    def _validate(model: type, raw: Any) -> Any:
        try:
            return model.model_validate(raw)
        except ValueError as e:
            raise MalformedExportError(f"Unexpected {model.__name__} shape: {e}") from e
