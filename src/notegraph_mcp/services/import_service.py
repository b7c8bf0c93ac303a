"""Import of Markdown files into the note store.

Import only maintains note rows (title, content, content hash, tags). It
never touches links; the next reindex picks up whatever changed.
"""
import logging
from pathlib import Path
from typing import Any, Callable, Iterable, List, Optional, Union

from sqlalchemy.exc import SQLAlchemyError

from notegraph_mcp.exceptions import (
    ErrorCode,
    NoteImportError,
    NoteNotFoundError,
    StorageError,
    ValidationError,
)
from notegraph_mcp.models.schema import (
    ImportEntry,
    ImportEntryResult,
    ImportResult,
    ImportStatus,
    Note,
    utc_now,
)
from notegraph_mcp.observability import timed_operation
from notegraph_mcp.storage.markdown_parser import MarkdownParser
from notegraph_mcp.storage.unit_of_work import UnitOfWork
from notegraph_mcp.utils import content_fingerprint, normalize_note_path, note_id_for_path

logger = logging.getLogger(__name__)

EntryLike = Union[ImportEntry, str, dict]


def _coerce_entry(entry: Any) -> ImportEntry:
    if isinstance(entry, ImportEntry):
        return entry
    if isinstance(entry, (str, Path)):
        return ImportEntry(path=str(entry))
    return ImportEntry(**entry)


NOTE_SUFFIXES = {".md", ".mdx"}


def _is_note_file(path: Path) -> bool:
    return path.suffix.lower() in NOTE_SUFFIXES and path.is_file()


def _is_hidden_dir(part: str) -> bool:
    return part.startswith(".") or part.startswith("_")


class ImportService:
    """Creates and updates note rows from Markdown files on disk."""

    def __init__(
        self,
        uow_factory: Callable[[], UnitOfWork],
        parser: Optional[MarkdownParser] = None,
    ):
        self.uow_factory = uow_factory
        self.parser = parser or MarkdownParser()

    def import_notes(self, entries: Iterable[EntryLike]) -> ImportResult:
        """Import a batch of note files.

        Each entry is a path, optionally with an explicit title. Missing or
        unreadable files are reported per entry and do not stop the batch.

        Raises:
            NoteImportError: If no entries are given, or the store rejects the
                batch (nothing is committed in that case).
        """
        entries = [_coerce_entry(entry) for entry in entries]
        if not entries:
            raise NoteImportError(
                "No note paths given", code=ErrorCode.IMPORT_EMPTY_INPUT
            )
        return self._import(entries)

    def import_directory(self, directory: Union[str, Path]) -> ImportResult:
        """Import every note file (``.md`` or ``.mdx``, any case) below ``directory``.

        Hidden directories and directories starting with ``_`` are skipped.

        Raises:
            ValidationError: If ``directory`` is not a directory.
        """
        root = Path(directory).expanduser()
        if not root.is_dir():
            raise ValidationError(
                f"Not a directory: {directory}", field="directory", value=directory
            )

        entries = []
        for path in sorted(root.rglob("*")):
            relative_dirs = path.relative_to(root).parts[:-1]
            if any(_is_hidden_dir(part) for part in relative_dirs):
                continue
            if _is_note_file(path):
                entries.append(ImportEntry(path=str(path)))

        logger.info(f"Found {len(entries)} Markdown files under {root}")
        if not entries:
            return ImportResult()
        return self._import(entries)

    def delete_note(self, note_id: str) -> None:
        """Remove a note from the store.

        Its outgoing edges and indexing state are deleted with it; edges
        pointing at it from other notes become unresolved. Tags left
        without notes are dropped.

        Raises:
            NoteNotFoundError: If the note does not exist.
            StorageError: If the store rejects the delete.
        """
        try:
            with self.uow_factory() as uow:
                if not uow.notes.delete(note_id):
                    raise NoteNotFoundError(note_id)
                pruned = uow.tags.delete_unused()
                uow.commit()
        except SQLAlchemyError as e:
            raise StorageError(
                f"Failed to delete note {note_id}",
                operation="delete",
                code=ErrorCode.STORAGE_DELETE_FAILED,
                original_error=e,
            ) from e
        logger.info(f"Deleted note {note_id} ({pruned} unused tags removed)")

    def _import(self, entries: List[ImportEntry]) -> ImportResult:
        with timed_operation("import_notes", count=len(entries)) as op:
            result = ImportResult()
            try:
                with self.uow_factory() as uow:
                    for entry in entries:
                        result.notes.append(self._import_one(uow, entry))
                    uow.tags.delete_unused()
                    uow.commit()
            except SQLAlchemyError as e:
                raise NoteImportError(
                    f"Import failed: {e}", total_count=len(entries), original_error=e
                ) from e
            op["created"] = result.created
            op["updated"] = result.updated

        logger.info(
            f"Imported {result.total} notes: {result.created} created, "
            f"{result.updated} updated, {result.skipped} skipped, "
            f"{result.missing} missing, {result.failed} failed"
        )
        return result

    def _import_one(self, uow: UnitOfWork, entry: ImportEntry) -> ImportEntryResult:
        path = normalize_note_path(entry.path)
        file_path = Path(path)
        if not file_path.is_file():
            logger.warning(f"Note file not found: {path}")
            return ImportEntryResult(path=path, status=ImportStatus.MISSING, message="File not found")

        try:
            content = file_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"Could not read note file {path}: {e}")
            return ImportEntryResult(path=path, status=ImportStatus.FAILED, message=str(e))

        metadata = self.parser.parse_metadata(content, source=path)
        explicit_title = (entry.title or "").strip()
        title = explicit_title or metadata.title or file_path.stem.strip() or file_path.name
        note_id = note_id_for_path(path)
        content_hash = content_fingerprint(content)

        existing = uow.notes.get(note_id)
        if existing is not None and (
            existing.title == title
            and existing.content_hash == content_hash
            and sorted(tag.name for tag in existing.tags) == sorted(set(metadata.tags))
        ):
            return ImportEntryResult(
                path=path, status=ImportStatus.SKIPPED, note_id=note_id, title=title
            )

        note = Note(
            id=note_id,
            title=title,
            path=path,
            content=content,
            content_hash=content_hash,
            updated_at=utc_now(),
        )
        db_note = uow.notes.upsert(note)
        uow.tags.set_note_tags(db_note, metadata.tags)

        status = ImportStatus.CREATED if existing is None else ImportStatus.UPDATED
        logger.debug(f"Import {status.value}: {path} as '{title}'")
        return ImportEntryResult(path=path, status=status, note_id=note_id, title=title)
