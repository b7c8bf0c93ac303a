"""Repository for note storage and retrieval."""

import logging
from typing import List, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session, selectinload

from notegraph_mcp.models.db_models import DBNote
from notegraph_mcp.models.schema import Note, Tag, ensure_timezone_aware
from notegraph_mcp.utils import escape_like_pattern

logger = logging.getLogger(__name__)


class NoteRepository:
    """Repository for note rows.

    Works inside a caller-owned session: it flushes but never commits, so a
    unit of work decides the transaction boundary.
    """

    def __init__(self, session: Session):
        """Initialize the note repository.

        Args:
            session: Active SQLAlchemy session (the unit of work commits).
        """
        self.session = session

    @staticmethod
    def _db_note_to_model(db_note: DBNote) -> Note:
        """Convert a database row into a Note model."""
        return Note(
            id=db_note.id,
            title=db_note.title,
            path=db_note.path,
            content=db_note.content or "",
            content_hash=db_note.content_hash,
            updated_at=ensure_timezone_aware(db_note.updated_at),
            tags=[Tag(name=tag.name) for tag in db_note.tags],
        )

    def get(self, note_id: str) -> Optional[Note]:
        """Get a note by ID."""
        db_note = self.session.scalar(
            select(DBNote).options(selectinload(DBNote.tags)).where(DBNote.id == note_id)
        )
        return self._db_note_to_model(db_note) if db_note else None

    def get_by_title(self, title: str) -> Optional[Note]:
        """Get the note that owns ``title`` when several share it.

        That is the last one in path order, the same note TitleResolver
        resolves links to.
        """
        db_note = self.session.scalar(
            select(DBNote)
            .options(selectinload(DBNote.tags))
            .where(DBNote.title == title)
            .order_by(DBNote.path.desc())
            .limit(1)
        )
        return self._db_note_to_model(db_note) if db_note else None

    def get_all(self) -> List[Note]:
        """Load every note, ordered by path.

        The path ordering makes title-collision handling deterministic for
        the resolver.
        """
        db_notes = self.session.scalars(
            select(DBNote).options(selectinload(DBNote.tags)).order_by(DBNote.path)
        ).all()
        return [self._db_note_to_model(db_note) for db_note in db_notes]

    def list_notes(
        self,
        limit: Optional[int] = None,
        offset: int = 0,
        title_contains: Optional[str] = None,
    ) -> List[Note]:
        """List notes ordered by title, optionally filtered by a title substring."""
        query = select(DBNote).options(selectinload(DBNote.tags)).order_by(
            DBNote.title, DBNote.path
        )
        if title_contains:
            pattern = f"%{escape_like_pattern(title_contains)}%"
            query = query.where(DBNote.title.like(pattern, escape="\\"))
        if offset:
            query = query.offset(offset)
        if limit is not None:
            query = query.limit(limit)
        return [self._db_note_to_model(n) for n in self.session.scalars(query).all()]

    def count(self) -> int:
        """Count all notes."""
        return self.session.scalar(select(func.count()).select_from(DBNote)) or 0

    def upsert(self, note: Note) -> DBNote:
        """Insert or update a note row (tags are handled by TagRepository).

        Returns:
            The flushed DBNote row.
        """
        db_note = self.session.get(DBNote, note.id)
        if db_note:
            db_note.title = note.title
            db_note.path = note.path
            db_note.content = note.content
            db_note.content_hash = note.content_hash
            db_note.updated_at = note.updated_at
        else:
            db_note = DBNote(
                id=note.id,
                title=note.title,
                path=note.path,
                content=note.content,
                content_hash=note.content_hash,
                updated_at=note.updated_at,
            )
            self.session.add(db_note)
        self.session.flush()
        return db_note

    def delete(self, note_id: str) -> bool:
        """Delete a note row.

        Outgoing links and indexing state go with it (ON DELETE CASCADE);
        incoming links become unresolved (ON DELETE SET NULL).

        Returns:
            True if a row was deleted.
        """
        result = self.session.execute(delete(DBNote).where(DBNote.id == note_id))
        deleted = (result.rowcount or 0) > 0
        if deleted:
            logger.debug(f"Deleted note {note_id}")
        return deleted
