"""Repository for tag storage and retrieval."""
import logging
from typing import Dict, Iterable, List

from sqlalchemy import delete, func, select, text
from sqlalchemy.orm import Session

from notegraph_mcp.models.db_models import DBNote, DBTag, note_tags

logger = logging.getLogger(__name__)


class TagRepository:
    """Repository for managing tags.

    Tags share the notes' persistence boundary but are never written by the
    link indexing path; only imports assign them.
    """

    def __init__(self, session: Session):
        """Initialize the tag repository.

        Args:
            session: Active SQLAlchemy session (the unit of work commits).
        """
        self.session = session

    def get_or_create(self, tag_name: str) -> DBTag:
        """Atomically get or create a tag.

        Uses INSERT OR IGNORE followed by SELECT so two writers creating the
        same tag do not trip the unique constraint.
        """
        self.session.execute(
            text("INSERT OR IGNORE INTO tags (name) VALUES (:name)"),
            {"name": tag_name}
        )
        return self.session.scalar(select(DBTag).where(DBTag.name == tag_name))

    def set_note_tags(self, db_note: DBNote, tag_names: Iterable[str]) -> None:
        """Replace the tags of a note with ``tag_names`` (deduplicated, order kept)."""
        names: List[str] = []
        for name in tag_names:
            name = name.strip()
            if name and name not in names:
                names.append(name)
        db_note.tags = [self.get_or_create(name) for name in names]
        self.session.flush()

    def get_with_counts(self) -> Dict[str, int]:
        """Get all tags with their usage counts.

        Returns:
            Dictionary mapping tag names to their note counts.
        """
        result = self.session.execute(
            select(DBTag.name, func.count(note_tags.c.note_id))
            .select_from(DBTag)
            .outerjoin(note_tags, DBTag.id == note_tags.c.tag_id)
            .group_by(DBTag.name)
        ).all()

        return {name: count for name, count in result}

    def delete_unused(self) -> int:
        """Delete tags no note uses any more.

        Returns:
            Number of tags deleted.
        """
        used = select(note_tags.c.tag_id).distinct()
        result = self.session.execute(delete(DBTag).where(DBTag.id.not_in(used)))
        return result.rowcount or 0
