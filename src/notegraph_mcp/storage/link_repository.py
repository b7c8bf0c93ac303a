"""Repository for wiki link edge storage and retrieval."""
import logging
from typing import Iterable, List, Optional

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.orm import Session

from notegraph_mcp.models.db_models import DBLink, DBNote
from notegraph_mcp.models.schema import Link, ResolvedLink

logger = logging.getLogger(__name__)


class LinkRepository:
    """Repository for managing link edges between notes.

    A note's outgoing edges are only ever replaced as a whole: delete them,
    then insert the freshly resolved set.
    """

    def __init__(self, session: Session):
        """Initialize the link repository.

        Args:
            session: Active SQLAlchemy session (the unit of work commits).
        """
        self.session = session

    @staticmethod
    def _to_model(db_link: DBLink) -> Link:
        return Link(
            id=db_link.id,
            from_note_id=db_link.from_note_id,
            to_note_id=db_link.to_note_id,
            to_title=db_link.to_title,
            to_path=db_link.to_path,
            link_text=db_link.link_text,
            position=db_link.position,
        )

    def delete_outgoing(self, note_id: str) -> int:
        """Delete all edges whose source is ``note_id``.

        Returns:
            Number of edges deleted.
        """
        result = self.session.execute(
            delete(DBLink).where(DBLink.from_note_id == note_id)
        )
        return result.rowcount or 0

    def insert_many(self, links: Iterable[ResolvedLink]) -> int:
        """Insert resolved edges.

        Returns:
            Number of edges inserted.
        """
        rows = [
            DBLink(
                from_note_id=link.from_note_id,
                to_note_id=link.to_note_id,
                to_title=link.to_title,
                to_path=link.to_path,
                link_text=link.link_text,
                position=link.position,
            )
            for link in links
        ]
        self.session.add_all(rows)
        self.session.flush()
        return len(rows)

    def update_target(
        self, link_id: int, to_note_id: Optional[str], to_path: Optional[str]
    ) -> None:
        """Re-point an edge at a different (or no) target note."""
        self.session.execute(
            update(DBLink)
            .where(DBLink.id == link_id)
            .values(to_note_id=to_note_id, to_path=to_path)
        )

    def get_outgoing(self, note_id: str) -> List[Link]:
        """Get a note's edges in order of appearance."""
        db_links = self.session.scalars(
            select(DBLink)
            .where(DBLink.from_note_id == note_id)
            .order_by(DBLink.position, DBLink.id)
        ).all()
        return [self._to_model(link) for link in db_links]

    def get_all(self) -> List[Link]:
        """Get every edge, grouped by source and ordered by position."""
        db_links = self.session.scalars(
            select(DBLink).order_by(DBLink.from_note_id, DBLink.position, DBLink.id)
        ).all()
        return [self._to_model(link) for link in db_links]

    def get_resolved(self) -> List[Link]:
        """Get every edge that points at an existing note."""
        db_links = self.session.scalars(
            select(DBLink)
            .where(DBLink.to_note_id.is_not(None))
            .order_by(DBLink.from_note_id, DBLink.position, DBLink.id)
        ).all()
        return [self._to_model(link) for link in db_links]

    def get_unresolved(self) -> List[Link]:
        """Get every edge whose target title matched no note."""
        db_links = self.session.scalars(
            select(DBLink)
            .where(DBLink.to_note_id.is_(None))
            .order_by(DBLink.to_title, DBLink.from_note_id, DBLink.position)
        ).all()
        return [self._to_model(link) for link in db_links]

    def find_source_notes(self, title: str, target_ids: Iterable[str] = ()) -> List[DBNote]:
        """Find distinct notes linking to ``title`` or to any of ``target_ids``.

        Returns:
            Source note rows ordered by title.
        """
        target_ids = list(target_ids)
        condition = DBLink.to_title == title
        if target_ids:
            condition = or_(condition, DBLink.to_note_id.in_(target_ids))
        sources = select(DBLink.from_note_id).where(condition).distinct()
        return list(
            self.session.scalars(
                select(DBNote).where(DBNote.id.in_(sources)).order_by(DBNote.title, DBNote.path)
            ).all()
        )

    def count(self) -> int:
        """Count all edges."""
        return self.session.scalar(select(func.count()).select_from(DBLink)) or 0

    def count_unresolved(self) -> int:
        """Count edges without a target note."""
        return self.session.scalar(
            select(func.count()).select_from(DBLink).where(DBLink.to_note_id.is_(None))
        ) or 0
