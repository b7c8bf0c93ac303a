"""Repository for per-note indexing state."""
import datetime
import logging
from typing import Dict, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from notegraph_mcp.models.db_models import DBNoteLinkState
from notegraph_mcp.models.schema import NoteLinkState, ensure_timezone_aware

logger = logging.getLogger(__name__)


class LinkStateRepository:
    """Stores the content hash each note had when its links were last indexed.

    A missing row means the note was never indexed.
    """

    def __init__(self, session: Session):
        self.session = session

    def get(self, note_id: str) -> Optional[NoteLinkState]:
        row = self.session.get(DBNoteLinkState, note_id)
        if row is None:
            return None
        return NoteLinkState(
            note_id=row.note_id,
            content_hash=row.content_hash,
            indexed_at=ensure_timezone_aware(row.indexed_at),
        )

    def get_hashes(self) -> Dict[str, str]:
        """Map every indexed note ID to its last indexed content hash."""
        rows = self.session.execute(
            select(DBNoteLinkState.note_id, DBNoteLinkState.content_hash)
        ).all()
        return {note_id: content_hash for note_id, content_hash in rows}

    def upsert(self, note_id: str, content_hash: str, indexed_at: datetime.datetime) -> None:
        """Record that ``note_id`` was indexed at ``content_hash``."""
        row = self.session.get(DBNoteLinkState, note_id)
        if row:
            row.content_hash = content_hash
            row.indexed_at = indexed_at
        else:
            self.session.add(
                DBNoteLinkState(
                    note_id=note_id, content_hash=content_hash, indexed_at=indexed_at
                )
            )
        self.session.flush()
