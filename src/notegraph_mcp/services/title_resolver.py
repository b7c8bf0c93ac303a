"""Resolution of wiki link titles to notes."""
import logging
from typing import Dict, Iterable, List, Optional, Tuple

from notegraph_mcp.models.schema import ExtractedLink, Note, ResolvedLink

logger = logging.getLogger(__name__)


class TitleResolver:
    """Maps link titles to notes using one snapshot of the note set.

    The snapshot is taken once at construction; nothing is re-fetched while
    resolving. Matching is exact and case-sensitive. When several notes
    share a title the last one in path order wins, and the clash is
    recorded in ``collisions``.
    """

    def __init__(self, notes: Iterable[Note]):
        self._by_title: Dict[str, Note] = {}
        claimed: Dict[str, List[str]] = {}
        for note in sorted(notes, key=lambda n: n.path):
            self._by_title[note.title] = note
            claimed.setdefault(note.title, []).append(note.id)

        # title -> ids of every note claiming it, in path order
        self.collisions: Dict[str, List[str]] = {
            title: ids for title, ids in claimed.items() if len(ids) > 1
        }
        for title, ids in self.collisions.items():
            logger.warning(
                f"Title '{title}' is shared by {len(ids)} notes; "
                f"links resolve to {self._by_title[title].id}"
            )

    def __len__(self) -> int:
        return len(self._by_title)

    def lookup(self, title: str) -> Optional[Note]:
        """Return the note a link titled ``title`` points at, if any."""
        return self._by_title.get(title)

    def target_of(self, title: str) -> Tuple[Optional[str], Optional[str]]:
        """Return ``(note_id, path)`` for ``title``, or ``(None, None)``."""
        note = self._by_title.get(title)
        if note is None:
            return None, None
        return note.id, note.path

    def resolve(self, from_note_id: str, links: Iterable[ExtractedLink]) -> List[ResolvedLink]:
        """Bind extracted links of one note to their targets.

        Unmatched titles are kept with no target; an unresolved link is a
        normal outcome, not an error.
        """
        resolved = []
        for link in links:
            to_note_id, to_path = self.target_of(link.title)
            resolved.append(
                ResolvedLink(
                    from_note_id=from_note_id,
                    to_note_id=to_note_id,
                    to_title=link.title,
                    to_path=to_path,
                    link_text=link.label,
                    position=link.position,
                )
            )
        return resolved
