"""Read-side queries over the persisted link graph.

Nothing here writes: backlinks and the graph view reflect whatever the last
committed reindex left in the store.
"""
import datetime
import logging
from typing import Callable, Dict, List, Optional

from notegraph_mcp.exceptions import NoteNotFoundError
from notegraph_mcp.models.schema import (
    Backlink,
    GraphEdge,
    GraphNode,
    IndexRun,
    Link,
    Note,
    NoteGraph,
    UnresolvedTarget,
)
from notegraph_mcp.observability import traced
from notegraph_mcp.storage.unit_of_work import UnitOfWork

logger = logging.getLogger(__name__)


class GraphService:
    """Backlink, graph and note lookups for one store."""

    def __init__(self, uow_factory: Callable[[], UnitOfWork]):
        self.uow_factory = uow_factory

    @traced("get_backlinks", context_arg="title")
    def get_backlinks(self, title: str) -> List[Backlink]:
        """Notes that link to ``title``.

        An edge counts when its target title is ``title`` or when it resolves
        to the note that currently carries ``title``. Each source note
        appears once, labelled with its own title, ordered by title.
        """
        with self.uow_factory() as uow:
            target = uow.notes.get_by_title(title)
            target_ids = [target.id] if target else []
            sources = uow.links.find_source_notes(title, target_ids)
            return [
                Backlink(note_id=source.id, title=source.title, label=source.title)
                for source in sources
            ]

    @traced("get_graph")
    def get_graph(self) -> NoteGraph:
        """All notes as nodes and every resolved edge as a link.

        Duplicate edges between the same pair are kept, one entry per edge.
        """
        with self.uow_factory() as uow:
            notes = uow.notes.get_all()
            edges = uow.links.get_resolved()
        return NoteGraph(
            nodes=[GraphNode(id=note.id, title=note.title) for note in notes],
            links=[GraphEdge(source=edge.from_note_id, target=edge.to_note_id) for edge in edges],
        )

    def get_note(self, note_id: str) -> Note:
        """Fetch a note by ID, falling back to an exact title match.

        Raises:
            NoteNotFoundError: If neither matches.
        """
        with self.uow_factory() as uow:
            note = uow.notes.get(note_id) or uow.notes.get_by_title(note_id)
        if note is None:
            raise NoteNotFoundError(note_id)
        return note

    def list_notes(
        self,
        limit: Optional[int] = None,
        offset: int = 0,
        title_contains: Optional[str] = None,
    ) -> List[Note]:
        with self.uow_factory() as uow:
            return uow.notes.list_notes(limit=limit, offset=offset, title_contains=title_contains)

    def get_outgoing_links(self, note_id: str) -> List[Link]:
        """Edges of one note in order of appearance.

        Raises:
            NoteNotFoundError: If the note does not exist.
        """
        with self.uow_factory() as uow:
            if uow.notes.get(note_id) is None:
                raise NoteNotFoundError(note_id)
            return uow.links.get_outgoing(note_id)

    def get_unresolved_links(self) -> List[UnresolvedTarget]:
        """Broken-link report: every unmatched title with the notes using it."""
        grouped: Dict[str, UnresolvedTarget] = {}
        with self.uow_factory() as uow:
            links = uow.links.get_unresolved()
        for link in links:
            entry = grouped.setdefault(link.to_title, UnresolvedTarget(to_title=link.to_title))
            entry.occurrences += 1
            if link.from_note_id not in entry.source_note_ids:
                entry.source_note_ids.append(link.from_note_id)
        return sorted(grouped.values(), key=lambda t: t.to_title)

    def get_index_runs(self, limit: int = 10) -> List[IndexRun]:
        """Most recent reindex runs first."""
        with self.uow_factory() as uow:
            return uow.runs.recent(limit)

    def last_indexed_at(self) -> Optional[datetime.datetime]:
        """Finish time of the latest successful reindex, if any."""
        with self.uow_factory() as uow:
            run = uow.runs.latest_success()
        return run.finished_at if run else None

    def get_stats(self) -> Dict[str, object]:
        """Counts describing the current state of the store."""
        with self.uow_factory() as uow:
            notes = uow.notes.count()
            links = uow.links.count()
            unresolved = uow.links.count_unresolved()
            tags = uow.tags.get_with_counts()
            run = uow.runs.latest_success()
        return {
            "notes": notes,
            "links": links,
            "unresolved_links": unresolved,
            "tags": len(tags),
            "last_indexed_at": run.finished_at.isoformat() if run and run.finished_at else None,
        }
