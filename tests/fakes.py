"""In-memory storage for testing the services without SQL.

InMemoryStore holds committed state. Each InMemoryUnitOfWork works on a deep
copy of it and only publishes that copy on commit, so rollback and
failure-atomicity behave like the SQLAlchemy implementation.

Design principles:
- Same repository method names and return types as the SQL repositories
- Foreign key rules emulated in NoteRepo.delete (cascade / set null)
- Failure injection through ``InMemoryStore.fail_on``
"""
import copy
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from notegraph_mcp.models.schema import (
    IndexRun,
    IndexRunStatus,
    Link,
    Note,
    NoteLinkState,
    ReindexMode,
    ResolvedLink,
    Tag,
    utc_now,
)
from notegraph_mcp.storage.unit_of_work import UnitOfWork


@dataclass
class _Data:
    notes: Dict[str, Note] = field(default_factory=dict)
    links: List[Link] = field(default_factory=list)
    states: Dict[str, NoteLinkState] = field(default_factory=dict)
    runs: Dict[int, IndexRun] = field(default_factory=dict)
    next_link_id: int = 1
    next_run_id: int = 1


class InMemoryStore:
    """Committed state shared by every unit of work created from it."""

    def __init__(self):
        self.data = _Data()
        self.commits = 0
        # Repository method name -> exception raised when it is called
        self.fail_on: Dict[str, Exception] = {}

    def uow_factory(self) -> "InMemoryUnitOfWork":
        return InMemoryUnitOfWork(self)

    def add_note(self, note_id: str, title: str, content: str = "", path: Optional[str] = None,
                 content_hash: Optional[str] = None) -> Note:
        """Insert a committed note directly (bypasses import)."""
        note = Note(
            id=note_id,
            title=title,
            path=path or f"/notes/{note_id}.md",
            content=content,
            content_hash=content_hash or f"hash-{note_id}-{len(content)}-{hash(content)}",
        )
        self.data.notes[note_id] = note
        return note

    def edit_note(self, note_id: str, content: str, title: Optional[str] = None) -> None:
        note = self.data.notes[note_id]
        self.data.notes[note_id] = note.model_copy(
            update={
                "content": content,
                "title": title or note.title,
                "content_hash": f"hash-{note_id}-{len(content)}-{hash(content)}",
            }
        )


class _Repo:
    def __init__(self, uow: "InMemoryUnitOfWork"):
        self.uow = uow

    @property
    def data(self) -> _Data:
        return self.uow.data

    def _maybe_fail(self, method: str) -> None:
        error = self.uow.store.fail_on.get(method)
        if error is not None:
            raise error


class NoteRepo(_Repo):
    def get(self, note_id: str) -> Optional[Note]:
        return self.data.notes.get(note_id)

    def get_by_title(self, title: str) -> Optional[Note]:
        matches = sorted(
            (n for n in self.data.notes.values() if n.title == title), key=lambda n: n.path
        )
        return matches[-1] if matches else None

    def get_all(self) -> List[Note]:
        self._maybe_fail("notes.get_all")
        return sorted(self.data.notes.values(), key=lambda n: n.path)

    def list_notes(self, limit=None, offset=0, title_contains=None) -> List[Note]:
        notes = sorted(self.data.notes.values(), key=lambda n: (n.title, n.path))
        if title_contains:
            notes = [n for n in notes if title_contains in n.title]
        notes = notes[offset:]
        return notes if limit is None else notes[:limit]

    def count(self) -> int:
        return len(self.data.notes)

    def upsert(self, note: Note) -> Note:
        existing = self.data.notes.get(note.id)
        tags = existing.tags if existing else []
        stored = note.model_copy(update={"tags": tags})
        self.data.notes[note.id] = stored
        return stored

    def delete(self, note_id: str) -> bool:
        if note_id not in self.data.notes:
            return False
        del self.data.notes[note_id]
        self.data.states.pop(note_id, None)
        kept = []
        for link in self.data.links:
            if link.from_note_id == note_id:
                continue
            if link.to_note_id == note_id:
                link = link.model_copy(update={"to_note_id": None})
            kept.append(link)
        self.data.links = kept
        return True


class TagRepo(_Repo):
    def set_note_tags(self, db_note: Note, tag_names: Iterable[str]) -> None:
        names: List[str] = []
        for name in tag_names:
            name = name.strip()
            if name and name not in names:
                names.append(name)
        note = self.data.notes[db_note.id]
        self.data.notes[db_note.id] = note.model_copy(
            update={"tags": [Tag(name=name) for name in names]}
        )

    def get_with_counts(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for note in self.data.notes.values():
            for tag in note.tags:
                counts[tag.name] = counts.get(tag.name, 0) + 1
        return counts

    def delete_unused(self) -> int:
        # Tags only exist through notes here
        return 0


class LinkRepo(_Repo):
    def delete_outgoing(self, note_id: str) -> int:
        self._maybe_fail("links.delete_outgoing")
        before = len(self.data.links)
        self.data.links = [l for l in self.data.links if l.from_note_id != note_id]
        return before - len(self.data.links)

    def insert_many(self, links: Iterable[ResolvedLink]) -> int:
        self._maybe_fail("links.insert_many")
        count = 0
        for link in links:
            self.data.links.append(
                Link(
                    id=self.data.next_link_id,
                    from_note_id=link.from_note_id,
                    to_note_id=link.to_note_id,
                    to_title=link.to_title,
                    to_path=link.to_path,
                    link_text=link.link_text,
                    position=link.position,
                )
            )
            self.data.next_link_id += 1
            count += 1
        return count

    def update_target(self, link_id: int, to_note_id, to_path) -> None:
        self.data.links = [
            l.model_copy(update={"to_note_id": to_note_id, "to_path": to_path})
            if l.id == link_id else l
            for l in self.data.links
        ]

    def get_outgoing(self, note_id: str) -> List[Link]:
        return sorted(
            (l for l in self.data.links if l.from_note_id == note_id),
            key=lambda l: (l.position, l.id),
        )

    def get_all(self) -> List[Link]:
        return sorted(self.data.links, key=lambda l: (l.from_note_id, l.position, l.id))

    def get_resolved(self) -> List[Link]:
        return [l for l in self.get_all() if l.to_note_id is not None]

    def get_unresolved(self) -> List[Link]:
        return sorted(
            (l for l in self.data.links if l.to_note_id is None),
            key=lambda l: (l.to_title, l.from_note_id, l.position),
        )

    def find_source_notes(self, title: str, target_ids: Iterable[str] = ()) -> List[Note]:
        target_ids = set(target_ids)
        source_ids = {
            l.from_note_id
            for l in self.data.links
            if l.to_title == title or (l.to_note_id is not None and l.to_note_id in target_ids)
        }
        sources = [self.data.notes[i] for i in source_ids if i in self.data.notes]
        return sorted(sources, key=lambda n: (n.title, n.path))

    def count(self) -> int:
        return len(self.data.links)

    def count_unresolved(self) -> int:
        return sum(1 for l in self.data.links if l.to_note_id is None)


class LinkStateRepo(_Repo):
    def get(self, note_id: str) -> Optional[NoteLinkState]:
        return self.data.states.get(note_id)

    def get_hashes(self) -> Dict[str, str]:
        return {note_id: s.content_hash for note_id, s in self.data.states.items()}

    def upsert(self, note_id: str, content_hash: str, indexed_at) -> None:
        self._maybe_fail("link_states.upsert")
        self.data.states[note_id] = NoteLinkState(
            note_id=note_id, content_hash=content_hash, indexed_at=indexed_at
        )


class RunRepo(_Repo):
    def start(self, mode: ReindexMode = ReindexMode.INCREMENTAL, started_at=None) -> IndexRun:
        run = IndexRun(id=self.data.next_run_id, started_at=started_at or utc_now(), mode=mode)
        self.data.runs[run.id] = run
        self.data.next_run_id += 1
        return run

    def finish(self, run_id: int, status: IndexRunStatus, finished_at=None, error=None) -> IndexRun:
        run = self.data.runs[run_id].model_copy(
            update={"status": status, "finished_at": finished_at or utc_now(), "error": error}
        )
        self.data.runs[run_id] = run
        return run

    def get(self, run_id: int) -> Optional[IndexRun]:
        return self.data.runs.get(run_id)

    def latest_success(self) -> Optional[IndexRun]:
        successes = [r for r in self.data.runs.values() if r.status == IndexRunStatus.SUCCESS]
        return max(successes, key=lambda r: r.id) if successes else None

    def recent(self, limit: int = 10) -> List[IndexRun]:
        return sorted(self.data.runs.values(), key=lambda r: -r.id)[:limit]


class InMemoryUnitOfWork(UnitOfWork):
    """UnitOfWork over an InMemoryStore snapshot."""

    def __init__(self, store: InMemoryStore):
        self.store = store
        self.data: Optional[_Data] = None
        self._committed = False

    def __enter__(self) -> "InMemoryUnitOfWork":
        self.data = copy.deepcopy(self.store.data)
        self.notes = NoteRepo(self)
        self.tags = TagRepo(self)
        self.links = LinkRepo(self)
        self.link_states = LinkStateRepo(self)
        self.runs = RunRepo(self)
        self._committed = False
        return self

    @property
    def committed(self) -> bool:
        return self._committed

    def commit(self) -> None:
        self.store.data = copy.deepcopy(self.data)
        self.store.commits += 1
        self._committed = True

    def rollback(self) -> None:
        self.data = copy.deepcopy(self.store.data)
        self._committed = False
