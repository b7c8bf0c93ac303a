"""Unit of work: one transaction spanning all repositories.

The reindex engine and the importer talk to storage only through a
``UnitOfWork``, so a batch either commits as a whole or leaves nothing
behind, and tests can substitute an in-memory implementation.
"""
import logging
from abc import ABC, abstractmethod
from typing import Callable, Optional

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from notegraph_mcp.models.db_models import get_session_factory
from notegraph_mcp.storage.index_run_repository import IndexRunRepository
from notegraph_mcp.storage.link_repository import LinkRepository
from notegraph_mcp.storage.link_state_repository import LinkStateRepository
from notegraph_mcp.storage.note_repository import NoteRepository
from notegraph_mcp.storage.tag_repository import TagRepository

logger = logging.getLogger(__name__)


class UnitOfWork(ABC):
    """Transaction boundary over the note, tag, link, state and run repositories.

    Usage::

        with uow_factory() as uow:
            uow.links.delete_outgoing(note_id)
            ...
            uow.commit()

    Leaving the block without ``commit()`` (or through an exception) rolls
    back everything done inside it.
    """

    notes: NoteRepository
    tags: TagRepository
    links: LinkRepository
    link_states: LinkStateRepository
    runs: IndexRunRepository

    def __enter__(self) -> "UnitOfWork":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        try:
            if exc_type is not None or not self.committed:
                self.rollback()
        finally:
            self.close()

    @property
    @abstractmethod
    def committed(self) -> bool:
        """Whether commit() succeeded since the last write."""

    @abstractmethod
    def commit(self) -> None:
        """Make every change in this unit of work durable."""

    @abstractmethod
    def rollback(self) -> None:
        """Discard every uncommitted change."""

    def close(self) -> None:
        """Release resources held by the unit of work."""


class SqlAlchemyUnitOfWork(UnitOfWork):
    """UnitOfWork backed by one SQLAlchemy session."""

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory
        self.session: Optional[Session] = None
        self._committed = False

    def __enter__(self) -> "SqlAlchemyUnitOfWork":
        self.session = self.session_factory()
        self.notes = NoteRepository(self.session)
        self.tags = TagRepository(self.session)
        self.links = LinkRepository(self.session)
        self.link_states = LinkStateRepository(self.session)
        self.runs = IndexRunRepository(self.session)
        self._committed = False
        return self

    @property
    def committed(self) -> bool:
        return self._committed

    def commit(self) -> None:
        self.session.commit()
        self._committed = True

    def rollback(self) -> None:
        if self.session is not None:
            self.session.rollback()
        self._committed = False

    def close(self) -> None:
        if self.session is not None:
            self.session.close()
            self.session = None


def sqlalchemy_uow_factory(engine: Engine) -> Callable[[], SqlAlchemyUnitOfWork]:
    """Build a zero-argument factory producing units of work on ``engine``."""
    session_factory = get_session_factory(engine)

    def factory() -> SqlAlchemyUnitOfWork:
        return SqlAlchemyUnitOfWork(session_factory)

    return factory


def store_key_for(engine: Engine) -> str:
    """Identity of the store behind ``engine`` (its URL without credentials)."""
    return engine.url.render_as_string(hide_password=True)
