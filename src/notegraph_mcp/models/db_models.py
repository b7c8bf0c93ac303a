"""SQLAlchemy database models for the NoteGraph MCP server."""
from typing import Optional

from sqlalchemy import (Column, DateTime, ForeignKey, Integer, String, Table,
                        Text, create_engine, event)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, relationship, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from notegraph_mcp.config import config
from notegraph_mcp.models.schema import IndexRunStatus, ReindexMode, utc_now

# Create base class for SQLAlchemy models
Base = declarative_base()

# Association table for tags and notes
note_tags = Table(
    "note_tags",
    Base.metadata,
    Column("note_id", String(64), ForeignKey("notes.id", ondelete="CASCADE"), primary_key=True),
    Column("tag_id", Integer, ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True),
)


class DBNote(Base):
    """Database model for a note."""
    __tablename__ = "notes"
    id = Column(String(64), primary_key=True)
    title = Column(String(512), nullable=False, index=True)
    path = Column(String(4096), nullable=False, unique=True)
    content = Column(Text, nullable=False, default="")
    content_hash = Column(String(64), nullable=False)
    updated_at = Column(DateTime, default=utc_now, nullable=False)

    # Links and indexing state are removed by ON DELETE rules in the database
    tags = relationship(
        "DBTag", secondary=note_tags, back_populates="notes", passive_deletes=True
    )

    def __repr__(self) -> str:
        """Return string representation of note."""
        return f"<Note(id='{self.id}', title='{self.title}')>"


class DBTag(Base):
    """Database model for a tag."""
    __tablename__ = "tags"
    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), unique=True, nullable=False, index=True)

    notes = relationship(
        "DBNote", secondary=note_tags, back_populates="tags", passive_deletes=True
    )

    def __repr__(self) -> str:
        """Return string representation of tag."""
        return f"<Tag(id={self.id}, name='{self.name}')>"


class DBLink(Base):
    """Database model for a wiki link edge between notes.

    ``to_note_id`` is NULL while the target title matches no note.
    """
    __tablename__ = "links"
    id = Column(Integer, primary_key=True, autoincrement=True)
    from_note_id = Column(
        String(64), ForeignKey("notes.id", ondelete="CASCADE"), nullable=False, index=True
    )
    to_note_id = Column(
        String(64), ForeignKey("notes.id", ondelete="SET NULL"), nullable=True, index=True
    )
    to_title = Column(String(512), nullable=False)
    to_path = Column(String(4096), nullable=True)
    link_text = Column(String(512), nullable=True)
    position = Column(Integer, nullable=True)

    def __repr__(self) -> str:
        """Return string representation of link."""
        return (
            f"<Link(id={self.id}, from='{self.from_note_id}', "
            f"to='{self.to_note_id}', title='{self.to_title}')>"
        )


class DBNoteLinkState(Base):
    """Last indexed content hash per note."""
    __tablename__ = "note_link_states"
    note_id = Column(
        String(64), ForeignKey("notes.id", ondelete="CASCADE"), primary_key=True
    )
    content_hash = Column(String(64), nullable=False)
    indexed_at = Column(DateTime, default=utc_now, nullable=False)

    def __repr__(self) -> str:
        return f"<NoteLinkState(note_id='{self.note_id}', hash='{self.content_hash[:8]}')>"


class DBIndexRun(Base):
    """Ledger row for one reindex batch."""
    __tablename__ = "index_runs"
    id = Column(Integer, primary_key=True, autoincrement=True)
    started_at = Column(DateTime, default=utc_now, nullable=False)
    finished_at = Column(DateTime, nullable=True)
    status = Column(String(20), default=IndexRunStatus.RUNNING.value, nullable=False, index=True)
    mode = Column(String(20), default=ReindexMode.INCREMENTAL.value, nullable=False)
    error = Column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<IndexRun(id={self.id}, status='{self.status}')>"


def _set_sqlite_pragma(dbapi_connection, connection_record, wal: bool) -> None:
    cursor = dbapi_connection.cursor()
    # Cascades on links / note_link_states / note_tags depend on this
    cursor.execute("PRAGMA foreign_keys=ON")
    if wal:
        # WAL mode: readers keep seeing the last committed batch while a
        # reindex transaction is open
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA synchronous=NORMAL")
    cursor.close()


def create_db_engine(db_url: Optional[str] = None) -> Engine:
    """Create a SQLAlchemy engine for a SQLite URL with the connection PRAGMAs applied.

    In-memory URLs share a single connection (StaticPool) so every session
    sees the same database.
    """
    db_url = db_url or config.get_db_url()
    in_memory = db_url in ("sqlite://", "sqlite:///:memory:")

    if in_memory:
        engine = create_engine(
            db_url,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    else:
        # SQLite is single-writer, so a small pool is ideal
        engine = create_engine(
            db_url,
            poolclass=QueuePool,
            pool_size=5,
            max_overflow=10,
            pool_timeout=30,
            pool_pre_ping=True,
            connect_args={"check_same_thread": False},
        )

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        _set_sqlite_pragma(dbapi_connection, connection_record, wal=not in_memory)

    return engine


def init_db(db_url: Optional[str] = None) -> Engine:
    """Initialize the database schema and return the engine.

    Idempotent: existing tables are left untouched.
    """
    engine = create_db_engine(db_url)
    Base.metadata.create_all(engine)
    return engine


def get_session_factory(engine: Optional[Engine] = None):
    """Get a session factory for the database."""
    if engine is None:
        engine = init_db()
    return sessionmaker(bind=engine, expire_on_commit=False)
