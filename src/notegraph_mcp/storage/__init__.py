"""Storage layer for the NoteGraph MCP server."""

from notegraph_mcp.storage.index_run_repository import IndexRunRepository
from notegraph_mcp.storage.link_repository import LinkRepository
from notegraph_mcp.storage.link_state_repository import LinkStateRepository
from notegraph_mcp.storage.note_repository import NoteRepository
from notegraph_mcp.storage.tag_repository import TagRepository
from notegraph_mcp.storage.unit_of_work import SqlAlchemyUnitOfWork, UnitOfWork

__all__ = [
    "IndexRunRepository",
    "LinkRepository",
    "LinkStateRepository",
    "NoteRepository",
    "TagRepository",
    "SqlAlchemyUnitOfWork",
    "UnitOfWork",
]
