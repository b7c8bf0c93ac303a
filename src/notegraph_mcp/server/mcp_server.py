"""MCP server implementation for the note graph."""

import json
import logging
import uuid
from typing import List, Optional

from mcp.server.fastmcp import FastMCP

from notegraph_mcp.config import config
from notegraph_mcp.exceptions import NoteGraphError
from notegraph_mcp.models.db_models import init_db
from notegraph_mcp.observability import metrics, timed_operation
from notegraph_mcp.services.graph_service import GraphService
from notegraph_mcp.services.import_service import ImportService
from notegraph_mcp.services.reindex_service import ReindexService
from notegraph_mcp.storage.unit_of_work import sqlalchemy_uow_factory, store_key_for

logger = logging.getLogger(__name__)

MAX_IMPORT_PATHS = 1000
MAX_CONTENT_PREVIEW = 2000


def _split_paths(paths: str) -> List[str]:
    """Split a newline or comma separated path list."""
    parts = []
    for line in paths.replace(",", "\n").splitlines():
        line = line.strip()
        if line:
            parts.append(line)
    return parts


class NoteGraphMcpServer:
    """MCP server exposing import, reindex and graph queries."""

    def __init__(self, engine=None):
        """Initialize the MCP server.

        Args:
            engine: Pre-configured SQLAlchemy engine shared by every service.
                    When None, the configured database is initialized.
        """
        self.mcp = FastMCP(config.server_name)
        self.engine = engine if engine is not None else init_db()
        uow_factory = sqlalchemy_uow_factory(self.engine)
        self.import_service = ImportService(uow_factory)
        self.reindex_service = ReindexService(
            uow_factory, store_key=store_key_for(self.engine)
        )
        self.graph_service = GraphService(uow_factory)
        self._register_tools()
        logger.info("NoteGraph MCP server initialized")

    def format_error_response(self, error: Exception) -> str:
        """Format an error response in a consistent way.

        Args:
            error: The exception that occurred

        Returns:
            Formatted error message with appropriate level of detail
        """
        # Generate a unique error ID for traceability in logs
        error_id = str(uuid.uuid4())[:8]

        if isinstance(error, NoteGraphError):
            logger.error(
                f"[{error.code.name}] [{error_id}]: {error.message}",
                extra={"error_details": error.details},
            )
            return f"Error: {error.message}"
        elif isinstance(error, ValueError):
            # Log full detail but return generic ref to avoid leaking internals
            logger.error(f"Validation error [{error_id}]: {str(error)}")
            return f"Error: Invalid input (ref: {error_id})"
        elif isinstance(error, (IOError, OSError)):
            logger.error(f"File system error [{error_id}]: {str(error)}", exc_info=True)
            return f"Error: A file system error occurred (ref: {error_id})"
        else:
            logger.error(f"Unexpected error [{error_id}]: {str(error)}", exc_info=True)
            return f"Error: An unexpected error occurred (ref: {error_id})"

    def _register_tools(self) -> None:
        """Register MCP tools."""

        @self.mcp.tool(name="ng_import_notes")
        def ng_import_notes(paths: str, title: Optional[str] = None) -> str:
            """Import Markdown note files into the index.
            Args:
                paths: Note file paths, separated by newlines or commas
                title: Explicit title (only allowed when importing a single path)
            """
            with timed_operation("ng_import_notes") as op:
                try:
                    path_list = _split_paths(paths)
                    if len(path_list) > MAX_IMPORT_PATHS:
                        raise ValueError(
                            f"Too many paths ({len(path_list)} > {MAX_IMPORT_PATHS})"
                        )
                    if title and len(path_list) != 1:
                        raise ValueError("'title' requires exactly one path")
                    entries = [{"path": p, "title": title} for p in path_list]
                    result = self.import_service.import_notes(entries)
                    op["created"] = result.created
                    return json.dumps(result.to_dict(), indent=2)
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="ng_import_directory")
        def ng_import_directory(directory: Optional[str] = None) -> str:
            """Import every Markdown file below a directory.
            Args:
                directory: Directory to scan (defaults to the configured notes directory)
            """
            with timed_operation("ng_import_directory") as op:
                try:
                    root = directory or str(config.get_absolute_path(config.notes_dir))
                    result = self.import_service.import_directory(root)
                    op["total"] = result.total
                    return json.dumps(result.to_dict(), indent=2)
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="ng_reindex")
        def ng_reindex(full: bool = False) -> str:
            """Rebuild wiki link edges for changed notes.
            Args:
                full: Re-extract every note, ignoring recorded content hashes
            """
            with timed_operation("ng_reindex", full=full):
                try:
                    summary = self.reindex_service.reindex(full=full)
                    return json.dumps(summary.to_dict(), indent=2)
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="ng_get_backlinks")
        def ng_get_backlinks(title: str) -> str:
            """List the notes that link to a title.
            Args:
                title: Exact note title
            """
            with timed_operation("ng_get_backlinks", title=title[:30]) as op:
                try:
                    backlinks = self.graph_service.get_backlinks(title)
                    op["result_count"] = len(backlinks)
                    return json.dumps([b.to_dict() for b in backlinks], indent=2)
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="ng_get_graph")
        def ng_get_graph() -> str:
            """Return the note network as nodes and resolved links (JSON)."""
            with timed_operation("ng_get_graph") as op:
                try:
                    graph = self.graph_service.get_graph()
                    op["nodes"] = len(graph.nodes)
                    op["links"] = len(graph.links)
                    return json.dumps(graph.to_dict(), indent=2)
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="ng_get_note")
        def ng_get_note(identifier: str) -> str:
            """Show a note with its outgoing links.
            Args:
                identifier: Note ID or exact title
            """
            with timed_operation("ng_get_note", identifier=identifier[:30]):
                try:
                    note = self.graph_service.get_note(identifier)
                    links = self.graph_service.get_outgoing_links(note.id)
                    output = f"# {note.title}\n"
                    output += f"ID: {note.id}\n"
                    output += f"Path: {note.path}\n"
                    output += f"Updated: {note.updated_at.strftime('%Y-%m-%d %H:%M')}\n"
                    if note.tags:
                        output += f"Tags: {', '.join(tag.name for tag in note.tags)}\n"
                    if links:
                        output += "\n## Links\n"
                        for link in links:
                            marker = "" if link.to_note_id else " (unresolved)"
                            output += f"- [[{link.to_title}|{link.link_text}]]{marker}\n"
                    content = note.content
                    if len(content) > MAX_CONTENT_PREVIEW:
                        content = content[:MAX_CONTENT_PREVIEW] + "\n..."
                    output += f"\n{content}"
                    return output
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="ng_list_notes")
        def ng_list_notes(
            title_contains: Optional[str] = None, limit: int = 50, offset: int = 0
        ) -> str:
            """List notes ordered by title.
            Args:
                title_contains: Only list notes whose title contains this text
                limit: Maximum results to return
                offset: Skip this many results (for pagination)
            """
            with timed_operation("ng_list_notes") as op:
                try:
                    limit = min(max(1, limit), 200)
                    offset = max(0, offset)
                    notes = self.graph_service.list_notes(
                        limit=limit, offset=offset, title_contains=title_contains
                    )
                    op["result_count"] = len(notes)
                    if not notes:
                        return "No notes found."
                    output = f"Notes ({offset + 1}-{offset + len(notes)}):\n\n"
                    for i, note in enumerate(notes, offset + 1):
                        output += f"{i}. {note.title} (ID: {note.id})\n"
                        output += f"   Path: {note.path}\n"
                    return output
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="ng_delete_note")
        def ng_delete_note(note_id: str) -> str:
            """Delete a note; links pointing at it become unresolved.
            Args:
                note_id: The ID of the note to delete
            """
            with timed_operation("ng_delete_note", note_id=note_id):
                try:
                    self.import_service.delete_note(note_id)
                    return f"Note deleted successfully: {note_id}"
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="ng_unresolved_links")
        def ng_unresolved_links() -> str:
            """List wiki link titles that match no note."""
            with timed_operation("ng_unresolved_links") as op:
                try:
                    targets = self.graph_service.get_unresolved_links()
                    op["result_count"] = len(targets)
                    if not targets:
                        return "No unresolved links."
                    output = f"Unresolved links ({len(targets)} titles):\n\n"
                    for target in targets:
                        output += (
                            f"- {target.to_title}: {target.occurrences} occurrence(s) "
                            f"in {len(target.source_note_ids)} note(s)\n"
                        )
                    return output
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="ng_index_runs")
        def ng_index_runs(limit: int = 10) -> str:
            """Show recent reindex runs, newest first.
            Args:
                limit: Maximum runs to show
            """
            with timed_operation("ng_index_runs"):
                try:
                    runs = self.graph_service.get_index_runs(min(max(1, limit), 100))
                    if not runs:
                        return "No reindex runs recorded."
                    output = "Reindex runs:\n\n"
                    for run in runs:
                        output += f"#{run.id} {run.status.value} ({run.mode.value}) "
                        output += f"started {run.started_at.isoformat()}"
                        if run.duration_ms is not None:
                            output += f", {run.duration_ms:.0f}ms"
                        if run.error:
                            output += f"\n   Error: {run.error[:200]}"
                        output += "\n"
                    return output
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="ng_status")
        def ng_status() -> str:
            """Show index statistics and server metrics."""
            with timed_operation("ng_status"):
                try:
                    stats = self.graph_service.get_stats()
                    output = "# NoteGraph Status\n\n"
                    output += f"**Notes:** {stats['notes']}\n"
                    output += f"**Links:** {stats['links']} ({stats['unresolved_links']} unresolved)\n"
                    output += f"**Tags:** {stats['tags']}\n"
                    output += f"**Last indexed:** {stats['last_indexed_at'] or 'never'}\n\n"

                    summary = metrics.get_summary()
                    output += "## Metrics\n"
                    output += f"Operations: {summary['total_operations']}, "
                    output += f"errors: {summary['total_errors']}\n"
                    return output
                except Exception as e:
                    return self.format_error_response(e)

    def run(self) -> None:
        """Run the MCP server."""
        self.mcp.run()
