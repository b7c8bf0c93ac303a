#!/usr/bin/env python
"""Main entry point for the NoteGraph MCP server and CLI."""
import argparse
import atexit
import json
import logging
import os
import sys
from pathlib import Path

from notegraph_mcp import __version__
from notegraph_mcp.config import config
from notegraph_mcp.exceptions import NoteGraphError
from notegraph_mcp.models.db_models import init_db
from notegraph_mcp.observability import configure_logging, metrics
from notegraph_mcp.services.graph_service import GraphService
from notegraph_mcp.services.import_service import ImportService
from notegraph_mcp.services.reindex_service import ReindexService
from notegraph_mcp.storage.unit_of_work import sqlalchemy_uow_factory, store_key_for


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="NoteGraph MCP Server")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--notes-dir",
        help="Default directory scanned by directory imports",
        type=str,
        default=os.environ.get("NOTEGRAPH_NOTES_DIR")
    )
    parser.add_argument(
        "--database-path",
        help="SQLite database file path (':memory:' for a throwaway store)",
        type=str,
        default=os.environ.get("NOTEGRAPH_DATABASE_PATH")
    )
    parser.add_argument(
        "--log-level",
        help="Logging level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=os.environ.get("NOTEGRAPH_LOG_LEVEL", "INFO")
    )

    subparsers = parser.add_subparsers(dest="command")
    subparsers.add_parser("serve", help="Run the MCP server over stdio (default)")

    import_parser = subparsers.add_parser("import", help="Import Markdown note files")
    import_parser.add_argument("paths", nargs="*", help="Note files to import")
    import_parser.add_argument("--dir", dest="directory", help="Import every *.md below DIR")

    reindex_parser = subparsers.add_parser("reindex", help="Rebuild link edges")
    reindex_parser.add_argument(
        "--full", action="store_true", help="Re-extract every note, ignoring stored hashes"
    )

    backlinks_parser = subparsers.add_parser("backlinks", help="List notes linking to TITLE")
    backlinks_parser.add_argument("title")

    subparsers.add_parser("graph", help="Print the note graph as JSON")

    args = parser.parse_args(argv)
    if args.command == "import" and not (args.paths or args.directory):
        parser.error("import needs at least one PATH or --dir")
    return args


def update_config(args):
    """Update the global config with command line arguments."""
    if args.notes_dir:
        config.notes_dir = Path(args.notes_dir)
    if args.database_path:
        config.database_path = Path(args.database_path)


def _save_metrics_on_exit():
    """Save metrics to disk on shutdown."""
    try:
        if metrics.save_metrics():
            logging.getLogger(__name__).info("Metrics saved to disk on shutdown")
    except OSError as e:
        logging.getLogger(__name__).warning(f"Failed to save metrics on shutdown: {e}")


def _print_json(data) -> None:
    print(json.dumps(data, indent=2))


def run_command(args, engine) -> int:
    """Run a one-shot CLI command against ``engine``.

    Returns:
        Process exit code.
    """
    uow_factory = sqlalchemy_uow_factory(engine)

    if args.command == "import":
        service = ImportService(uow_factory)
        results = []
        if args.paths:
            results.append(service.import_notes(args.paths))
        if args.directory:
            results.append(service.import_directory(args.directory))
        for result in results:
            _print_json(result.to_dict())
        return 1 if any(result.failed for result in results) else 0

    if args.command == "reindex":
        service = ReindexService(uow_factory, store_key=store_key_for(engine))
        _print_json(service.reindex(full=args.full).to_dict())
        return 0

    graph_service = GraphService(uow_factory)
    if args.command == "backlinks":
        _print_json([b.to_dict() for b in graph_service.get_backlinks(args.title)])
        return 0
    if args.command == "graph":
        _print_json(graph_service.get_graph().to_dict())
        return 0

    raise ValueError(f"Unknown command: {args.command}")


def main(argv=None):
    """Run the NoteGraph MCP server or a one-shot CLI command."""
    # Parse arguments and update config
    args = parse_args(argv)
    update_config(args)
    serving = args.command in (None, "serve")

    # Configure logging (persistent file logging with rotation); the console
    # handler writes to stderr so one-shot commands keep stdout for JSON
    log_level = getattr(logging, args.log_level.upper(), logging.INFO)
    try:
        log_dir = configure_logging(log_dir=config.log_dir, level=log_level, console=True)
    except OSError as e:
        # Fall back to basic console logging if file logging fails
        logging.basicConfig(level=log_level)
        logging.getLogger(__name__).warning(f"Failed to configure file logging: {e}")
        log_dir = None

    logger = logging.getLogger(__name__)
    if log_dir:
        logger.info(f"Persistent logging enabled: {log_dir}")

    # Register metrics save on shutdown
    atexit.register(_save_metrics_on_exit)

    # Initialize database schema, single engine shared by all services
    try:
        logger.info(f"Using SQLite database: {config.get_db_url()}")
        engine = init_db()
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        sys.exit(1)

    if not serving:
        try:
            sys.exit(run_command(args, engine))
        except NoteGraphError as e:
            logger.error(str(e))
            sys.exit(1)

    # Imported here so one-shot commands do not pay for the MCP stack
    from notegraph_mcp.server.mcp_server import NoteGraphMcpServer

    try:
        notes_dir = config.get_absolute_path(config.notes_dir)
        notes_dir.mkdir(parents=True, exist_ok=True)
        logger.info("Starting NoteGraph MCP server")
        server = NoteGraphMcpServer(engine=engine)
        server.run()
    except Exception as e:
        logger.error(f"Error running server: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
