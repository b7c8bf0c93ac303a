"""
NoteGraph MCP - a wiki-link graph index for Markdown notes, served over MCP.
This package keeps a persisted graph of [[wiki link]] cross-references between
notes. The graph is rebuilt incrementally by an explicit reindex batch and backs
backlink lookups and a node/edge view of the note network.

This version uses synchronous operations.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("notegraph-mcp")
except PackageNotFoundError:
    __version__ = "0.3.0"
