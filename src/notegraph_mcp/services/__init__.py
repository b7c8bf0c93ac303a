"""Service layer for the NoteGraph MCP server."""
