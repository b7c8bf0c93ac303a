"""MCP server for the NoteGraph index."""
