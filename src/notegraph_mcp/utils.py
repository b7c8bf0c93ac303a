"""Utility functions for the NoteGraph MCP server."""
import hashlib
from pathlib import Path
from typing import Union


def normalize_note_path(path: Union[str, Path]) -> str:
    """Return the canonical storage form of a note path.

    Expands ``~`` and makes the path absolute without resolving symlinks,
    so the same file imported twice maps to the same row.

    Args:
        path: A note path as given by the caller.

    Returns:
        Absolute POSIX-style path string.
    """
    return Path(path).expanduser().absolute().as_posix()


def note_id_for_path(path: str) -> str:
    """Derive a stable note ID from its storage path.

    The ID depends only on the path, never on content, so edits change the
    note's content hash but keep its identity.

    Examples:
        note_id_for_path("/notes/alpha.md") -> "4b1f...e0" (40 hex chars)
    """
    return hashlib.sha1(path.encode("utf-8")).hexdigest()


def content_fingerprint(content: str) -> str:
    """SHA-256 hex digest of a note body, used for change detection."""
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def escape_like_pattern(value: str) -> str:
    """Escape SQL LIKE wildcards to treat them as literals.

    Prevents SQL LIKE pattern injection where user input containing
    '%' or '_' could match unintended patterns.

    Args:
        value: User input string that may contain LIKE wildcards

    Returns:
        String with '%', '_', and '\\' escaped for safe use in LIKE clauses

    Example:
        >>> escape_like_pattern("100% complete")
        '100\\% complete'
        >>> escape_like_pattern("file_name")
        'file\\_name'
    """
    # Use str.translate() for single-pass efficiency
    escape_table = str.maketrans(
        {
            "\\": "\\\\",  # Escape backslash first
            "%": "\\%",
            "_": "\\_",
        }
    )
    return value.translate(escape_table)
