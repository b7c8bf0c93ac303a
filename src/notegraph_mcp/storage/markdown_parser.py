"""Frontmatter reading for imported Markdown notes.

Only the metadata the index keeps (title and tags) is extracted; the body is
stored verbatim so wiki links are found in exactly what the user wrote.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional

import frontmatter
import yaml

logger = logging.getLogger(__name__)


@dataclass
class NoteMetadata:
    """Title and tags declared in a note's frontmatter."""

    title: Optional[str] = None
    tags: List[str] = field(default_factory=list)


class MarkdownParser:
    """Reads YAML frontmatter from Markdown notes."""

    def parse_metadata(self, content: str, source: str = "<string>") -> NoteMetadata:
        """Extract the frontmatter title and tags of a note.

        Malformed frontmatter is logged and treated as absent, so the caller
        falls back to its own title.

        Args:
            content: Raw Markdown text, optionally starting with ``---`` frontmatter.
            source: Label used in log messages (usually the file path).

        Returns:
            NoteMetadata with ``title`` None when no usable title is declared.
        """
        try:
            post = frontmatter.loads(content)
        except (yaml.YAMLError, ValueError) as e:
            logger.warning(f"Ignoring malformed frontmatter in {source}: {e}")
            return NoteMetadata()

        metadata = post.metadata
        title = metadata.get("title")
        if title is not None:
            title = str(title).strip() or None

        return NoteMetadata(title=title, tags=self._parse_tags(metadata.get("tags")))

    @staticmethod
    def _parse_tags(raw: Any) -> List[str]:
        # Tags may be a comma separated string or a YAML list
        if isinstance(raw, str):
            return [t.strip() for t in raw.split(",") if t.strip()]
        if isinstance(raw, list):
            return [str(t).strip() for t in raw if str(t).strip()]
        return []
