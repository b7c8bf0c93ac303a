"""Wiki link extraction from Markdown note bodies.

Recognizes ``[[Title]]`` and ``[[Title|Label]]``. Anything inside fenced code
blocks or inline code spans is ignored. The functions here are pure and do
not raise for any string input.
"""
import logging
import re
from typing import List, Optional

from notegraph_mcp.models.schema import ExtractedLink

logger = logging.getLogger(__name__)

WIKI_LINK_PATTERN = re.compile(r"\[\[([^\]|]+)(?:\|([^\]]+))?\]\]")

# A fence is a run of 3+ backticks or 3+ tildes
FENCE_RUN_PATTERN = re.compile(r"`{3,}|~{3,}")

INLINE_CODE_PATTERN = re.compile(r"(`+)([^\n]*?)\1")


def _blank(text: str) -> str:
    return " " * len(text)


def mask_fenced_blocks(body: str) -> str:
    """Replace fenced code blocks with spaces of equal length.

    A block opens at a run of three or more backticks (or tildes) and closes
    at the next run of the same character that is at least as long. An
    opening run with no matching close masks nothing.
    """
    masked: List[str] = []
    last = 0
    search_from = 0
    while True:
        opening = FENCE_RUN_PATTERN.search(body, search_from)
        if opening is None:
            break
        run = opening.group()
        closing_pattern = re.compile(re.escape(run[0]) + "{%d,}" % len(run))
        closing = closing_pattern.search(body, opening.end())
        if closing is None:
            search_from = opening.end()
            continue
        masked.append(body[last:opening.start()])
        masked.append(_blank(body[opening.start():closing.end()]))
        last = closing.end()
        search_from = closing.end()
    masked.append(body[last:])
    return "".join(masked)


def mask_inline_code(body: str) -> str:
    """Replace single-line inline code spans with spaces of equal length."""
    return INLINE_CODE_PATTERN.sub(lambda match: _blank(match.group()), body)


def mask_code_spans(body: str) -> str:
    """Mask fenced blocks first, then inline spans.

    The result has the same length as ``body`` so offsets stay valid.
    """
    return mask_inline_code(mask_fenced_blocks(body))


def extract_wiki_links(body: Optional[str]) -> List[ExtractedLink]:
    """Extract wiki links from a note body in source order.

    Args:
        body: Markdown text. ``None`` and empty strings yield no links.

    Returns:
        One ExtractedLink per occurrence (duplicates kept). Titles are
        trimmed, empty titles are dropped, and a missing or blank label
        falls back to the title.

    Examples:
        extract_wiki_links("See [[Beta|B]]")
            -> [ExtractedLink(title="Beta", label="B", position=0, offset=4)]
    """
    if not body:
        return []

    links: List[ExtractedLink] = []
    for match in WIKI_LINK_PATTERN.finditer(mask_code_spans(body)):
        title = match.group(1).strip()
        if not title:
            continue
        label = (match.group(2) or "").strip() or title
        links.append(
            ExtractedLink(
                title=title,
                label=label,
                position=len(links),
                offset=match.start(),
            )
        )
    return links
