"""
Per-source cache of filled tables, stored as tagged child notes.

Each table note carries the rendered table for display plus the original
markdown, HTML-escaped, in a hidden element so it can be read back verbatim.
A source has at most one table note: the first store wins and later stores
return it unchanged.
"""

import html
import logging
import re
import threading
from typing import Optional

from markdown_it import MarkdownIt

from .store import ItemStore, Note, Source

logger = logging.getLogger(__name__)

TABLE_NOTE_TAG = "AI-Table"

RAW_REGION_RE = re.compile(r"<(?:div|pre)[^>]*data-ai-table-raw[^>]*>([\s\S]*?)</(?:div|pre)>")
TAG_RE = re.compile(r"<[^>]*>")
STYLE_ATTR_RE = re.compile(r'\s+style="[^"]*"')
DISPLAY_MATH_RE = re.compile(r"\$\$([\s\S]*?)\$\$")
INLINE_MATH_RE = re.compile(r"(?<!\$)\$(?!\$)([^$\n]+?)(?<!\$)\$(?!\$)")

_markdown = MarkdownIt("commonmark", {"breaks": True}).enable(["table", "strikethrough"])


def render_table_html(markdown_text: str) -> str:
    """
    Render markdown for display in a note.

    Inline styles are dropped and $$...$$ / $...$ formulas are rewritten to
    math spans.
    """
    rendered = _markdown.render(markdown_text)
    rendered = STYLE_ATTR_RE.sub("", rendered)
    # Inline first: the display replacement emits single-$ spans
    rendered = INLINE_MATH_RE.sub(lambda m: f'<span class="math">${m.group(1).strip()}$</span>', rendered)
    rendered = DISPLAY_MATH_RE.sub(
        lambda m: f'<span class="math">$\\displaystyle {m.group(1).strip()}$</span>', rendered
    )
    return rendered


def build_table_note_html(title: str, table_text: str) -> str:
    escaped_raw = html.escape(table_text, quote=False)
    return (
        f"<h2>Literature Table - {html.escape(title[:60], quote=False)}</h2>"
        f"<div>{render_table_html(table_text)}</div>"
        f'<div style="display:none" data-ai-table-raw>{escaped_raw}</div>'
    )


def table_text_from_note(note_html: str) -> Optional[str]:
    """Original markdown from a table note; stripped display text for legacy notes."""
    match = RAW_REGION_RE.search(note_html)
    if match:
        raw = html.unescape(match.group(1))
        return raw if raw.strip() else None
    text = html.unescape(TAG_RE.sub("", note_html)).strip()
    return text or None


class TableCache:
    def __init__(self, store: ItemStore):
        self.items = store
        self._locks = {}
        self._locks_guard = threading.Lock()

    def _lock_for(self, source: Source) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(source.id, threading.Lock())

    def _find_note(self, source: Source) -> Optional[Note]:
        for note in self.items.child_notes(source):
            if note.has_tag(TABLE_NOTE_TAG):
                return note
        return None

    def find(self, source: Source) -> Optional[str]:
        """Cached table text for source, or None."""
        note = self._find_note(source)
        if note is None:
            return None
        return table_text_from_note(note.html)

    def store(self, source: Source, table_text: str) -> Note:
        """
        Persist table_text as the source's table note.

        If the source already has a table note it is returned unchanged.
        """
        with self._lock_for(source):
            existing = self._find_note(source)
            if existing is not None:
                logger.debug("Table note already exists for %s; not overwriting", source.id)
                return existing

            note_html = build_table_note_html(source.title or "Unknown", table_text)
            return self.items.create_child_note(source, note_html, [TABLE_NOTE_TAG])
