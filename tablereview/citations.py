"""
Link author-year citations in generated prose back to their sources.

Two independent passes run over the text:

1. Parenthetical citations: (Nicoleau, 2014), (Nicoleau et al., 2014a)
2. Narrative citations: Nicoleau (2014), Nicoleau et al. (2014)

A citation whose surname and year are in the index becomes a markdown link
to the source; anything else is left as written. The narrative pass never
touches text that is already a link.

Known limitation: the index keeps the first source registered for each
surname|year key, so two sources sharing both surname and year cannot be
told apart and the second is never linked.
"""

import re
from dataclasses import dataclass
from typing import Optional

from .store import Source

NAME_CHARS = r"A-Za-zà-öø-ÿÀ-ÖØ-Ý\-'"

PARENTHETICAL_RE = re.compile(r"\(([^()]{2,80}?,\s*\d{4}[a-z]?)\)")
PARENTHETICAL_YEAR_RE = re.compile(r"(\d{4})[a-z]?\s*$")
PARENTHETICAL_TAIL_RE = re.compile(r",\s*\d{4}[a-z]?\s*$")

NARRATIVE_RE = re.compile(
    r"(?<!\[)\b("
    rf"[A-Z][{NAME_CHARS}]+"
    rf"(?:\s+et\s+al\.?|\s+(?:and|&)\s+[A-Z][{NAME_CHARS}]+)?"
    r")\s+\((\d{4}[a-z]?)\)(?!\])"
)

ET_AL_RE = re.compile(r"\s+et\s+al\.?$", re.IGNORECASE)
CO_AUTHOR_RE = re.compile(r"\s+(?:and|&)\s+.+$", re.IGNORECASE)

PLACEHOLDER_MARKER_RE = re.compile(r"\[itemId:\d+\]")


@dataclass
class CitationTarget:
    source: Source
    display_key: str
    uri: str


def build_citation_index(sources: list) -> dict:
    """
    Map "surname|year" (lowercase surname) to the source it cites.

    Every creator of every source with a year is registered. The first
    registration of a key wins.
    """
    index = {}
    for source in sources:
        year = source.year
        if not year or not source.creators:
            continue
        for creator in source.creators:
            surname = creator.surname
            if not surname:
                continue
            lookup_key = f"{surname.lower()}|{year}"
            if lookup_key not in index:
                index[lookup_key] = CitationTarget(source=source, display_key=source.key, uri=source.uri)
    return index


def lookup_surname(author_text: str) -> str:
    """
    Reduce the author part of a citation to one surname.

    "Nicoleau et al." -> "Nicoleau", "Smith and Jones" -> "Smith",
    "see Nicoleau" -> "Nicoleau".
    """
    surname = ET_AL_RE.sub("", author_text.strip())
    surname = CO_AUTHOR_RE.sub("", surname).strip()
    parts = surname.split()
    return parts[-1] if parts else ""


def _lookup(index: dict, author_text: str, year: str) -> Optional[CitationTarget]:
    surname = lookup_surname(author_text)
    if not surname:
        return None
    return index.get(f"{surname.lower()}|{year}")


def link_parenthetical(text: str, index: dict) -> str:
    """Rewrite resolvable "(Author, Year)" groups as [(Author, Year)](uri)."""

    def replace(match: re.Match) -> str:
        inner = match.group(1)
        year_match = PARENTHETICAL_YEAR_RE.search(inner)
        if not year_match:
            return match.group(0)
        author_part = PARENTHETICAL_TAIL_RE.sub("", inner).strip()
        target = _lookup(index, author_part, year_match.group(1))
        if target is None:
            return match.group(0)
        return f"[({inner})]({target.uri})"

    return PARENTHETICAL_RE.sub(replace, text)


def link_narrative(text: str, index: dict) -> str:
    """Rewrite resolvable "Author (Year)" spans as [Author (Year)](uri)."""

    def replace(match: re.Match) -> str:
        author_text = match.group(1)
        year_with_suffix = match.group(2)
        target = _lookup(index, author_text, year_with_suffix[:4])
        if target is None:
            return match.group(0)
        return f"[{author_text} ({year_with_suffix})]({target.uri})"

    return NARRATIVE_RE.sub(replace, text)


def strip_placeholder_markers(text: str) -> str:
    """Drop [itemId:N] markers echoed from the prompt."""
    return PLACEHOLDER_MARKER_RE.sub("", text)


def resolve_citations(prose: str, sources: list) -> str:
    """
    Link every resolvable citation in prose to its source.

    Never raises; with no indexable sources the prose is returned unchanged.
    """
    index = build_citation_index(sources)
    if not index:
        return prose

    result = link_parenthetical(prose, index)
    result = link_narrative(result, index)
    return strip_placeholder_markers(result)
