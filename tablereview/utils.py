"""
Shared utilities for the review pipeline.
"""

import re
from pathlib import Path
from typing import Optional

YEAR_RE = re.compile(r"(\d{4})")


def ensure_dir(path: Path) -> Path:
    """Ensure a directory exists, creating it if necessary."""
    path.mkdir(parents=True, exist_ok=True)
    return path


def safe_filename(text: str, max_length: int = 50) -> str:
    """
    Convert text to a safe filename.

    Args:
        text: The text to convert
        max_length: Maximum length of the filename

    Returns:
        A safe filename string
    """
    safe = "".join(c if c.isalnum() or c in "._- " else "_" for c in text)
    safe = safe.replace(" ", "_")
    while "__" in safe:
        safe = safe.replace("__", "_")
    if len(safe) > max_length:
        safe = safe[:max_length].rstrip("_")
    return safe or "review"


def truncate_text(text: str, max_length: int = 100, suffix: str = "...") -> str:
    """
    Keep the first max_length characters of text and append suffix when
    anything was cut, so the result is at most max_length + len(suffix) long.
    """
    if len(text) <= max_length:
        return text
    return text[:max_length] + suffix


def extract_year(date_str: Optional[str]) -> Optional[str]:
    """First four-digit run in a date string, or None."""
    match = YEAR_RE.search(date_str or "")
    return match.group(1) if match else None


def last_token(text: str) -> str:
    """Last whitespace-delimited word of text ("F. Begarin" -> "Begarin")."""
    parts = text.strip().split()
    return parts[-1] if parts else ""
