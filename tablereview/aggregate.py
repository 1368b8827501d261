"""
Aggregate per-source tables into one corpus document and an Excel matrix.

All sources are filled from the same template, so the table header is sent
once at the top and each source contributes only its label and data rows.
"""

import re
from pathlib import Path
from typing import Optional

import pandas as pd

from .scheduler import is_placeholder

SEPARATOR_ROW_RE = re.compile(r"^\|[\s\-:|]+\|$")
UNKNOWN = "unknown"

HEADER_PREAMBLE = "**Table structure (every data row below follows this header):**"
BLOCK_SEPARATOR = "\n\n---\n\n"

FIXED_COLUMNS = ("Source #", "Author", "Year", "Title", "Status", "Error")
TABLE_COLUMN_PREFIX = "Table: "


def split_table(table_text: str) -> tuple[str, str, str]:
    """
    Split table markdown into header, data rows and free text.

    The header is every pipe line up to and including the first separator
    row (|---|---|). Later pipe lines are data rows; non-pipe lines are free
    text. Blank lines are dropped.

    Returns:
        Tuple of (header, data_rows, free_text), each newline-joined
    """
    header_lines = []
    data_lines = []
    text_lines = []
    header_done = False

    for line in table_text.split("\n"):
        stripped = line.strip()
        if not stripped:
            continue
        if stripped.startswith("|"):
            if not header_done:
                header_lines.append(stripped)
                if SEPARATOR_ROW_RE.match(stripped):
                    header_done = True
            else:
                data_lines.append(stripped)
        else:
            text_lines.append(stripped)

    return "\n".join(header_lines), "\n".join(data_lines), "\n".join(text_lines)


def first_author_surname(source) -> str:
    """Surname of the first creator, or "unknown"."""
    if not source.creators:
        return UNKNOWN
    return source.creators[0].surname or UNKNOWN


def source_year(source) -> str:
    return source.year or UNKNOWN


def source_label(index: int, source) -> str:
    if source is None:
        return f"> literature {index}"
    title = (source.title or "")[:80]
    return f"> literature {index}: {title} ({first_author_surname(source)}, {source_year(source)})"


def _sources_by_id(pairs: Optional[list]) -> dict:
    sources = {}
    for source, _ in pairs or []:
        sources.setdefault(source.id, source)
    return sources


def aggregate_tables(results: dict, pairs: Optional[list] = None) -> str:
    """
    Merge per-source tables into one document.

    Args:
        results: Source id -> table text, in the order to emit
        pairs: (Source, Attachment) tuples used to label each block

    Returns:
        Header preamble (when any table has a header) followed by one block
        per source, separated by horizontal rules
    """
    sources = _sources_by_id(pairs)

    global_header = ""
    parts = []

    for index, (source_id, table_text) in enumerate(results.items(), start=1):
        header, data_rows, free_text = split_table(table_text)

        if not global_header and header:
            global_header = header

        entry = source_label(index, sources.get(source_id))
        if free_text:
            entry += f"\n{free_text}"
        if data_rows:
            entry += f"\n{data_rows}"
        else:
            # Non-conforming output is passed through rather than dropped
            entry += f"\n{table_text}"
        parts.append(entry)

    result = ""
    if global_header:
        result += f"{HEADER_PREAMBLE}\n\n{global_header}{BLOCK_SEPARATOR}"
    result += BLOCK_SEPARATOR.join(parts)
    return result


def _cells(row: str) -> list:
    return [cell.strip() for cell in row.strip().strip("|").split("|")]


def table_to_record(table_text: str) -> dict:
    """
    Flatten a filled table into column -> value.

    Two-column "| Dimension | Content |" tables map each dimension to its
    content; wider tables map header cells to the first data row.
    """
    header, data_rows, _ = split_table(table_text)
    header_rows = [r for r in header.split("\n") if r and not SEPARATOR_ROW_RE.match(r)]
    rows = [_cells(r) for r in data_rows.split("\n") if r]
    if not header_rows or not rows:
        return {}

    columns = _cells(header_rows[0])
    if len(columns) == 2:
        return {row[0]: row[1] if len(row) > 1 else "" for row in rows if row and row[0]}
    return {col: rows[0][i] if i < len(rows[0]) else "" for i, col in enumerate(columns)}


def export_table_matrix(results: dict, pairs: list, output_path: Path) -> pd.DataFrame:
    """
    Write an Excel matrix with one row per source.

    Columns are generated from the table content; failed sources get a
    Status of "Error" and the placeholder message.
    """
    sources = _sources_by_id(pairs)
    rows = []

    for index, (source_id, table_text) in enumerate(results.items(), start=1):
        source = sources.get(source_id)
        row = {
            "Source #": index,
            "Author": first_author_surname(source) if source else UNKNOWN,
            "Year": source_year(source) if source else UNKNOWN,
            "Title": source.title if source else "",
        }
        if is_placeholder(table_text):
            row["Status"] = "Error"
            row["Error"] = table_text
        else:
            row["Status"] = "Success"
            for name, value in table_to_record(table_text).items():
                # Fixed columns keep their meaning; a clashing dimension is prefixed
                row[f"{TABLE_COLUMN_PREFIX}{name}" if name in FIXED_COLUMNS else name] = value
        rows.append(row)

    df = pd.DataFrame(rows)

    output_path.parent.mkdir(parents=True, exist_ok=True)
    df.to_excel(output_path, index=False, engine="openpyxl")
    return df
