"""Low level helpers for turning the published booth sheet into rows.

The spreadsheet is edited by hand, so nothing here raises on odd input:
unbalanced quotes close implicitly, blank rows disappear and missing
cells read as empty strings.  Everything downstream works on plain
``Dict[str, str]`` rows keyed by the trimmed header text.
"""

from __future__ import annotations

import re
from typing import Dict, Iterable, List, Optional, Sequence

Row = Dict[str, str]

# Plain pipe, full-width pipe and box-drawing vertical line.
MULTI_VALUE_SEP = re.compile(r"[|\uff5c\u2502]+")


def tokenize_csv(text: str) -> List[List[str]]:
    """Split raw CSV text into rows of cells.

    ``"`` toggles quoted mode, ``""`` inside quotes is a literal quote,
    ``\\r`` outside quotes is dropped.  The last cell and row are always
    flushed, so the result is never empty.
    """

    if text.startswith("\ufeff"):
        text = text[1:]

    rows: List[List[str]] = []
    row: List[str] = []
    cell: List[str] = []
    in_quotes = False
    i = 0
    n = len(text)

    while i < n:
        ch = text[i]
        if in_quotes:
            if ch == '"':
                if i + 1 < n and text[i + 1] == '"':
                    cell.append('"')
                    i += 1
                else:
                    in_quotes = False
            else:
                cell.append(ch)
        elif ch == '"':
            in_quotes = True
        elif ch == ",":
            row.append("".join(cell))
            cell = []
        elif ch == "\n":
            row.append("".join(cell))
            cell = []
            rows.append(row)
            row = []
        elif ch != "\r":
            cell.append(ch)
        i += 1

    row.append("".join(cell))
    rows.append(row)
    return rows


def _is_blank(cells: Iterable[str]) -> bool:
    return all(not (c or "").strip() for c in cells)


def normalize_rows(rows: Sequence[Sequence[str]]) -> List[Row]:
    """Zip data rows against the first (header) row.

    Headers are trimmed but not de-duplicated; when a header repeats the
    right-most column wins.  Fully blank rows are dropped.
    """

    if not rows:
        return []

    headers = [(h or "").strip() for h in rows[0]]
    out: List[Row] = []
    for cells in rows[1:]:
        if _is_blank(cells):
            continue
        record: Row = {}
        for idx, header in enumerate(headers):
            value = cells[idx] if idx < len(cells) else ""
            record[header] = (value or "").strip()
        out.append(record)
    return out


def parse_csv(text: str) -> List[Row]:
    return normalize_rows(tokenize_csv(text or ""))


def pick(row: Row, aliases: Sequence[str]) -> Optional[str]:
    """Return the first non-empty value among ``aliases`` (in priority order).

    The sheet's headers have drifted between revisions (full-width vs
    half-width slashes, ``(自填)`` suffixes), so callers pass every known
    spelling, most current first.
    """

    for alias in aliases:
        wanted = alias.strip()
        for key, value in row.items():
            if key.strip() != wanted:
                continue
            if value is not None and str(value).strip():
                return str(value).strip()
            break
    return None


def split_multi(value: Optional[str]) -> Optional[List[str]]:
    """Split a ``|``-family separated cell; ``None`` stays ``None``."""

    if value is None:
        return None
    return [part.strip() for part in MULTI_VALUE_SEP.split(value) if part.strip()]
