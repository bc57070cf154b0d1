"""A1-style reference arithmetic."""

from __future__ import annotations

import re

_CELL_RE = re.compile(r"\$?([A-Za-z]+)\$?(\d+)")


def column_letters(index: int) -> str:
    """Convert a 1-based column index to letters (``1`` -> ``A``, ``27`` -> ``AA``)."""

    letters: list[str] = []
    while index > 0:
        index, remainder = divmod(index - 1, 26)
        letters.append(chr(ord("A") + remainder))
    return "".join(reversed(letters))


def column_index(letters: str) -> int:
    """Convert column letters to a 1-based index; digits and ``$`` are ignored."""

    index = 0
    for char in letters.upper():
        if "A" <= char <= "Z":
            index = index * 26 + (ord(char) - ord("A") + 1)
    return index


def split_cell(cell: str) -> tuple[int, int] | None:
    match = _CELL_RE.fullmatch(cell.strip())
    if not match:
        return None
    col_letters, row_str = match.groups()
    return column_index(col_letters), int(row_str)


def cell_reference(row: int, column: int) -> str:
    return f"{column_letters(column)}{row}"
