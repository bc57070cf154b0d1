"""Keep sheet ranges in step with rows and columns inserted during expansion.

Every coordinate handled here is a *template* coordinate. A range start moves
to the first physical row/column produced from its source position and a range
end to the last, so ranges covering an expanded row or column grow with it.
Column insertions differ from row to row; a range's columns are shifted using
the insertions recorded on its first row, which is an approximation for ranges
spanning rows with uneven column expansion.
"""

from __future__ import annotations

import logging
import re
from typing import Callable

from lxml import etree

from sheetwriter.modules.reportwriter.base.package import namespace_prefix
from sheetwriter.modules.reportwriter.base.references import column_index, column_letters

logger = logging.getLogger(__name__)

_POINT_RE = re.compile(r"(\$?)([A-Za-z]{1,3})(\$?)(\d+)")
_SHEET_REF_RE = re.compile(
    r"(?P<sheet>'(?:[^']|'')+'|[A-Za-z_¡-￿][\w.¡-￿]*)!"
    r"(?P<ref>\$?[A-Za-z]{1,3}\$?\d+(?::\$?[A-Za-z]{1,3}\$?\d+)?)"
)


def _format_point(match: re.Match[str], row: int, column: int) -> str:
    col_abs, _letters, row_abs, _digits = match.groups()
    return f"{col_abs}{column_letters(column)}{row_abs}{row}"


def _parse_ref(ref: str) -> list[tuple[re.Match[str], int, int]] | None:
    """Split ``A1`` or ``A1:B2`` into ``(match, row, column)`` points."""

    points = []
    for part in ref.split(":"):
        match = _POINT_RE.fullmatch(part)
        if match is None:
            return None
        points.append((match, int(match.group(4)), column_index(match.group(2))))
    if len(points) not in (1, 2):
        return None
    return points


class InsertionLog:
    """Rows and columns inserted while expanding one worksheet."""

    def __init__(self) -> None:
        self.rows: dict[int, int] = {}
        self.columns: dict[int, dict[int, int]] = {}

    @property
    def is_empty(self) -> bool:
        return not self.rows and not self.columns

    def record_rows(self, source_row: int, extra: int) -> None:
        if extra > 0:
            self.rows[source_row] = self.rows.get(source_row, 0) + extra

    def record_columns(self, source_row: int, column: int, extra: int) -> None:
        if extra > 0:
            row_columns = self.columns.setdefault(source_row, {})
            row_columns[column] = row_columns.get(column, 0) + extra

    def map_row(self, row: int, *, end: bool = False) -> int:
        shifted = row + sum(extra for source, extra in self.rows.items() if source < row)
        if end:
            shifted += self.rows.get(row, 0)
        return shifted

    def map_column(self, row: int, column: int, *, end: bool = False) -> int:
        inserted = self.columns.get(row)
        if not inserted:
            return column
        shifted = column + sum(extra for source, extra in inserted.items() if source < column)
        if end:
            shifted += inserted.get(column, 0)
        return shifted

    def shift_ref(self, ref: str) -> str:
        """Shift a cell (``B3``) or area (``$A$1:C4``) reference."""

        points = _parse_ref(ref)
        if points is None:
            return ref
        anchor_row = points[0][1]
        start_match, start_row, start_col = points[0]
        shifted = [
            _format_point(
                start_match,
                self.map_row(start_row),
                self.map_column(anchor_row, start_col),
            )
        ]
        if len(points) == 2:
            end_match, end_row, end_col = points[1]
            shifted.append(
                _format_point(
                    end_match,
                    self.map_row(end_row, end=True),
                    self.map_column(anchor_row, end_col, end=True),
                )
            )
        return ":".join(shifted)

    def shift_sqref(self, sqref: str) -> str:
        return " ".join(self.shift_ref(part) for part in sqref.split())

    def replicate_ref(self, ref: str) -> list[str]:
        """Shift a merged range, repeating it for every copy of an expanded row."""

        points = _parse_ref(ref)
        if points is None or len(points) != 2:
            return [self.shift_ref(ref)]
        (start_match, start_row, start_col), (end_match, end_row, end_col) = points
        extra = self.rows.get(start_row, 0)
        if start_row != end_row or not extra:
            return [self.shift_ref(ref)]

        first_row = self.map_row(start_row)
        first_col = self.map_column(start_row, start_col)
        last_col = self.map_column(start_row, end_col, end=True)
        return [
            f"{_format_point(start_match, first_row + offset, first_col)}:"
            f"{_format_point(end_match, first_row + offset, last_col)}"
            for offset in range(extra + 1)
        ]


def shift_worksheet_ranges(tree: etree._Element, log: InsertionLog) -> None:
    """Shift merged cells, filters, formatting, validation and hyperlinks."""

    if log.is_empty:
        return
    prefix = namespace_prefix(tree)

    merge_cells = tree.find(f"{prefix}mergeCells")
    if merge_cells is not None:
        merged = list(merge_cells.findall(f"{prefix}mergeCell"))
        for merge in merged:
            refs = log.replicate_ref(merge.get("ref", ""))
            merge.set("ref", refs[0])
            anchor = merge
            for ref in refs[1:]:
                duplicate = etree.Element(merge.tag, dict(merge.attrib))
                duplicate.set("ref", ref)
                anchor.addnext(duplicate)
                anchor = duplicate
        merge_cells.set("count", str(len(merge_cells.findall(f"{prefix}mergeCell"))))

    for auto_filter in tree.findall(f"{prefix}autoFilter"):
        if auto_filter.get("ref"):
            auto_filter.set("ref", log.shift_ref(auto_filter.get("ref")))
    for formatting in tree.findall(f"{prefix}conditionalFormatting"):
        if formatting.get("sqref"):
            formatting.set("sqref", log.shift_sqref(formatting.get("sqref")))
    for validation in tree.findall(f"{prefix}dataValidations/{prefix}dataValidation"):
        if validation.get("sqref"):
            validation.set("sqref", log.shift_sqref(validation.get("sqref")))
    for hyperlink in tree.findall(f"{prefix}hyperlinks/{prefix}hyperlink"):
        if hyperlink.get("ref"):
            hyperlink.set("ref", log.shift_ref(hyperlink.get("ref")))


def shift_table(
    table_tree: etree._Element,
    log: InsertionLog,
    header_text: Callable[[int, int], str | None] | None = None,
) -> bool:
    """Shift a table part's range; returns ``True`` when it changed.

    When columns were inserted inside the table, ``tableColumns`` grows to
    match, naming new columns after the (already expanded) header cells.
    """

    ref = table_tree.get("ref")
    if not ref:
        return False
    new_ref = log.shift_ref(ref)
    if new_ref == ref:
        return False

    prefix = namespace_prefix(table_tree)
    table_tree.set("ref", new_ref)
    for auto_filter in table_tree.findall(f"{prefix}autoFilter"):
        auto_filter.set("ref", new_ref)

    points = _parse_ref(new_ref)
    table_columns = table_tree.find(f"{prefix}tableColumns")
    if points is None or len(points) != 2 or table_columns is None:
        return True

    (_start, header_row, start_col), (_end, _end_row, end_col) = points
    existing = list(table_columns.findall(f"{prefix}tableColumn"))
    desired = end_col - start_col + 1
    if len(existing) >= desired:
        return True

    has_header = table_tree.get("headerRowCount", "1") != "0"
    names = {column.get("name") for column in existing}
    max_id = max((int(column.get("id", "0") or 0) for column in existing), default=0)
    anchor = existing[-1] if existing else None
    for offset in range(len(existing), desired):
        max_id += 1
        name = header_text(header_row, start_col + offset) if header_text and has_header else None
        if not name or name in names:
            name = f"Column{max_id}"
        names.add(name)
        column = etree.Element(f"{prefix}tableColumn", {"id": str(max_id), "name": name})
        if anchor is None:
            table_columns.append(column)
        else:
            anchor.addnext(column)
        anchor = column
    table_columns.set("count", str(desired))
    logger.debug("Table %s widened to %d columns", table_tree.get("name"), desired)
    return True


def _unquote_sheet(name: str) -> str:
    if name.startswith("'") and name.endswith("'"):
        return name[1:-1].replace("''", "'")
    return name


def shift_defined_names(workbook_tree: etree._Element, logs: dict[str, InsertionLog]) -> bool:
    """Shift sheet-qualified references in ``definedName`` formulas."""

    active = {name: log for name, log in logs.items() if not log.is_empty}
    if not active:
        return False

    def replace(match: re.Match[str]) -> str:
        log = active.get(_unquote_sheet(match.group("sheet")))
        if log is None:
            return match.group(0)
        return f"{match.group('sheet')}!{log.shift_ref(match.group('ref'))}"

    prefix = namespace_prefix(workbook_tree)
    changed = False
    for defined_name in workbook_tree.findall(f"{prefix}definedNames/{prefix}definedName"):
        text = defined_name.text or ""
        shifted = _SHEET_REF_RE.sub(replace, text)
        if shifted != text:
            defined_name.text = shifted
            changed = True
    return changed
