"""Expand the rows of one worksheet against the report context.

Each template row is turned into a *row plan* (target column to planned
cell) before anything is written. Column placeholders widen the plan in
place; ``table:`` placeholders hold one planned cell per item and decide how
many physical rows the template row becomes.
"""

from __future__ import annotations

import logging
from copy import deepcopy
from dataclasses import dataclass, field
from typing import Any, Union

from lxml import etree

from sheetwriter.modules.reportwriter.base.cells import BOOLEAN, STRING, CellValue
from sheetwriter.modules.reportwriter.base.package import namespace_prefix
from sheetwriter.modules.reportwriter.base.ranges import InsertionLog
from sheetwriter.modules.reportwriter.base.references import cell_reference, split_cell
from sheetwriter.modules.reportwriter.base.shared_strings import (
    COLUMN,
    TABLE,
    PlaceholderValue,
    SharedStringTable,
    plan_entry,
)

logger = logging.getLogger(__name__)

# Planned cell kinds
FORMULA = "formula"
COPY = "copy"
VALUE = "value"
EMPTY = "empty"


@dataclass(frozen=True)
class PlannedCell:
    """What to write for one output cell.

    ``template`` is the source ``<c>`` whose attributes (style included) are
    copied; it is never modified. ``children`` overrides the template's child
    nodes for copied cells whose inline text was substituted.
    """

    template: etree._Element
    kind: str
    value: CellValue | None = None
    children: tuple[etree._Element, ...] | None = None


@dataclass(frozen=True)
class TableSlot:
    template: etree._Element
    cells: tuple[PlannedCell, ...]

    def at(self, index: int) -> PlannedCell:
        if index < len(self.cells):
            return self.cells[index]
        return PlannedCell(self.template, EMPTY)


RowPlan = dict[int, Union[PlannedCell, TableSlot]]


@dataclass
class WorksheetResult:
    tree: etree._Element
    insertions: InsertionLog = field(default_factory=InsertionLog)


def _planned_value(template: etree._Element, value: CellValue | None) -> PlannedCell:
    if value is None:
        return PlannedCell(template, EMPTY)
    return PlannedCell(template, VALUE, value)


def _cell_placeholder(
    cell: etree._Element,
    strings: SharedStringTable,
    context: Any,
    prefix: str,
) -> tuple[PlaceholderValue | None, etree._Element | None]:
    """Return the cell's placeholder and, for inline strings, the rebuilt ``<is>``."""

    cell_type = cell.get("t")
    if cell_type == "s":
        value_node = cell.find(f"{prefix}v")
        text = (value_node.text or "").strip() if value_node is not None else ""
        if not text.isdigit():
            return None, None
        return strings.placeholder(int(text)), None
    if cell_type == "inlineStr":
        inline = cell.find(f"{prefix}is")
        if inline is None:
            return None, None
        item, placeholder = plan_entry(inline, context, prefix)
        return placeholder, item
    return None, None


def _plan_row(
    row: etree._Element,
    source_row: int,
    strings: SharedStringTable,
    context: Any,
    prefix: str,
) -> tuple[RowPlan, list[tuple[int, int]]]:
    """Build the row plan and the list of ``(template column, extra)`` insertions."""

    plan: RowPlan = {}
    inserts: list[tuple[int, int]] = []
    cell_offset = 0
    previous_column = 0
    for cell in row.findall(f"{prefix}c"):
        position = split_cell(cell.get("r", ""))
        column = position[0] if position else previous_column + 1
        previous_column = column
        target = column + cell_offset

        if cell.find(f"{prefix}f") is not None:
            plan[target] = PlannedCell(cell, FORMULA)
            continue

        placeholder, inline = _cell_placeholder(cell, strings, context, prefix)
        if placeholder is None:
            children = None
            if inline is not None:
                children = tuple(inline if child.tag == inline.tag else child for child in cell)
            plan[target] = PlannedCell(cell, COPY, children=children)
        elif placeholder.shape == TABLE:
            plan[target] = TableSlot(cell, tuple(_planned_value(cell, value) for value in placeholder.values))
        elif placeholder.shape == COLUMN:
            if not placeholder.values:
                plan[target] = PlannedCell(cell, EMPTY)
                continue
            for offset, value in enumerate(placeholder.values):
                plan[target + offset] = _planned_value(cell, value)
            extra = len(placeholder.values) - 1
            if extra:
                inserts.append((column, extra))
                cell_offset += extra
        else:
            plan[target] = _planned_value(cell, placeholder.values[0])

    logger.debug("Planned row %d with %d cells", source_row, len(plan))
    return plan, inserts


def _emit_cell(
    new_row: etree._Element,
    planned: PlannedCell,
    row: int,
    column: int,
    strings: SharedStringTable,
    prefix: str,
) -> None:
    template = planned.template
    cell = etree.SubElement(new_row, template.tag, dict(template.attrib))
    cell.set("r", cell_reference(row, column))

    if planned.kind == FORMULA:
        for child in template:
            if child.tag != f"{prefix}v":
                cell.append(deepcopy(child))
        return
    if planned.kind == COPY:
        for child in planned.children if planned.children is not None else template:
            cell.append(deepcopy(child))
        return

    cell.attrib.pop("t", None)
    if planned.kind == EMPTY:
        return

    value = planned.value
    value_node = etree.SubElement(cell, f"{prefix}v")
    if value.cell_type == STRING:
        cell.set("t", "s")
        value_node.text = str(strings.add_string(value.raw))
    else:
        if value.cell_type == BOOLEAN:
            cell.set("t", "b")
        value_node.text = value.text


def _refresh_spans(row: etree._Element, columns: list[int]) -> None:
    if "spans" in row.attrib and columns:
        row.set("spans", f"{min(columns)}:{max(columns)}")


def _update_dimension(tree: etree._Element, log: InsertionLog, bounds: list[int] | None, prefix: str) -> None:
    dimension = tree.find(f"{prefix}dimension")
    if dimension is None or bounds is None:
        return
    min_row, min_col, max_row, max_col = bounds
    start, _, end = log.shift_ref(dimension.get("ref", "")).partition(":")
    for point in filter(None, (split_cell(start), split_cell(end or start))):
        column, row = point
        min_row, max_row = min(min_row, row), max(max_row, row)
        min_col, max_col = min(min_col, column), max(max_col, column)
    first = cell_reference(min_row, min_col)
    last = cell_reference(max_row, max_col)
    dimension.set("ref", first if first == last else f"{first}:{last}")


def expand_worksheet(tree: etree._Element, strings: SharedStringTable, context: Any) -> WorksheetResult:
    """Expand ``tree`` into a new worksheet tree.

    The returned :class:`WorksheetResult` carries the rows and columns
    inserted, so ranges elsewhere in the package can be shifted to match.
    """

    prefix = namespace_prefix(tree)
    result = deepcopy(tree)
    log = InsertionLog()
    source_data = tree.find(f"{prefix}sheetData")
    sheet_data = result.find(f"{prefix}sheetData")
    if source_data is None or sheet_data is None:
        return WorksheetResult(result, log)

    for child in list(sheet_data):
        sheet_data.remove(child)

    row_offset = 0
    previous_row = 0
    bounds: list[int] | None = None
    template_rows = source_data.findall(f"{prefix}row")
    for row in template_rows:
        raw_index = row.get("r", "")
        source_row = int(raw_index) if raw_index.isdigit() else previous_row + 1
        previous_row = source_row

        plan, inserts = _plan_row(row, source_row, strings, context, prefix)
        for column, extra in inserts:
            log.record_columns(source_row, column, extra)

        slots = [entry for entry in plan.values() if isinstance(entry, TableSlot)]
        multiplicity = max([len(slot.cells) for slot in slots] + [1])
        trailing = [child for child in row if child.tag != f"{prefix}c"]
        columns = sorted(plan)

        for index in range(multiplicity):
            target_row = source_row + row_offset + index
            new_row = etree.SubElement(sheet_data, row.tag, dict(row.attrib))
            new_row.set("r", str(target_row))
            for column in columns:
                entry = plan[column]
                planned = entry.at(index) if isinstance(entry, TableSlot) else entry
                _emit_cell(new_row, planned, target_row, column, strings, prefix)
            for child in trailing:
                new_row.append(deepcopy(child))
            _refresh_spans(new_row, columns)
            if columns:
                if bounds is None:
                    bounds = [target_row, columns[0], target_row, columns[-1]]
                else:
                    bounds = [
                        min(bounds[0], target_row),
                        min(bounds[1], columns[0]),
                        max(bounds[2], target_row),
                        max(bounds[3], columns[-1]),
                    ]

        log.record_rows(source_row, multiplicity - 1)
        row_offset += multiplicity - 1

    _update_dimension(result, log, bounds, prefix)
    logger.debug(
        "Expanded %d template rows into %d rows",
        len(template_rows),
        len(template_rows) + row_offset,
    )
    return WorksheetResult(result, log)


def count_string_references(tree: etree._Element) -> int:
    """Number of cells in ``tree`` that reference the shared-string table."""

    prefix = namespace_prefix(tree)
    return sum(1 for cell in tree.iter(f"{prefix}c") if cell.get("t") == "s")


def find_cell(tree: etree._Element, row: int, column: int) -> etree._Element | None:
    prefix = namespace_prefix(tree)
    reference = cell_reference(row, column)
    for cell in tree.iter(f"{prefix}c"):
        if cell.get("r") == reference:
            return cell
    return None
