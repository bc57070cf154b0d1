"""Render an ``.xlsx`` template against a report context."""

from __future__ import annotations

import logging
from typing import Any

from sheetwriter.conf import get_setting
from sheetwriter.modules.reportwriter.base.package import (
    CALC_CHAIN_PART,
    CONTENT_TYPES_PART,
    RELATIONSHIP_NS,
    WORKBOOK_PART,
    WORKBOOK_RELS_PART,
    XlsxPackage,
    namespace_prefix,
    parse_sheet_map,
    relationship_targets,
    relationships_path,
    resolve_target,
)
from sheetwriter.modules.reportwriter.base.ranges import (
    InsertionLog,
    shift_defined_names,
    shift_table,
    shift_worksheet_ranges,
)
from sheetwriter.modules.reportwriter.base.shared_strings import SharedStringTable, item_text
from sheetwriter.modules.reportwriter.base.worksheet import (
    WorksheetResult,
    count_string_references,
    expand_worksheet,
    find_cell,
)

logger = logging.getLogger(__name__)


class SheetwriterXlsxTemplate:
    """A workbook template that can be rendered any number of times.

    Every call to :meth:`render` starts again from the template bytes, so the
    shared-string table, offsets and insertion logs never leak between runs.
    """

    def __init__(self, blob: bytes):
        self.blob = blob
        self.worksheet_pattern = get_setting("SHEETWRITER_WORKSHEET_PATTERN")
        self.shared_strings_part = get_setting("SHEETWRITER_SHARED_STRINGS_PART")

    def render(self, context: Any) -> bytes:
        package = XlsxPackage(self.blob)
        strings = SharedStringTable.from_tree(package.read_xml(self.shared_strings_part), context)
        sheet_names = self._build_sheet_map(package)

        logs: dict[str, InsertionLog] = {}
        inserted = False
        reference_count = 0
        worksheets = package.list_entries(self.worksheet_pattern)
        for path in worksheets:
            result = expand_worksheet(package.read_xml(path), strings, context)
            if not result.insertions.is_empty:
                inserted = True
                shift_worksheet_ranges(result.tree, result.insertions)
                self._sync_tables(package, path, result, strings)
            reference_count += count_string_references(result.tree)
            package.write_xml(path, result.tree)
            if path in sheet_names:
                logs[sheet_names[path]] = result.insertions

        if inserted:
            workbook = package.read_optional_xml(WORKBOOK_PART)
            if workbook is not None and shift_defined_names(workbook, logs):
                package.write_xml(WORKBOOK_PART, workbook)
            self._drop_calc_chain(package)

        package.write_xml(self.shared_strings_part, strings.to_tree(reference_count))
        logger.debug(
            "Rendered %d worksheets with %d new shared strings",
            len(worksheets),
            len(strings.new_strings),
        )
        return package.finalize()

    def _build_sheet_map(self, package: XlsxPackage) -> dict[str, str]:
        workbook = package.read_optional_xml(WORKBOOK_PART)
        rels = package.read_optional_xml(WORKBOOK_RELS_PART)
        if workbook is None or rels is None:
            return {}
        return parse_sheet_map(workbook, rels)

    def _sync_tables(
        self,
        package: XlsxPackage,
        sheet_path: str,
        result: WorksheetResult,
        strings: SharedStringTable,
    ) -> None:
        """Shift the table parts attached to an expanded worksheet."""

        prefix = namespace_prefix(result.tree)
        table_parts = result.tree.find(f"{prefix}tableParts")
        if table_parts is None:
            return
        targets = relationship_targets(package.read_optional_xml(relationships_path(sheet_path)))
        r_ns = result.tree.nsmap.get("r") or RELATIONSHIP_NS

        def header_text(row: int, column: int) -> str | None:
            cell = find_cell(result.tree, row, column)
            if cell is None:
                return None
            if cell.get("t") == "inlineStr":
                inline = cell.find(f"{prefix}is")
                return item_text(inline, prefix) if inline is not None else None
            value = cell.find(f"{prefix}v")
            if value is None or value.text is None:
                return None
            if cell.get("t") == "s":
                return strings.text_at(int(value.text)) if value.text.isdigit() else None
            return value.text

        for table_part in table_parts.findall(f"{prefix}tablePart"):
            target = targets.get(table_part.get(f"{{{r_ns}}}id", ""))
            if not target:
                continue
            table_path = resolve_target(sheet_path, target)
            table_tree = package.read_optional_xml(table_path)
            if table_tree is None:
                logger.warning("Worksheet %s references missing table part %s", sheet_path, table_path)
                continue
            if shift_table(table_tree, result.insertions, header_text):
                package.write_xml(table_path, table_tree)

    def _drop_calc_chain(self, package: XlsxPackage) -> None:
        """Remove the calculation chain, which no longer matches the cells."""

        if not package.has_entry(CALC_CHAIN_PART):
            return
        package.remove(CALC_CHAIN_PART)

        content_types = package.read_optional_xml(CONTENT_TYPES_PART)
        if content_types is not None:
            prefix = namespace_prefix(content_types)
            for override in content_types.findall(f"{prefix}Override"):
                if override.get("PartName") == f"/{CALC_CHAIN_PART}":
                    content_types.remove(override)
            package.write_xml(CONTENT_TYPES_PART, content_types)

        rels = package.read_optional_xml(WORKBOOK_RELS_PART)
        if rels is not None:
            prefix = namespace_prefix(rels)
            for rel in rels.findall(f"{prefix}Relationship"):
                if resolve_target(WORKBOOK_PART, rel.get("Target", "")) == CALC_CHAIN_PART:
                    rels.remove(rel)
            package.write_xml(WORKBOOK_RELS_PART, rels)
        logger.debug("Removed %s after inserting rows or columns", CALC_CHAIN_PART)


def render_xlsx(blob: bytes, context: Any) -> bytes:
    return SheetwriterXlsxTemplate(blob).render(context)
