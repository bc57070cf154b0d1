"""Fixtures building small ``.xlsx`` packages in memory."""

from __future__ import annotations

import io
import zipfile
from xml.sax.saxutils import escape

import pytest
from lxml import etree

NS = "http://schemas.openxmlformats.org/spreadsheetml/2006/main"
R_NS = "http://schemas.openxmlformats.org/officeDocument/2006/relationships"

CONTENT_TYPES_XML = (
    '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>'
    '<Types xmlns="http://schemas.openxmlformats.org/package/2006/content-types">'
    '<Default Extension="rels" ContentType="application/vnd.openxmlformats-package.relationships+xml"/>'
    '<Default Extension="xml" ContentType="application/xml"/>'
    '<Override PartName="/xl/workbook.xml" '
    'ContentType="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet.main+xml"/>'
    '<Override PartName="/xl/worksheets/sheet1.xml" '
    'ContentType="application/vnd.openxmlformats-officedocument.spreadsheetml.worksheet+xml"/>'
    '<Override PartName="/xl/sharedStrings.xml" '
    'ContentType="application/vnd.openxmlformats-officedocument.spreadsheetml.sharedStrings+xml"/>'
    '<Override PartName="/xl/calcChain.xml" '
    'ContentType="application/vnd.openxmlformats-officedocument.spreadsheetml.calcChain+xml"/>'
    "</Types>"
)

WORKBOOK_XML = (
    '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>'
    f'<workbook xmlns="{NS}" xmlns:r="{R_NS}">'
    '<sheets><sheet name="Findings" sheetId="1" r:id="rId1"/></sheets>'
    "{defined_names}"
    "</workbook>"
)

WORKBOOK_RELS_XML = (
    '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>'
    '<Relationships xmlns="http://schemas.openxmlformats.org/package/2006/relationships">'
    f'<Relationship Id="rId1" Type="{R_NS}/worksheet" Target="worksheets/sheet1.xml"/>'
    f'<Relationship Id="rId2" Type="{R_NS}/sharedStrings" Target="sharedStrings.xml"/>'
    f'<Relationship Id="rId3" Type="{R_NS}/calcChain" Target="calcChain.xml"/>'
    "</Relationships>"
)

CALC_CHAIN_XML = f'<?xml version="1.0" encoding="UTF-8" standalone="yes"?><calcChain xmlns="{NS}"><c r="C1" i="1"/></calcChain>'


def shared_strings_xml(*entries: str) -> str:
    """Build an ``<sst>``; entries starting with ``<`` are used as raw ``<si>`` content."""

    items = "".join(f"<si>{entry}</si>" if entry.startswith("<") else f"<si><t>{escape(entry)}</t></si>" for entry in entries)
    return (
        '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>'
        f'<sst xmlns="{NS}" count="{len(entries)}" uniqueCount="{len(entries)}">{items}</sst>'
    )


def worksheet_xml(rows: str, *, dimension: str | None = "A1:C3", after: str = "") -> str:
    dimension_xml = f'<dimension ref="{dimension}"/>' if dimension else ""
    return (
        '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>'
        f'<worksheet xmlns="{NS}" xmlns:r="{R_NS}">'
        f"{dimension_xml}<sheetData>{rows}</sheetData>{after}"
        "</worksheet>"
    )


def build_xlsx(
    sheet: str,
    strings: str,
    *,
    defined_names: str = "",
    extra_files: dict[str, str] | None = None,
    calc_chain: bool = True,
) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as archive:
        archive.writestr("[Content_Types].xml", CONTENT_TYPES_XML)
        archive.writestr("xl/workbook.xml", WORKBOOK_XML.format(defined_names=defined_names))
        archive.writestr("xl/_rels/workbook.xml.rels", WORKBOOK_RELS_XML)
        archive.writestr("xl/worksheets/sheet1.xml", sheet)
        archive.writestr("xl/sharedStrings.xml", strings)
        if calc_chain:
            archive.writestr("xl/calcChain.xml", CALC_CHAIN_XML)
        for name, data in (extra_files or {}).items():
            archive.writestr(name, data)
    return buffer.getvalue()


def read_part(blob: bytes, name: str) -> etree._Element:
    with zipfile.ZipFile(io.BytesIO(blob)) as archive:
        return etree.fromstring(archive.read(name))


def raw_part(blob: bytes, name: str) -> bytes:
    with zipfile.ZipFile(io.BytesIO(blob)) as archive:
        return archive.read(name)


def part_names(blob: bytes) -> list[str]:
    with zipfile.ZipFile(io.BytesIO(blob)) as archive:
        return archive.namelist()


def sheet_cells(blob: bytes, name: str = "xl/worksheets/sheet1.xml") -> dict[str, etree._Element]:
    tree = read_part(blob, name)
    return {cell.get("r"): cell for cell in tree.iter(f"{{{NS}}}c")}


def shared_texts(blob: bytes) -> list[str]:
    tree = read_part(blob, "xl/sharedStrings.xml")
    return ["".join(item.itertext()) for item in tree.findall(f"{{{NS}}}si")]


@pytest.fixture
def xlsx():
    """Namespace of builders and readers for test workbooks."""

    class Builders:
        ns = NS
        shared_strings = staticmethod(shared_strings_xml)
        worksheet = staticmethod(worksheet_xml)
        build = staticmethod(build_xlsx)
        read = staticmethod(read_part)
        raw = staticmethod(raw_part)
        names = staticmethod(part_names)
        cells = staticmethod(sheet_cells)
        texts = staticmethod(shared_texts)

    return Builders
