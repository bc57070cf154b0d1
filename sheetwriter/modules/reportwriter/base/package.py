"""ZIP/XML access to the parts of an ``.xlsx`` package."""

from __future__ import annotations

import fnmatch
import io
import logging
import posixpath
import re
import zipfile

from lxml import etree

from sheetwriter.modules.reportwriter.base import TemplatePackageError

logger = logging.getLogger(__name__)

CONTENT_TYPES_PART = "[Content_Types].xml"
WORKBOOK_PART = "xl/workbook.xml"
WORKBOOK_RELS_PART = "xl/_rels/workbook.xml.rels"
CALC_CHAIN_PART = "xl/calcChain.xml"

RELATIONSHIP_NS = "http://schemas.openxmlformats.org/officeDocument/2006/relationships"
_XHTML_NS_RE = re.compile(rb' ?xmlns="http://www\.w3\.org/1999/xhtml"')


def namespace_prefix(node: etree._Element) -> str:
    ns = node.nsmap.get(None)
    return f"{{{ns}}}" if ns else ""


def local_name(node: etree._Element) -> str:
    return etree.QName(node).localname


def serialize_xml(tree: etree._Element) -> bytes:
    """Serialize a part, dropping stray XHTML default namespace declarations."""

    data = etree.tostring(tree, xml_declaration=True, encoding="UTF-8", standalone=True)
    return _XHTML_NS_RE.sub(b"", data)


def resolve_target(owner: str, target: str) -> str:
    """Turn a relationship ``Target`` into the member name it points at.

    Relative targets are joined to the directory of ``owner``, the part whose
    relationships declare them. Results always live under ``xl/``.
    """

    target = target.strip()
    if not target:
        return owner
    if target.startswith("/"):
        path = posixpath.normpath(target)
    else:
        path = posixpath.normpath(posixpath.join(posixpath.dirname(owner), target))
    path = path.lstrip("/")
    while path.startswith("../"):
        path = path[3:]
    return path if path.startswith("xl/") else f"xl/{path}"


def relationships_path(part_path: str) -> str:
    directory, name = posixpath.split(part_path)
    return posixpath.join(directory, "_rels", f"{name}.rels")


def relationship_targets(rels_tree: etree._Element | None) -> dict[str, str]:
    """Map relationship ids to their raw targets; empty for a missing part."""

    if rels_tree is None:
        return {}
    prefix = namespace_prefix(rels_tree)
    return {
        rel.get("Id"): rel.get("Target")
        for rel in rels_tree.iter(f"{prefix}Relationship")
        if rel.get("Id") and rel.get("Target")
    }


def parse_sheet_map(workbook_tree: etree._Element, rels_tree: etree._Element) -> dict[str, str]:
    """Map worksheet part paths to sheet names."""

    prefix = namespace_prefix(workbook_tree)
    r_ns = workbook_tree.nsmap.get("r") or RELATIONSHIP_NS
    rel_targets = relationship_targets(rels_tree)

    sheet_map: dict[str, str] = {}
    for sheet in workbook_tree.findall(f".//{prefix}sheet"):
        name = sheet.get("name")
        rel_id = sheet.get(f"{{{r_ns}}}id")
        if not name or not rel_id:
            continue
        target = rel_targets.get(rel_id)
        if not target:
            continue
        sheet_map[resolve_target(WORKBOOK_PART, target)] = name
    return sheet_map


class XlsxPackage:
    """In-memory view of an ``.xlsx`` package.

    Parts are read from the original archive; anything written is kept in an
    overlay and only materialised by :meth:`finalize`, which preserves the
    original member order and ZIP metadata.
    """

    def __init__(self, blob: bytes):
        try:
            with zipfile.ZipFile(io.BytesIO(blob)) as archive:
                self._infos = archive.infolist()
                self._files = {info.filename: archive.read(info.filename) for info in self._infos}
        except zipfile.BadZipFile as exc:
            logger.error("Template is not a ZIP archive: %s", exc)
            raise TemplatePackageError("Template is not a valid .xlsx package") from exc
        self._written: dict[str, bytes] = {}
        self._removed: set[str] = set()

    def has_entry(self, path: str) -> bool:
        if path in self._removed:
            return False
        return path in self._written or path in self._files

    def list_entries(self, pattern: str) -> list[str]:
        """Return member names matching ``pattern`` in the pattern's own folder."""

        directory = posixpath.dirname(pattern)
        return [
            name
            for name in self._files
            if name not in self._removed
            and posixpath.dirname(name) == directory
            and fnmatch.fnmatchcase(name, pattern)
        ]

    def read_bytes(self, path: str) -> bytes:
        if path in self._written:
            return self._written[path]
        if path in self._removed or path not in self._files:
            logger.error("Template package has no %s part", path)
            raise TemplatePackageError(f"Template package is missing {path}", path)
        return self._files[path]

    def read_text(self, path: str) -> str:
        return self.read_bytes(path).decode("utf-8")

    def read_xml(self, path: str) -> etree._Element:
        data = self.read_bytes(path)
        try:
            return etree.fromstring(data)
        except etree.XMLSyntaxError as exc:
            logger.error("Template part %s is not well-formed XML: %s", path, exc)
            raise TemplatePackageError(f"Template part {path} is not well-formed XML", path) from exc

    def read_optional_xml(self, path: str) -> etree._Element | None:
        if not self.has_entry(path):
            return None
        return self.read_xml(path)

    def write_text(self, path: str, text: str) -> None:
        self.write_bytes(path, text.encode("utf-8"))

    def write_bytes(self, path: str, data: bytes) -> None:
        self._removed.discard(path)
        self._written[path] = data

    def write_xml(self, path: str, tree: etree._Element) -> None:
        self.write_bytes(path, serialize_xml(tree))

    def remove(self, path: str) -> None:
        self._written.pop(path, None)
        self._removed.add(path)

    def finalize(self) -> bytes:
        output = io.BytesIO()
        with zipfile.ZipFile(output, "w", zipfile.ZIP_DEFLATED) as archive:
            for info in self._infos:
                filename = info.filename
                if filename in self._removed:
                    continue
                content = self._written.get(filename, self._files[filename])

                new_info = zipfile.ZipInfo(filename)
                new_info.date_time = info.date_time
                new_info.external_attr = info.external_attr
                new_info.internal_attr = info.internal_attr
                new_info.compress_type = info.compress_type
                new_info.flag_bits = info.flag_bits
                archive.writestr(new_info, content)

            for filename, content in self._written.items():
                if filename not in self._files:
                    archive.writestr(filename, content)
        return output.getvalue()
