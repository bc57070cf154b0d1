"""Rebuild the shared-string table with placeholder substitutions applied."""

from __future__ import annotations

import logging
from copy import deepcopy
from dataclasses import dataclass
from typing import Any

from lxml import etree

from sheetwriter.modules.reportwriter.base.accessors import (
    PLACEHOLDER_RE,
    Accessor,
    resolve,
    resolve_notation,
    single_placeholder,
)
from sheetwriter.modules.reportwriter.base.cells import CellValue, classify, value_to_string
from sheetwriter.modules.reportwriter.base.package import local_name, namespace_prefix

logger = logging.getLogger(__name__)

_XML_SPACE = "{http://www.w3.org/XML/1998/namespace}space"

# Placeholder shapes
SCALAR = "scalar"
COLUMN = "column"
TABLE = "table"


@dataclass(frozen=True)
class PlaceholderValue:
    """Resolved value of a cell holding exactly one placeholder.

    ``values`` holds one entry for scalars and one per item for column and
    table placeholders; ``None`` entries become empty cells.
    """

    shape: str
    values: tuple[CellValue | None, ...]


def resolve_placeholder(accessor: Accessor, context: Any) -> PlaceholderValue:
    value = resolve(context, accessor.segments)
    if value is None:
        return PlaceholderValue(SCALAR, (None,))
    if accessor.is_table:
        items = value if isinstance(value, (list, tuple)) else [value]
        return PlaceholderValue(TABLE, tuple(classify(item) for item in items))
    if isinstance(value, (list, tuple)):
        return PlaceholderValue(COLUMN, tuple(classify(item) for item in value))
    return PlaceholderValue(SCALAR, (classify(value),))


def substitute_text(text: str, context: Any) -> str:
    """Replace every placeholder in ``text`` with its string form."""

    return PLACEHOLDER_RE.sub(
        lambda match: value_to_string(resolve_notation(context, match.group(1))),
        text,
    )


def _set_text(node: etree._Element, text: str) -> None:
    node.text = text
    if text != text.strip():
        node.set(_XML_SPACE, "preserve")


def make_string_item(
    text: str,
    prefix: str,
    template: etree._Element | None = None,
    parent: etree._Element | None = None,
) -> etree._Element:
    """Build an ``<si>`` (or ``<is>``) holding a single ``<t>``.

    ``template`` supplies the tag and attributes to keep.
    """

    tag = template.tag if template is not None else f"{prefix}si"
    attrib = dict(template.attrib) if template is not None else {}
    if parent is not None:
        item = etree.SubElement(parent, tag, attrib)
    else:
        item = etree.Element(tag, attrib)
    _set_text(etree.SubElement(item, f"{prefix}t"), text)
    return item


def item_text(item: etree._Element, prefix: str) -> str:
    """Visible text of an ``<si>``/``<is>`` item (phonetic runs excluded)."""

    parts: list[str] = []
    for child in item:
        if child.tag == f"{prefix}t":
            parts.append(child.text or "")
        elif child.tag == f"{prefix}r":
            parts.extend(node.text or "" for node in child.findall(f"{prefix}t"))
    return "".join(parts)


def _substitute_runs(item: etree._Element, context: Any, prefix: str) -> etree._Element:
    """Substitute placeholders inside the run text of a rich-text item.

    Run properties and other markup are kept as they are; a placeholder must
    sit inside a single run to be replaced.
    """

    rebuilt = deepcopy(item)
    for text_node in rebuilt.iter(f"{prefix}t"):
        if text_node.text and PLACEHOLDER_RE.search(text_node.text):
            _set_text(text_node, substitute_text(text_node.text, context))
    return rebuilt


def plan_entry(
    item: etree._Element,
    context: Any,
    prefix: str,
) -> tuple[etree._Element, PlaceholderValue | None]:
    """Plan the substitution for one ``<si>``/``<is>`` item.

    Returns the replacement item and, when the item's whole text is one
    placeholder, the resolved placeholder. Such items are cleared to an empty
    ``<t/>`` because their value is written straight into the cells.
    """

    if item.find(f"{prefix}r") is not None:
        return _substitute_runs(item, context, prefix), None

    text_node = item.find(f"{prefix}t")
    if text_node is None:
        return deepcopy(item), None

    text = text_node.text or ""
    accessor = single_placeholder(text)
    if accessor is not None:
        return make_string_item("", prefix, template=item), resolve_placeholder(accessor, context)
    if not PLACEHOLDER_RE.search(text):
        return deepcopy(item), None
    return make_string_item(substitute_text(text, context), prefix, template=item), None


class SharedStringTable:
    """Shared strings for one generation run.

    Original entries keep their indices. Strings introduced while expanding
    worksheets are appended after them and deduplicated by exact text.
    """

    def __init__(
        self,
        tree: etree._Element,
        entries: list[etree._Element],
        placeholders: dict[int, PlaceholderValue],
    ):
        self._tree = tree
        self._prefix = namespace_prefix(tree)
        self.entries = entries
        self.placeholders = placeholders
        self._new_strings: list[str] = []
        self._new_indices: dict[str, int] = {}

    @classmethod
    def from_tree(cls, tree: etree._Element, context: Any) -> SharedStringTable:
        prefix = namespace_prefix(tree)
        entries: list[etree._Element] = []
        placeholders: dict[int, PlaceholderValue] = {}
        for index, item in enumerate(tree.findall(f"{prefix}si")):
            entry, placeholder = plan_entry(item, context, prefix)
            entries.append(entry)
            if placeholder is not None:
                placeholders[index] = placeholder
        logger.debug(
            "Planned %d shared strings with %d single-placeholder entries",
            len(entries),
            len(placeholders),
        )
        return cls(tree, entries, placeholders)

    @property
    def carried_count(self) -> int:
        return len(self.entries)

    @property
    def new_strings(self) -> list[str]:
        return list(self._new_strings)

    def placeholder(self, index: int) -> PlaceholderValue | None:
        return self.placeholders.get(index)

    def add_string(self, text: str) -> int:
        index = self._new_indices.get(text)
        if index is None:
            self._new_strings.append(text)
            index = self.carried_count + len(self._new_strings) - 1
            self._new_indices[text] = index
        return index

    def text_at(self, index: int) -> str | None:
        if 0 <= index < self.carried_count:
            return item_text(self.entries[index], self._prefix)
        offset = index - self.carried_count
        if 0 <= offset < len(self._new_strings):
            return self._new_strings[offset]
        return None

    def to_tree(self, reference_count: int | None = None) -> etree._Element:
        """Build the ``<sst>`` root for the rebuilt table."""

        root = deepcopy(self._tree)
        trailing = [child for child in root if not isinstance(child.tag, str) or local_name(child) != "si"]
        for child in list(root):
            root.remove(child)
        for entry in self.entries:
            root.append(deepcopy(entry))
        for text in self._new_strings:
            make_string_item(text, self._prefix, parent=root)
        for child in trailing:
            root.append(child)

        root.set("uniqueCount", str(self.carried_count + len(self._new_strings)))
        if reference_count is not None:
            root.set("count", str(reference_count))
        return root
