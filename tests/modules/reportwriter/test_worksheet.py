"""Tests for the worksheet expansion engine."""

from __future__ import annotations

from datetime import date

from lxml import etree

from sheetwriter.modules.reportwriter.base.shared_strings import SharedStringTable
from sheetwriter.modules.reportwriter.base.worksheet import count_string_references, expand_worksheet

NS = "http://schemas.openxmlformats.org/spreadsheetml/2006/main"
Q = f"{{{NS}}}"


def _strings(*texts: str, context=None) -> SharedStringTable:
    items = "".join(f"<si><t>{text}</t></si>" for text in texts)
    tree = etree.fromstring(f'<sst xmlns="{NS}">{items}</sst>'.encode())
    return SharedStringTable.from_tree(tree, context or {})


def _sheet(rows: str, dimension: str = "A1:C2") -> etree._Element:
    return etree.fromstring(
        f'<worksheet xmlns="{NS}"><dimension ref="{dimension}"/><sheetData>{rows}</sheetData></worksheet>'.encode()
    )


def _expand(rows: str, texts: tuple[str, ...], context, dimension: str = "A1:C2"):
    strings = _strings(*texts, context=context)
    result = expand_worksheet(_sheet(rows, dimension), strings, context)
    cells = {cell.get("r"): cell for cell in result.tree.iter(f"{Q}c")}
    return result, strings, cells


def _value(cell) -> str | None:
    node = cell.find(f"{Q}v")
    return None if node is None else node.text


def test_scalar_date_becomes_number():
    result, _strings_table, cells = _expand(
        '<row r="1"><c r="A1" s="3" t="s"><v>0</v></c></row>',
        ("${extractDate}",),
        {"extractDate": date(2013, 6, 1)},
    )

    cell = cells["A1"]
    assert cell.get("t") is None
    assert cell.get("s") == "3"
    assert _value(cell) == "41426"
    assert result.insertions.is_empty


def test_scalar_string_and_boolean_values():
    result, strings, cells = _expand(
        '<row r="1"><c r="A1" t="s"><v>0</v></c><c r="B1" t="s"><v>1</v></c></row>',
        ("${name}", "${active}"),
        {"name": "Acme", "active": True},
    )

    assert cells["A1"].get("t") == "s"
    assert strings.text_at(int(_value(cells["A1"]))) == "Acme"
    assert cells["B1"].get("t") == "b"
    assert _value(cells["B1"]) == "1"


def test_missing_value_leaves_styled_empty_cell():
    _result, _strings_table, cells = _expand(
        '<row r="1"><c r="A1" s="2" t="s"><v>0</v></c></row>',
        ("${nothing.here}",),
        {},
    )

    assert cells["A1"].get("s") == "2"
    assert cells["A1"].get("t") is None
    assert _value(cells["A1"]) is None


def test_column_expansion_shifts_following_cells():
    result, strings, cells = _expand(
        '<row r="1" spans="1:2"><c r="A1" t="s"><v>0</v></c><c r="B1" t="s"><v>1</v></c></row>',
        ("${dates}", "Static"),
        {"dates": [10, 20, 30]},
    )

    assert [_value(cells[ref]) for ref in ("A1", "B1", "C1")] == ["10", "20", "30"]
    assert strings.text_at(int(_value(cells["D1"]))) == "Static"
    row = result.tree.find(f"{Q}sheetData/{Q}row")
    assert row.get("spans") == "1:4"
    assert result.insertions.columns == {1: {1: 2}}
    assert result.tree.find(f"{Q}dimension").get("ref") == "A1:E2"


def test_table_expansion_emits_one_row_per_item():
    context = {"people": [{"name": "Ann", "age": 31}, {"name": "Bo", "age": 42}]}
    result, strings, cells = _expand(
        '<row r="1"><c r="A1" t="s"><v>0</v></c><c r="B1" t="s"><v>1</v></c></row>'
        '<row r="2"><c r="A2" t="s"><v>2</v></c></row>',
        ("${table:people.name}", "${table:people.age}", "Footer"),
        context,
    )

    rows = result.tree.findall(f"{Q}sheetData/{Q}row")
    assert [row.get("r") for row in rows] == ["1", "2", "3"]
    assert strings.text_at(int(_value(cells["A1"]))) == "Ann"
    assert strings.text_at(int(_value(cells["A2"]))) == "Bo"
    assert _value(cells["B1"]) == "31"
    assert _value(cells["B2"]) == "42"
    assert strings.text_at(int(_value(cells["A3"]))) == "Footer"
    assert result.insertions.rows == {1: 1}


def test_table_rows_repeat_plain_cells_and_pad_short_columns():
    context = {"a": [1, 3], "b": [2], "title": "T"}
    _result, strings, cells = _expand(
        '<row r="4"><c r="A4" t="s"><v>0</v></c><c r="B4" t="s"><v>1</v></c>'
        '<c r="C4" s="5" t="s"><v>2</v></c></row>',
        ("${title}", "${table:a}", "${table:b}"),
        context,
        dimension="A4:C4",
    )

    assert strings.text_at(int(_value(cells["A4"]))) == "T"
    assert strings.text_at(int(_value(cells["A5"]))) == "T"
    assert _value(cells["B5"]) == "3"
    assert _value(cells["C4"]) == "2"
    assert cells["C5"].get("s") == "5"
    assert _value(cells["C5"]) is None


def test_table_with_scalar_value_is_one_row():
    result, strings, cells = _expand(
        '<row r="1"><c r="A1" t="s"><v>0</v></c></row>',
        ("${table:owner.name}",),
        {"owner": {"name": "Solo"}},
    )

    assert strings.text_at(int(_value(cells["A1"]))) == "Solo"
    assert result.insertions.is_empty


def test_formula_cells_lose_cached_value_and_move():
    result, _strings_table, cells = _expand(
        '<row r="1"><c r="A1" t="s"><v>0</v></c><c r="B1"><f>SUM(C1:C3)</f><v>6</v></c></row>',
        ("${items}",),
        {"items": ["x", "y"]},
    )

    formula_cell = cells["C1"]
    assert formula_cell.find(f"{Q}f").text == "SUM(C1:C3)"
    assert formula_cell.find(f"{Q}v") is None
    assert "B1" in cells


def test_inline_string_placeholders():
    result, strings, cells = _expand(
        '<row r="1"><c r="A1" t="inlineStr"><is><t>${name}</t></is></c>'
        '<c r="B1" t="inlineStr"><is><t>Hi ${name}</t></is></c></row>',
        (),
        {"name": "Ann"},
    )

    assert cells["A1"].get("t") == "s"
    assert strings.text_at(int(_value(cells["A1"]))) == "Ann"
    assert cells["B1"].get("t") == "inlineStr"
    assert "".join(cells["B1"].itertext()) == "Hi Ann"


def test_plain_inline_string_is_copied():
    _result, strings, cells = _expand(
        '<row r="1"><c r="A1" t="inlineStr" s="3"><is><t>Hello</t></is></c></row>',
        (),
        {},
    )

    assert cells["A1"].get("t") == "inlineStr"
    assert cells["A1"].get("s") == "3"
    assert "".join(cells["A1"].itertext()) == "Hello"
    assert strings.to_tree(0).get("uniqueCount") == "0"


def test_cells_without_references_follow_previous_column():
    _result, _strings_table, cells = _expand(
        '<row r="2"><c r="B2"><v>1</v></c><c><v>2</v></c></row>',
        (),
        {},
    )

    assert _value(cells["C2"]) == "2"


def test_template_tree_is_not_mutated():
    sheet = _sheet('<row r="1"><c r="A1" t="s"><v>0</v></c></row>')
    before = etree.tostring(sheet)

    expand_worksheet(sheet, _strings("${table:items}", context={"items": [1, 2, 3]}), {"items": [1, 2, 3]})

    assert etree.tostring(sheet) == before


def test_duplicate_new_strings_share_an_index():
    result, strings, cells = _expand(
        '<row r="1"><c r="A1" t="s"><v>0</v></c><c r="B1" t="s"><v>1</v></c></row>',
        ("${first}", "${second}"),
        {"first": "same", "second": "same"},
    )

    assert _value(cells["A1"]) == _value(cells["B1"])
    assert strings.new_strings == ["same"]
    assert count_string_references(result.tree) == 2
