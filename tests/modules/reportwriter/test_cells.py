"""Tests for cell value classification."""

from __future__ import annotations

import math
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

from sheetwriter.modules.reportwriter.base.cells import (
    BOOLEAN,
    NUMBER,
    STRING,
    CellValue,
    classify,
    date_to_serial,
    value_to_string,
)


def test_classify_missing_and_non_finite():
    assert classify(None) is None
    assert classify(math.nan) is None
    assert classify(math.inf) is None
    assert classify(-math.inf) is None


def test_classify_non_finite_decimal():
    assert classify(Decimal("NaN")) is None
    assert classify(Decimal("sNaN")) is None
    assert classify(Decimal("-Infinity")) is None
    assert classify(Decimal("2.50")) == CellValue(NUMBER, Decimal("2.50"))


def test_classify_boolean():
    assert classify(True) == CellValue(BOOLEAN, 1)
    assert classify(False) == CellValue(BOOLEAN, 0)


def test_classify_numbers():
    assert classify(7) == CellValue(NUMBER, 7)
    assert classify(2.5).text == "2.5"
    assert classify(3.0).text == "3"
    assert classify(Decimal("1.10")).text == "1.10"


def test_classify_date_serial():
    assert classify(date(2013, 6, 1)) == CellValue(NUMBER, 41426)
    assert classify(datetime(2013, 6, 1, 12, 0)) == CellValue(NUMBER, 41426.5)


def test_date_serial_is_stable():
    assert date_to_serial(date(2013, 6, 1)) == date_to_serial(date(2013, 6, 1)) == 41426
    assert date_to_serial(date(1899, 12, 30)) == 0


def test_aware_datetime_uses_local_wall_clock():
    value = datetime(2013, 6, 1, 8, 0, tzinfo=timezone(timedelta(hours=2)))
    local = value.astimezone().replace(tzinfo=None)

    assert date_to_serial(value) == date_to_serial(local)


def test_classify_dates_before_epoch_are_invalid():
    assert classify(date(1800, 1, 1)) is None


def test_classify_strings_and_structures():
    assert classify("hello") == CellValue(STRING, "hello")
    assert classify({"a": 1, "b": [1, 2]}) == CellValue(STRING, '{"a":1,"b":[1,2]}')
    assert classify(["a", 1, None, True]) == CellValue(STRING, "a,1,,true")


def test_value_to_string():
    assert value_to_string(None) == ""
    assert value_to_string(0) == "0"
    assert value_to_string(False) == "false"
    assert value_to_string(date(2024, 3, 9)) == "2024-03-09"
    assert value_to_string([[1, 2], 3]) == "1,2,3"
