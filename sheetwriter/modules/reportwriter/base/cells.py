"""Map resolved context values onto worksheet cell types."""

from __future__ import annotations

import json
import math
import numbers
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any

# OOXML cell type codes
NUMBER = "n"
STRING = "s"
BOOLEAN = "b"

EXCEL_EPOCH = datetime(1899, 12, 30)

_SECONDS_PER_DAY = 86400
_NUMERIC_TYPES = (numbers.Real, Decimal)


@dataclass(frozen=True)
class CellValue:
    """A typed cell value ready to be written into a ``<c>`` element."""

    cell_type: str
    raw: Any

    @property
    def text(self) -> str:
        """Serialized ``<v>`` content (string cells are indexed separately)."""

        if self.cell_type == STRING:
            return self.raw
        return format_number(self.raw)


def format_number(value: Any) -> str:
    if isinstance(value, bool):
        return str(int(value))
    if isinstance(value, int):
        return str(value)
    if isinstance(value, Decimal):
        return format(value, "f")
    if isinstance(value, numbers.Real):
        number = float(value)
        if number.is_integer():
            return str(int(number))
        return repr(number)
    return str(value)


def date_to_serial(value: date) -> float | int | None:
    """Convert a date to an Excel serial day number (1899-12-30 is day 0).

    The serial is built from the wall-clock fields so it names the same
    calendar day the caller sees. Timezone-aware datetimes are first moved to
    the local timezone. Dates before the epoch have no serial and return
    ``None``.
    """

    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone().replace(tzinfo=None)
        delta = value - EXCEL_EPOCH
        serial: float | int = delta.days + (delta.seconds + delta.microseconds / 1e6) / _SECONDS_PER_DAY
    else:
        serial = (value - EXCEL_EPOCH.date()).days
    if serial < 0:
        return None
    return serial


def value_to_string(value: Any) -> str:
    """Render a value for embedding in cell text.

    Mappings become compact JSON; lists and tuples join their items' own
    string forms with commas; missing values become an empty string.
    """

    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, _NUMERIC_TYPES):
        return format_number(value)
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Mapping):
        return json.dumps(value, default=str, ensure_ascii=False, separators=(",", ":"))
    if isinstance(value, (list, tuple)):
        return ",".join(value_to_string(item) for item in value)
    return str(value)


def classify(value: Any) -> CellValue | None:
    """Guess the cell type for ``value``.

    Returns ``None`` when the cell should be left empty: missing values,
    ``NaN``/``Infinity`` and dates without a valid serial.
    """

    if value is None:
        return None
    if isinstance(value, bool):
        return CellValue(BOOLEAN, int(value))
    if isinstance(value, Decimal) and not value.is_finite():
        return None
    if isinstance(value, _NUMERIC_TYPES):
        if not math.isfinite(value):
            return None
        return CellValue(NUMBER, value)
    if isinstance(value, date):
        serial = date_to_serial(value)
        if serial is None:
            return None
        return CellValue(NUMBER, serial)
    return CellValue(STRING, value_to_string(value))
