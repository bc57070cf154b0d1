"""Placeholder accessor parsing and data resolution.

Placeholders take the form ``${accessor}`` or ``${table:accessor}``. The
accessor is a dot/bracket path such as ``client.contacts[0]["e-mail"]``. Paths
are resolved against the report context; whenever a list is reached and the
next segment is a field name, the rest of the path is applied to every element
of the list, so ``people.name`` yields the names of everyone in ``people``.
"""

from __future__ import annotations

import logging
import numbers
import re
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date
from functools import lru_cache
from typing import Any, Union

logger = logging.getLogger(__name__)

TABLE_QUALIFIER = "table:"

PLACEHOLDER_RE = re.compile(r"\$\{([^}]+)\}")

Segment = Union[str, int]

_QUOTES = ("'", '"')

# Parser states
_START = "start"
_NAME = "name"
_DOT = "dot"
_CLOSED = "closed"


class AccessorSyntaxError(ValueError):
    """Raised by :func:`tokenize_accessor` for malformed paths."""


@dataclass(frozen=True)
class Accessor:
    """Parsed placeholder body."""

    segments: tuple[Segment, ...]
    is_table: bool = False
    malformed: bool = False


def _coerce_segment(raw: str) -> Segment:
    if raw.isascii() and raw.isdigit():
        return int(raw)
    return raw


def _read_bracket(text: str, pos: int) -> tuple[Segment, int]:
    """Read a bracketed segment starting just after ``[``.

    Returns the segment and the position following the closing ``]``.
    """

    if pos < len(text) and text[pos] in _QUOTES:
        quote = text[pos]
        end = text.find(quote, pos + 1)
        if end == -1:
            raise AccessorSyntaxError(f"unterminated {quote} quote at {pos}")
        if end + 1 >= len(text) or text[end + 1] != "]":
            raise AccessorSyntaxError(f"expected ']' after quoted key at {end + 1}")
        return text[pos + 1 : end], end + 2

    end = text.find("]", pos)
    if end == -1:
        raise AccessorSyntaxError(f"unmatched '[' at {pos - 1}")
    raw = text[pos:end]
    if not raw or "[" in raw:
        raise AccessorSyntaxError(f"invalid bracket segment at {pos - 1}")
    return _coerce_segment(raw), end + 1


def tokenize_accessor(text: str) -> tuple[Segment, ...]:
    """Split an accessor path into field names and list indices.

    ``a.b[0]['c.d']`` becomes ``("a", "b", 0, "c.d")``. Unquoted numeric
    segments become ``int`` indices; quoted segments always stay strings.
    """

    segments: list[Segment] = []
    buffer: list[str] = []
    state = _START
    pos = 0
    while pos < len(text):
        char = text[pos]
        if char == ".":
            if state == _NAME:
                segments.append(_coerce_segment("".join(buffer)))
                buffer = []
            elif state != _CLOSED:
                raise AccessorSyntaxError(f"empty segment at {pos}")
            state = _DOT
            pos += 1
        elif char == "[":
            if state == _DOT:
                raise AccessorSyntaxError(f"unexpected '[' at {pos}")
            if state == _NAME:
                segments.append(_coerce_segment("".join(buffer)))
                buffer = []
            segment, pos = _read_bracket(text, pos + 1)
            segments.append(segment)
            state = _CLOSED
        elif char == "]":
            raise AccessorSyntaxError(f"unmatched ']' at {pos}")
        else:
            if state == _CLOSED:
                raise AccessorSyntaxError(f"unexpected {char!r} after ']' at {pos}")
            buffer.append(char)
            state = _NAME
            pos += 1

    if state == _NAME:
        segments.append(_coerce_segment("".join(buffer)))
    elif state == _DOT:
        raise AccessorSyntaxError("trailing '.'")
    return tuple(segments)


@lru_cache(maxsize=1024)
def parse_placeholder(body: str) -> Accessor:
    """Parse the text between ``${`` and ``}``.

    A malformed path never raises: the whole path is used as a single literal
    key, which in practice resolves to nothing and leaves the cell empty.
    """

    is_table = body.startswith(TABLE_QUALIFIER)
    path = body[len(TABLE_QUALIFIER) :] if is_table else body
    try:
        segments = tokenize_accessor(path)
    except AccessorSyntaxError as exc:
        logger.warning(
            "Unable to parse placeholder accessor %r (%s); treating it as a literal key",
            body,
            exc,
        )
        return Accessor((path,), is_table=is_table, malformed=True)
    return Accessor(segments, is_table=is_table)


def single_placeholder(text: str) -> Accessor | None:
    """Return the accessor when ``text`` consists of exactly one placeholder."""

    match = PLACEHOLDER_RE.fullmatch(text)
    if match is None:
        return None
    return parse_placeholder(match.group(1))


def _is_sequence(value: Any) -> bool:
    return isinstance(value, (list, tuple))


def _lookup(value: Any, segment: Segment) -> Any:
    if isinstance(value, Mapping):
        if segment in value:
            return value[segment]
        if isinstance(segment, int):
            return value.get(str(segment))
        return None
    if _is_sequence(value):
        if isinstance(segment, int) and segment < len(value):
            return value[segment]
        return None
    if isinstance(value, (str, bytes, numbers.Number, date)):
        return None
    if isinstance(segment, int) or segment.startswith("_"):
        return None
    return getattr(value, segment, None)


def resolve(context: Any, segments: tuple[Segment, ...]) -> Any:
    """Walk ``segments`` through ``context``.

    ``None`` (or a missing key) short-circuits to ``None``. A list followed by a
    field name broadcasts the remaining path over each element.
    """

    value = context
    for position, segment in enumerate(segments):
        if value is None:
            return None
        if _is_sequence(value) and isinstance(segment, str):
            remaining = segments[position:]
            return [resolve(item, remaining) for item in value]
        value = _lookup(value, segment)
    return value


def resolve_notation(context: Any, notation: str) -> Any:
    """Parse ``notation`` (with or without ``table:``) and resolve it."""

    return resolve(context, parse_placeholder(notation).segments)
