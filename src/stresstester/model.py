"""Value types shared by the generators, the document session and the orchestrator."""

from __future__ import annotations

import bisect
from dataclasses import dataclass
from enum import Enum, Flag
from typing import Union

__all__ = [
    "Action",
    "CodeCompleteAction",
    "CursorInfoAction",
    "Page",
    "Position",
    "Range",
    "RangeInfoAction",
    "ReplaceTextAction",
    "RequestSet",
    "RewriteMode",
    "SourceLocationConverter",
]


@dataclass(frozen=True, slots=True)
class Position:
    """A 0-based UTF-8 byte offset with its 1-based line and byte column."""

    offset: int
    line: int
    column: int


@dataclass(frozen=True, slots=True)
class Range:
    """Half-open byte range between two positions."""

    start: Position
    end: Position

    def __post_init__(self) -> None:
        if self.end.offset < self.start.offset:
            raise ValueError(
                f"Range end {self.end.offset} precedes start {self.start.offset}"
            )

    @property
    def length(self) -> int:
        return self.end.offset - self.start.offset

    @property
    def is_empty(self) -> bool:
        return self.length == 0


class SourceLocationConverter:
    """Derive line/column pairs for byte offsets into ``text``."""

    def __init__(self, text: str) -> None:
        data = text.encode("utf-8")
        self._length = len(data)
        self._line_starts = [0]
        start = data.find(b"\n")
        while start != -1:
            self._line_starts.append(start + 1)
            start = data.find(b"\n", start + 1)

    def position(self, offset: int) -> Position:
        if offset < 0 or offset > self._length:
            raise ValueError(f"Offset {offset} outside of source (length {self._length})")
        line_index = bisect.bisect_right(self._line_starts, offset) - 1
        column = offset - self._line_starts[line_index] + 1
        return Position(offset=offset, line=line_index + 1, column=column)

    def range(self, start: int, end: int) -> Range:
        return Range(self.position(start), self.position(end))


@dataclass(frozen=True, slots=True)
class CursorInfoAction:
    """Point probe at a position."""

    position: Position


@dataclass(frozen=True, slots=True)
class RangeInfoAction:
    """Range probe over a source range."""

    range: Range


@dataclass(frozen=True, slots=True)
class CodeCompleteAction:
    """Completion request at a position."""

    position: Position


@dataclass(frozen=True, slots=True)
class ReplaceTextAction:
    """Replace the bytes covered by ``range`` with ``text``."""

    range: Range
    text: str


Action = Union[CursorInfoAction, RangeInfoAction, CodeCompleteAction, ReplaceTextAction]


class RequestSet(Flag):
    """Request kinds a run is allowed to issue."""

    NONE = 0
    CURSOR_INFO = 1 << 0
    RANGE_INFO = 1 << 1
    CODE_COMPLETE = 1 << 2
    ALL = CURSOR_INFO | RANGE_INFO | CODE_COMPLETE

    @property
    def value_names(self) -> list[str]:
        names: list[str] = []
        if RequestSet.CODE_COMPLETE in self:
            names.append("CodeComplete")
        if RequestSet.CURSOR_INFO in self:
            names.append("CursorInfo")
        if RequestSet.RANGE_INFO in self:
            names.append("RangeInfo")
        return names

    @classmethod
    def from_names(cls, names: list[str] | tuple[str, ...]) -> "RequestSet":
        """Build a set from user-facing names such as ``CursorInfo``."""
        lookup = {
            "cursorinfo": cls.CURSOR_INFO,
            "rangeinfo": cls.RANGE_INFO,
            "codecomplete": cls.CODE_COMPLETE,
            "all": cls.ALL,
        }
        result = cls.NONE
        for name in names:
            key = name.replace("-", "").replace("_", "").strip().lower()
            if key not in lookup:
                valid = ", ".join(["CursorInfo", "RangeInfo", "CodeComplete", "All"])
                raise ValueError(f"Unknown request kind '{name}'. Expected one of: {valid}")
            result |= lookup[key]
        return result


class RewriteMode(str, Enum):
    """Generator strategy used for a run."""

    NONE = "none"
    BASIC = "basic"
    INSIDE_OUT = "insideOut"
    CONCURRENT = "concurrent"


@dataclass(frozen=True, slots=True)
class Page:
    """One of ``count`` contiguous slices of an action plan, numbered from 1."""

    number: int = 1
    count: int = 1

    def __post_init__(self) -> None:
        if self.count < 1:
            raise ValueError(f"Page count must be positive, got {self.count}")
        if not 1 <= self.number <= self.count:
            raise ValueError(f"Page {self.number} outside of 1..{self.count}")

    @property
    def index(self) -> int:
        return self.number - 1

    @property
    def is_first(self) -> bool:
        return self.number == 1

    @classmethod
    def parse(cls, value: str) -> "Page":
        """Parse ``"2/4"`` (or ``"2 of 4"``) into a page."""
        text = value.strip().replace(" of ", "/")
        number, sep, count = text.partition("/")
        try:
            if not sep:
                return cls(int(number), 1)
            return cls(int(number), int(count))
        except ValueError as error:
            raise ValueError(f"Invalid page '{value}': {error}") from error

    def __str__(self) -> str:
        return f"{self.number}/{self.count}"
