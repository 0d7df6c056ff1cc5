"""Descriptions of issued requests and the timing listener interface."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol

from .source_state import DocumentInfo

__all__ = ["NullListener", "RequestInfo", "RequestKind", "RequestListener"]


class RequestKind(str, Enum):
    """Logical request categories, also used as performance labels."""

    EDITOR_OPEN = "editorOpen"
    EDITOR_CLOSE = "editorClose"
    REPLACE_TEXT = "replaceText"
    CURSOR_INFO = "cursorInfo"
    CODE_COMPLETE = "codeComplete"
    RANGE_INFO = "rangeInfo"
    SEMANTIC_REFACTORING = "semanticRefactoring"


@dataclass(frozen=True, slots=True)
class RequestInfo:
    """What was asked of the service, kept for timing and failure reports."""

    kind: RequestKind
    document: DocumentInfo
    offset: int | None = None
    length: int | None = None
    text: str | None = None
    refactoring: str | None = None
    args: tuple[str, ...] = field(default=())

    def describe(self) -> str:
        details: list[str] = []
        if self.offset is not None:
            details.append(f"offset: {self.offset}")
        if self.length is not None:
            details.append(f"length: {self.length}")
        if self.refactoring is not None:
            details.append(f"refactoring: {self.refactoring}")
        if self.text is not None:
            details.append(f"text: {self.text!r}")
        suffix = f" ({', '.join(details)})" if details else ""
        return f"{self.kind.value} in {self.document.describe()}{suffix}"

    def __str__(self) -> str:
        return self.describe()


class RequestListener(Protocol):
    """Receives timing notifications from a document session."""

    def received_response(self, request: RequestInfo, seconds: float) -> None:
        ...

    def deserialized_tree(self, request: RequestInfo, seconds: float) -> None:
        ...


class NullListener:
    """Listener that ignores every notification."""

    def received_response(self, request: RequestInfo, seconds: float) -> None:
        return None

    def deserialized_tree(self, request: RequestInfo, seconds: float) -> None:
        return None
