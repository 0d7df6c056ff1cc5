"""Request vocabulary and response types of the analysis service."""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Protocol

__all__ = [
    "FailureKind",
    "Key",
    "RequestName",
    "ServiceConnection",
    "ServiceFailure",
    "ServiceRequest",
    "ServiceResponse",
    "Value",
]

ServiceRequest = Dict[str, Any]


class RequestName:
    """Values of :attr:`Key.REQUEST`."""

    EDITOR_OPEN = "source.request.editor.open"
    EDITOR_CLOSE = "source.request.editor.close"
    EDITOR_REPLACE_TEXT = "source.request.editor.replacetext"
    CURSOR_INFO = "source.request.cursorinfo"
    RANGE_INFO = "source.request.rangeinfo"
    CODE_COMPLETE = "source.request.codecomplete"
    SEMANTIC_REFACTORING = "source.request.semantic.refactoring"


class Key:
    """Request and response dictionary keys."""

    REQUEST = "key.request"
    SOURCE_FILE = "key.sourcefile"
    SOURCE_TEXT = "key.sourcetext"
    NAME = "key.name"
    OFFSET = "key.offset"
    LENGTH = "key.length"
    LINE = "key.line"
    COLUMN = "key.column"
    COMPILER_ARGS = "key.compilerargs"
    ACTION_UID = "key.actionuid"
    ACTION_NAME = "key.actionname"
    RETRIEVE_REFACTOR_ACTIONS = "key.retrieve_refactor_actions"
    REFACTOR_ACTIONS = "key.refactor_actions"
    TYPE_NAME = "key.typename"
    ENABLE_SYNTAX_MAP = "key.enablesyntaxmap"
    ENABLE_SUBSTRUCTURE = "key.enablesubstructure"
    SYNTACTIC_ONLY = "key.syntactic_only"
    SYNTAX_TREE_TRANSFER_MODE = "key.syntaxtreetransfermode"
    SYNTAX_TREE_SERIALIZATION_FORMAT = "key.syntax_tree_serialization_format"
    SERIALIZED_SYNTAX_TREE = "key.serialized_syntax_tree"


class Value:
    """Enumerated request values."""

    SYNTAX_TREE_TRANSFER_OFF = "source.syntaxtree.transfer.off"
    SYNTAX_TREE_TRANSFER_INCREMENTAL = "source.syntaxtree.transfer.incremental"
    SYNTAX_TREE_TRANSFER_FULL = "source.syntaxtree.transfer.full"
    SYNTAX_TREE_FORMAT_JSON = "source.syntaxtree.serialization.format.json"
    SYNTAX_TREE_FORMAT_BYTE_TREE = "source.syntaxtree.serialization.format.bytetree"


class FailureKind(str, Enum):
    """Ways a request can fail at the service level."""

    REQUEST_FAILED = "requestFailed"
    CONNECTION_INTERRUPTED = "connectionInterrupted"
    CRASHED = "crashed"


@dataclass(frozen=True, slots=True)
class ServiceFailure:
    """Structured failure reported in place of a response dictionary."""

    kind: FailureKind
    description: str = ""

    @property
    def is_crash(self) -> bool:
        return self.kind in (FailureKind.CRASHED, FailureKind.CONNECTION_INTERRUPTED)


@dataclass(frozen=True, slots=True)
class ServiceResponse:
    """Either a success dictionary or a :class:`ServiceFailure`."""

    value: Dict[str, Any] | None = None
    error: ServiceFailure | None = None

    def __post_init__(self) -> None:
        if (self.value is None) == (self.error is None):
            raise ValueError("A response carries exactly one of value or error")

    @property
    def is_error(self) -> bool:
        return self.error is not None

    @property
    def description(self) -> str:
        if self.error is not None:
            return f"{self.error.kind.value}: {self.error.description}".rstrip()
        return json.dumps(self.value, default=_describe_value, indent=2, sort_keys=True)


def _describe_value(value: Any) -> str:
    if isinstance(value, (bytes, bytearray)):
        return f"<{len(value)} bytes>"
    return repr(value)


class ServiceConnection(Protocol):
    """Synchronous request channel to the analysis service."""

    def send(self, request: ServiceRequest, *, timeout: float) -> ServiceResponse:
        """Send ``request`` and wait for its response.

        Raises the builtin :class:`TimeoutError` when no response arrives
        within ``timeout`` seconds.
        """
        ...
