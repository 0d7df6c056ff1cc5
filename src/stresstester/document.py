"""A single open buffer driven through the analysis service."""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from enum import Enum
from typing import Any, Dict, Iterator, Sequence

from .errors import (
    DeserializationFailure,
    RequestTimeout,
    ServiceCrash,
    ServiceError,
    StressTesterError,
    TreeTextMismatch,
    UnexpectedErrorType,
)
from .model import Position, Range
from .request_info import NullListener, RequestInfo, RequestKind, RequestListener
from .service.protocol import Key, RequestName, ServiceConnection, ServiceRequest, ServiceResponse, Value
from .source_state import DocumentInfo, DocumentModification, SourceState
from .syntax.serialization import SyntaxTreeDeserializer, SyntaxTreeFormat, SyntaxTreeFormatError
from .syntax.tree import SyntaxTree

__all__ = ["DEFAULT_TIMEOUT", "DocumentSession", "SyntacticInfoMode", "closing_session"]

LOGGER = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 60.0

ERROR_TYPE_MARKER = "<<error type>>"
GLOBAL_RENAME = "Global Rename"
LOCAL_RENAME = "Local Rename"
# Local rename of initializer calls is sent without a valid new name.
_TOLERATED_ERROR = "does not match the arity of the old name"


class SyntacticInfoMode(str, Enum):
    """How syntactic information is transferred back from the service."""

    SYNTAX_TREE_JSON = "syntaxTreeJson"
    SYNTAX_TREE_BYTE = "syntaxTreeByte"
    SYNTAX_MAP = "syntaxMap"

    @property
    def tree_format(self) -> SyntaxTreeFormat | None:
        if self is SyntacticInfoMode.SYNTAX_TREE_JSON:
            return SyntaxTreeFormat.JSON
        if self is SyntacticInfoMode.SYNTAX_TREE_BYTE:
            return SyntaxTreeFormat.BYTE_TREE
        return None

    def update_request(self, request: ServiceRequest, *, incremental: bool) -> None:
        tree_format = self.tree_format
        if tree_format is None:
            request[Key.SYNTAX_TREE_TRANSFER_MODE] = Value.SYNTAX_TREE_TRANSFER_OFF
            request[Key.ENABLE_SYNTAX_MAP] = 1
            request[Key.ENABLE_SUBSTRUCTURE] = 1
        else:
            request[Key.ENABLE_SYNTAX_MAP] = 0
            request[Key.ENABLE_SUBSTRUCTURE] = 0
            request[Key.SYNTAX_TREE_TRANSFER_MODE] = (
                Value.SYNTAX_TREE_TRANSFER_INCREMENTAL if incremental else Value.SYNTAX_TREE_TRANSFER_FULL
            )
            request[Key.SYNTAX_TREE_SERIALIZATION_FORMAT] = (
                Value.SYNTAX_TREE_FORMAT_JSON
                if tree_format is SyntaxTreeFormat.JSON
                else Value.SYNTAX_TREE_FORMAT_BYTE_TREE
            )
        request[Key.SYNTACTIC_ONLY] = 1


class DocumentSession:
    """Opens, queries, edits and closes one document through the service.

    When opened with a :class:`SourceState`, every edit is mirrored into that
    state and every tree the service sends back is checked against it.
    """

    def __init__(
        self,
        file: str,
        *,
        args: Sequence[str],
        connection: ServiceConnection,
        contains_errors: bool = False,
        listener: RequestListener | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.file = file
        self.args = tuple(args)
        self.contains_errors = contains_errors
        self._connection = connection
        self._listener: RequestListener = listener or NullListener()
        self._timeout = timeout
        self._deserializer: SyntaxTreeDeserializer | None = None
        self._tree: SyntaxTree | None = None
        self._source_state: SourceState | None = None
        self._is_open = False

    @property
    def is_open(self) -> bool:
        return self._is_open

    @property
    def tree(self) -> SyntaxTree | None:
        return self._tree

    @property
    def source_state(self) -> SourceState | None:
        return self._source_state

    @property
    def document_info(self) -> DocumentInfo:
        modification = None
        state = self._source_state
        if state is not None and state.was_modified:
            modification = DocumentModification(mode=state.mode, content=state.source)
        return DocumentInfo(path=self.file, modification=modification)

    def open(
        self,
        state: SourceState | None = None,
        mode: SyntacticInfoMode = SyntacticInfoMode.SYNTAX_MAP,
    ) -> tuple[SyntaxTree | None, Dict[str, Any]]:
        """Open the document from disk, or from ``state`` when given."""
        if self._is_open:
            raise RuntimeError(f"Document {self.file} is already open")
        request = self._new_request(RequestName.EDITOR_OPEN)
        if state is not None:
            self._source_state = state
            request[Key.SOURCE_TEXT] = state.source
        else:
            request[Key.SOURCE_FILE] = self.file
        request[Key.NAME] = self.file
        mode.update_request(request, incremental=False)
        request[Key.COMPILER_ARGS] = list(self.args)

        info = RequestInfo(RequestKind.EDITOR_OPEN, self.document_info, args=self.args)
        response = self._send(request, info)
        self._is_open = True
        self._tree = None
        self._deserializer = SyntaxTreeDeserializer()
        self._update_syntax_tree(response, info, mode)
        return self._tree, response

    def close(self) -> Dict[str, Any]:
        """Close the document; safe whether or not a tree was ever produced."""
        info = RequestInfo(RequestKind.EDITOR_CLOSE, self.document_info)
        self._source_state = None
        self._tree = None
        self._deserializer = None
        self._is_open = False

        request = self._new_request(RequestName.EDITOR_CLOSE)
        request[Key.SOURCE_FILE] = self.file
        request[Key.NAME] = self.file
        return self._send(request, info)

    def cursor_info(self, position: Position) -> Dict[str, Any]:
        """Point probe, chaining one refactoring per action the service offers."""
        request = self._new_request(RequestName.CURSOR_INFO)
        request[Key.SOURCE_FILE] = self.file
        request[Key.OFFSET] = position.offset
        request[Key.RETRIEVE_REFACTOR_ACTIONS] = 1
        request[Key.COMPILER_ARGS] = list(self.args)

        info = RequestInfo(
            RequestKind.CURSOR_INFO,
            self.document_info,
            offset=position.offset,
            args=self.args,
        )
        response = self._send(request, info)

        if not self.contains_errors:
            type_name = response.get(Key.TYPE_NAME)
            if isinstance(type_name, str) and ERROR_TYPE_MARKER in type_name:
                raise UnexpectedErrorType(info, _describe(response))

        symbol_name = response.get(Key.NAME)
        for action_uid, action_name in _refactor_actions(response):
            if action_name == GLOBAL_RENAME:
                continue
            self.semantic_refactoring(
                action_uid,
                action_name,
                position,
                new_name=symbol_name if isinstance(symbol_name, str) else None,
            )
        return response

    def range_info(self, start: Position, length: int) -> Dict[str, Any]:
        """Range probe, chaining one refactoring per action the service offers."""
        request = self._new_request(RequestName.RANGE_INFO)
        request[Key.SOURCE_FILE] = self.file
        request[Key.OFFSET] = start.offset
        request[Key.LENGTH] = length
        request[Key.RETRIEVE_REFACTOR_ACTIONS] = 1
        request[Key.COMPILER_ARGS] = list(self.args)

        info = RequestInfo(
            RequestKind.RANGE_INFO,
            self.document_info,
            offset=start.offset,
            length=length,
            args=self.args,
        )
        response = self._send(request, info)

        for action_uid, action_name in _refactor_actions(response):
            self.semantic_refactoring(action_uid, action_name, start)
        return response

    def semantic_refactoring(
        self,
        action_uid: str,
        action_name: str,
        position: Position,
        new_name: str | None = None,
    ) -> Dict[str, Any]:
        """Run one refactoring at ``position``; never chains further requests."""
        request = self._new_request(RequestName.SEMANTIC_REFACTORING)
        request[Key.ACTION_UID] = action_uid
        request[Key.SOURCE_FILE] = self.file
        request[Key.LINE] = position.line
        request[Key.COLUMN] = position.column
        if new_name is not None and action_name == LOCAL_RENAME:
            request[Key.NAME] = new_name
        request[Key.COMPILER_ARGS] = list(self.args)

        info = RequestInfo(
            RequestKind.SEMANTIC_REFACTORING,
            self.document_info,
            offset=position.offset,
            refactoring=action_name,
            args=self.args,
        )
        return self._send(request, info)

    def code_complete(self, offset: int) -> Dict[str, Any]:
        request = self._new_request(RequestName.CODE_COMPLETE)
        request[Key.SOURCE_FILE] = self.file
        request[Key.OFFSET] = offset
        request[Key.COMPILER_ARGS] = list(self.args)

        info = RequestInfo(RequestKind.CODE_COMPLETE, self.document_info, offset=offset, args=self.args)
        return self._send(request, info)

    def replace_text(
        self,
        range: Range,
        text: str,
        mode: SyntacticInfoMode = SyntacticInfoMode.SYNTAX_MAP,
    ) -> tuple[SyntaxTree | None, Dict[str, Any]]:
        """Edit the buffer, mirror the edit into the shadow state and resync."""
        request = self._new_request(RequestName.EDITOR_REPLACE_TEXT)
        request[Key.NAME] = self.file
        request[Key.OFFSET] = range.start.offset
        request[Key.LENGTH] = range.length
        request[Key.SOURCE_TEXT] = text
        mode.update_request(request, incremental=True)
        request[Key.COMPILER_ARGS] = list(self.args)

        info = RequestInfo(
            RequestKind.REPLACE_TEXT,
            self.document_info,
            offset=range.start.offset,
            length=range.length,
            text=text,
        )
        response = self._send(request, info)

        if self._source_state is not None:
            self._source_state.replace(range, text)
        self._update_syntax_tree(response, info, mode)
        return self._tree, response

    @staticmethod
    def _new_request(name: str) -> ServiceRequest:
        return {Key.REQUEST: name}

    def _send(self, request: ServiceRequest, info: RequestInfo) -> Dict[str, Any]:
        LOGGER.debug("Sending %s", info.describe())
        started = time.perf_counter()
        try:
            response = self._connection.send(request, timeout=self._timeout)
        except TimeoutError as error:
            raise RequestTimeout(info, str(error) or None) from error
        self._listener.received_response(info, time.perf_counter() - started)
        return self._throw_if_invalid(response, info)

    @staticmethod
    def _throw_if_invalid(response: ServiceResponse, info: RequestInfo) -> Dict[str, Any]:
        failure = response.error
        if failure is None:
            assert response.value is not None
            return response.value
        if failure.is_crash:
            raise ServiceCrash(info, response.description)
        if _TOLERATED_ERROR in failure.description:
            LOGGER.debug("Ignoring tolerated error for %s: %s", info.describe(), failure.description)
            return {}
        raise ServiceError(info, response.description)

    def _update_syntax_tree(
        self,
        response: Dict[str, Any],
        info: RequestInfo,
        mode: SyntacticInfoMode,
    ) -> SyntaxTree | None:
        tree_format = mode.tree_format
        if tree_format is None:
            return None
        payload = response.get(Key.SERIALIZED_SYNTAX_TREE)
        if payload is None:
            LOGGER.debug("No syntax tree in response to %s", info.describe())
            return None
        if self._deserializer is None:
            self._deserializer = SyntaxTreeDeserializer()

        started = time.perf_counter()
        try:
            tree = self._deserializer.deserialize(payload, tree_format)
        except SyntaxTreeFormatError as error:
            raise DeserializationFailure(info, _describe(response)) from error
        self._listener.deserialized_tree(info, time.perf_counter() - started)
        self._tree = tree

        state = self._source_state
        if state is not None:
            tree_text = tree.full_text()
            if tree_text != state.source:
                raise TreeTextMismatch(
                    info,
                    _describe(response),
                    source_text=state.source,
                    tree_text=tree_text,
                )
        return tree


def _refactor_actions(response: Dict[str, Any]) -> list[tuple[str, str]]:
    entries = response.get(Key.REFACTOR_ACTIONS) or []
    actions: list[tuple[str, str]] = []
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        action_uid = entry.get(Key.ACTION_UID)
        action_name = entry.get(Key.ACTION_NAME)
        if isinstance(action_uid, str) and isinstance(action_name, str):
            actions.append((action_uid, action_name))
    return actions


def _describe(response: Dict[str, Any]) -> str:
    return ServiceResponse(value=response).description


@contextmanager
def closing_session(document: DocumentSession) -> Iterator[DocumentSession]:
    """Close ``document`` on exit; a failing close never masks the run's error."""
    try:
        yield document
    except BaseException:
        try:
            document.close()
        except StressTesterError as close_error:
            LOGGER.warning("Failed to close %s after an error: %s", document.file, close_error)
        raise
    document.close()
