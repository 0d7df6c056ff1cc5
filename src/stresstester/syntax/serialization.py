"""Wire formats for syntax trees transferred by the analysis service.

Two formats are understood:

* ``json``: nested objects, nodes carry ``layout`` and tokens carry ``text``
  plus ``leadingTrivia``/``trailingTrivia``.
* ``byteTree``: a compact little-endian encoding of the same structure.

Both may mark an element as ``omitted`` when the service transfers a tree
incrementally; omitted elements are resolved from the nodes seen by the same
:class:`SyntaxTreeDeserializer` during the previous transfer.
"""

from __future__ import annotations

import json
import struct
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .tree import Node, SyntaxElement, SyntaxTree, Token

__all__ = [
    "BYTE_TREE_VERSION",
    "SyntaxTreeDeserializer",
    "SyntaxTreeFormat",
    "SyntaxTreeFormatError",
    "serialize_tree",
]

BYTE_TREE_VERSION = 1

_TAG_TOKEN = 0
_TAG_NODE = 1
_TAG_OMITTED = 2
_U8 = struct.Struct("<B")
_U32 = struct.Struct("<I")
# Element id 0 stands for "no id" in the byte tree encoding.


class SyntaxTreeFormat(str, Enum):
    """Serialization formats a tree payload may use."""

    JSON = "json"
    BYTE_TREE = "byteTree"


class SyntaxTreeFormatError(ValueError):
    """Raised when a payload cannot be decoded under its declared format."""


class _ElementPayload(BaseModel):
    """JSON shape of a single tree element."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: Optional[int] = None
    kind: Optional[str] = None
    text: Optional[str] = None
    leading_trivia: str = Field(default="", alias="leadingTrivia")
    trailing_trivia: str = Field(default="", alias="trailingTrivia")
    layout: Optional[list["_ElementPayload"]] = None
    omitted: bool = False


_ElementPayload.model_rebuild()


class SyntaxTreeDeserializer:
    """Stateful decoder; keeps the previous transfer's elements for reuse."""

    def __init__(self) -> None:
        self._elements: dict[int, SyntaxElement] = {}

    def deserialize(self, payload: str | bytes, format: SyntaxTreeFormat) -> SyntaxTree:
        seen: dict[int, SyntaxElement] = {}
        if format is SyntaxTreeFormat.JSON:
            root = self._from_json(payload, seen)
        elif format is SyntaxTreeFormat.BYTE_TREE:
            root = self._from_bytes(payload, seen)
        else:
            raise SyntaxTreeFormatError(f"Unsupported syntax tree format: {format!r}")
        if not isinstance(root, Node):
            raise SyntaxTreeFormatError("Tree root must be a node, not a token")
        self._elements = seen
        return SyntaxTree(root)

    def reset(self) -> None:
        self._elements = {}

    def _resolve_omitted(self, node_id: int | None, seen: dict[int, SyntaxElement]) -> SyntaxElement:
        if node_id is None:
            raise SyntaxTreeFormatError("Omitted element without an id")
        element = self._elements.get(node_id)
        if element is None:
            raise SyntaxTreeFormatError(f"Omitted element {node_id} was never transferred")
        self._remember(element, seen)
        return element

    def _remember(self, element: SyntaxElement, seen: dict[int, SyntaxElement]) -> None:
        stack = [element]
        while stack:
            current = stack.pop()
            if current.node_id is not None:
                seen[current.node_id] = current
            if isinstance(current, Node):
                stack.extend(current.children)

    def _from_json(self, payload: str | bytes, seen: dict[int, SyntaxElement]) -> SyntaxElement:
        try:
            parsed = _ElementPayload.model_validate_json(payload)
        except ValidationError as error:
            raise SyntaxTreeFormatError(f"Malformed JSON syntax tree: {error}") from error
        return self._convert(parsed, seen)

    def _convert(self, payload: _ElementPayload, seen: dict[int, SyntaxElement]) -> SyntaxElement:
        if payload.omitted:
            return self._resolve_omitted(payload.id, seen)
        if payload.kind is None:
            raise SyntaxTreeFormatError(f"Element {payload.id} is missing its kind")
        element: SyntaxElement
        if payload.text is not None:
            if payload.layout is not None:
                raise SyntaxTreeFormatError(f"Element {payload.id} has both text and layout")
            element = Token(
                kind=payload.kind,
                text=payload.text,
                leading_trivia=payload.leading_trivia,
                trailing_trivia=payload.trailing_trivia,
                node_id=payload.id,
            )
        elif payload.layout is not None:
            children = [self._convert(child, seen) for child in payload.layout]
            element = Node(kind=payload.kind, children=children, node_id=payload.id)
        else:
            raise SyntaxTreeFormatError(f"Element {payload.id} has neither text nor layout")
        if payload.id is not None:
            seen[payload.id] = element
        return element

    def _from_bytes(self, payload: str | bytes, seen: dict[int, SyntaxElement]) -> SyntaxElement:
        if isinstance(payload, str):
            raise SyntaxTreeFormatError("Byte tree payload must be bytes")
        reader = _ByteReader(payload)
        try:
            version = reader.u32()
            if version != BYTE_TREE_VERSION:
                raise SyntaxTreeFormatError(f"Unsupported byte tree version {version}")
            root = self._read_element(reader, seen)
        except (struct.error, UnicodeDecodeError) as error:
            raise SyntaxTreeFormatError(f"Malformed byte tree: {error}") from error
        if not reader.at_end:
            raise SyntaxTreeFormatError(
                f"Unexpected {reader.remaining} trailing byte(s) after byte tree"
            )
        return root

    def _read_element(self, reader: "_ByteReader", seen: dict[int, SyntaxElement]) -> SyntaxElement:
        # Each frame is a node still waiting for ``remaining`` children.
        frames: list[list[Any]] = []
        while True:
            element, child_count = self._read_header(reader, seen)
            if child_count:
                frames.append([element, child_count])
                continue
            while frames:
                frame = frames[-1]
                frame[0].children.append(element)
                frame[1] -= 1
                if frame[1]:
                    break
                frames.pop()
                element = frame[0]
            else:
                return element

    def _read_header(
        self, reader: "_ByteReader", seen: dict[int, SyntaxElement]
    ) -> tuple[SyntaxElement, int]:
        tag = reader.u8()
        raw_id = reader.u32()
        node_id = raw_id or None
        if tag == _TAG_OMITTED:
            return self._resolve_omitted(node_id, seen), 0
        if tag not in (_TAG_TOKEN, _TAG_NODE):
            raise SyntaxTreeFormatError(f"Unknown byte tree tag {tag}")
        kind = reader.string()
        element: SyntaxElement
        child_count = 0
        if tag == _TAG_TOKEN:
            element = Token(
                kind=kind,
                text=reader.string(),
                leading_trivia=reader.string(),
                trailing_trivia=reader.string(),
                node_id=node_id,
            )
        else:
            element = Node(kind=kind, children=[], node_id=node_id)
            child_count = reader.u32()
        if node_id is not None:
            seen[node_id] = element
        return element, child_count


class _ByteReader:
    def __init__(self, data: bytes) -> None:
        self._data = memoryview(data)
        self._offset = 0

    def u8(self) -> int:
        (value,) = _U8.unpack_from(self._data, self._offset)
        self._offset += _U8.size
        return value

    def u32(self) -> int:
        (value,) = _U32.unpack_from(self._data, self._offset)
        self._offset += _U32.size
        return value

    def string(self) -> str:
        length = self.u32()
        end = self._offset + length
        if end > len(self._data):
            raise SyntaxTreeFormatError("String extends past the end of the byte tree")
        value = bytes(self._data[self._offset : end]).decode("utf-8")
        self._offset = end
        return value

    @property
    def remaining(self) -> int:
        return len(self._data) - self._offset

    @property
    def at_end(self) -> bool:
        return self._offset == len(self._data)


def serialize_tree(
    tree: SyntaxTree,
    format: SyntaxTreeFormat,
    *,
    omit: set[int] | None = None,
) -> str | bytes:
    """Encode ``tree``; elements whose id is in ``omit`` are sent as references."""
    omitted = omit or set()
    if format is SyntaxTreeFormat.JSON:
        return json.dumps(_element_to_json(tree.root, omitted), ensure_ascii=False)
    if format is SyntaxTreeFormat.BYTE_TREE:
        chunks = [_U32.pack(BYTE_TREE_VERSION)]
        _element_to_bytes(tree.root, omitted, chunks)
        return b"".join(chunks)
    raise SyntaxTreeFormatError(f"Unsupported syntax tree format: {format!r}")


def _element_to_json(element: SyntaxElement, omitted: set[int]) -> dict[str, Any]:
    if element.node_id is not None and element.node_id in omitted:
        return {"id": element.node_id, "omitted": True}
    if isinstance(element, Token):
        return {
            "id": element.node_id,
            "kind": element.kind,
            "text": element.text,
            "leadingTrivia": element.leading_trivia,
            "trailingTrivia": element.trailing_trivia,
        }
    return {
        "id": element.node_id,
        "kind": element.kind,
        "layout": [_element_to_json(child, omitted) for child in element.children],
    }


def _pack_string(value: str) -> bytes:
    data = value.encode("utf-8")
    return _U32.pack(len(data)) + data


def _element_to_bytes(element: SyntaxElement, omitted: set[int], chunks: list[bytes]) -> None:
    stack = [element]
    while stack:
        current = stack.pop()
        node_id = current.node_id if current.node_id is not None else 0
        if current.node_id is not None and current.node_id in omitted:
            chunks.append(_U8.pack(_TAG_OMITTED) + _U32.pack(node_id))
            continue
        if isinstance(current, Token):
            chunks.append(
                _U8.pack(_TAG_TOKEN)
                + _U32.pack(node_id)
                + _pack_string(current.kind)
                + _pack_string(current.text)
                + _pack_string(current.leading_trivia)
                + _pack_string(current.trailing_trivia)
            )
            continue
        chunks.append(
            _U8.pack(_TAG_NODE)
            + _U32.pack(node_id)
            + _pack_string(current.kind)
            + _U32.pack(len(current.children))
        )
        stack.extend(reversed(current.children))
