"""Concrete syntax tree reconstructed from the service's serialized payloads."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator, Union

__all__ = ["Node", "NodeSpan", "SyntaxElement", "SyntaxTree", "Token"]


@dataclass(slots=True, eq=False)
class Token:
    """Leaf of the tree: token text surrounded by its trivia."""

    kind: str
    text: str
    leading_trivia: str = ""
    trailing_trivia: str = ""
    node_id: int | None = None

    @property
    def full_text(self) -> str:
        return f"{self.leading_trivia}{self.text}{self.trailing_trivia}"


@dataclass(slots=True, eq=False)
class Node:
    """Interior node holding tokens and nested nodes in source order."""

    kind: str
    children: list["SyntaxElement"] = field(default_factory=list)
    node_id: int | None = None


SyntaxElement = Union[Node, Token]


@dataclass(frozen=True, slots=True)
class NodeSpan:
    """An element together with its absolute byte extent in the tree."""

    element: SyntaxElement
    depth: int
    start: int
    end: int
    content_start: int
    content_end: int

    @property
    def is_token(self) -> bool:
        return isinstance(self.element, Token)

    @property
    def content_length(self) -> int:
        return self.content_end - self.content_start


def _byte_len(text: str) -> int:
    return len(text.encode("utf-8"))


class SyntaxTree:
    """Tree rooted at a :class:`Node`, with byte lengths precomputed per element."""

    def __init__(self, root: Node) -> None:
        self.root = root
        self._lengths: dict[int, int] = {}
        self._leading: dict[int, int] = {}
        self._trailing: dict[int, int] = {}
        self._measure()
        self._text: str | None = None

    def _measure(self) -> None:
        # Post-order without recursion so deeply nested sources do not hit the
        # interpreter recursion limit.
        stack: list[tuple[SyntaxElement, bool]] = [(self.root, False)]
        while stack:
            element, expanded = stack.pop()
            key = id(element)
            if isinstance(element, Token):
                self._lengths[key] = _byte_len(element.full_text)
                self._leading[key] = _byte_len(element.leading_trivia)
                self._trailing[key] = _byte_len(element.trailing_trivia)
                continue
            if not expanded:
                stack.append((element, True))
                for child in element.children:
                    stack.append((child, False))
                continue
            children = element.children
            self._lengths[key] = sum(self._lengths[id(child)] for child in children)
            self._leading[key] = self._leading_of(children)
            self._trailing[key] = self._trailing_of(children)

    def _leading_of(self, children: list[SyntaxElement]) -> int:
        # Trivia of empty leading children (e.g. missing nodes) belongs to the
        # first element that carries any bytes.
        total = 0
        for child in children:
            key = id(child)
            if self._lengths[key] == self._leading[key]:
                total += self._lengths[key]
                continue
            return total + self._leading[key]
        return total

    def _trailing_of(self, children: list[SyntaxElement]) -> int:
        total = 0
        for child in reversed(children):
            key = id(child)
            if self._lengths[key] == self._trailing[key]:
                total += self._lengths[key]
                continue
            return total + self._trailing[key]
        return total

    def full_text(self) -> str:
        """Concatenate every token, trivia included."""
        if self._text is None:
            self._text = "".join(span.element.full_text for span in self.tokens())
        return self._text

    @property
    def byte_length(self) -> int:
        return self._lengths[id(self.root)]

    def walk(self) -> Iterator[NodeSpan]:
        """Yield every element in pre-order with its absolute extent."""
        stack: list[tuple[SyntaxElement, int, int]] = [(self.root, 0, 0)]
        while stack:
            element, start, depth = stack.pop()
            key = id(element)
            end = start + self._lengths[key]
            content_start = min(start + self._leading[key], end)
            content_end = max(end - self._trailing[key], content_start)
            yield NodeSpan(
                element=element,
                depth=depth,
                start=start,
                end=end,
                content_start=content_start,
                content_end=content_end,
            )
            if isinstance(element, Node):
                offset = start
                pending: list[tuple[SyntaxElement, int, int]] = []
                for child in element.children:
                    pending.append((child, offset, depth + 1))
                    offset += self._lengths[id(child)]
                stack.extend(reversed(pending))

    def tokens(self) -> Iterator[NodeSpan]:
        """Yield the token spans in document order."""
        for span in self.walk():
            if span.is_token:
                yield span

    def token_count(self) -> int:
        return sum(1 for _ in self.tokens())
