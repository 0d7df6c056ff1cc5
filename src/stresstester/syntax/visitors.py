"""Tree walks whose running time is measured by the syntactic perf tester."""

from __future__ import annotations

from .tree import SyntaxTree

__all__ = ["CountingVisitor", "LocationComputingVisitor"]


class CountingVisitor:
    """Counts every element of a tree."""

    def __init__(self) -> None:
        self.count = 0

    def visit(self, tree: SyntaxTree) -> None:
        for _ in tree.walk():
            self.count += 1


class LocationComputingVisitor:
    """Computes the absolute extent of every element, keeping the last one."""

    def __init__(self) -> None:
        self.last_start: int | None = None
        self.last_end: int | None = None

    def visit(self, tree: SyntaxTree) -> None:
        for span in tree.walk():
            self.last_start = span.start
            self.last_end = span.end
