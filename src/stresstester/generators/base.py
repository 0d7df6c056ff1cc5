"""Contract shared by every action generator."""

from __future__ import annotations

from typing import Iterator, Protocol

from ..model import Action
from ..syntax.tree import SyntaxTree

__all__ = ["ActionGenerator"]


class ActionGenerator(Protocol):
    """Turns a tree into an ordered, lazily produced sequence of actions.

    Generation is deterministic for a given tree. Every action's positions are
    valid against the buffer as it stands once all preceding edits of the same
    sequence have been applied.
    """

    def generate(self, tree: SyntaxTree) -> Iterator[Action]:
        ...
