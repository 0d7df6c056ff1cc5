"""Read-only generator: probes every token and node without editing."""

from __future__ import annotations

from typing import Iterator

from ..model import Action, CodeCompleteAction, CursorInfoAction, RangeInfoAction, SourceLocationConverter
from ..syntax.tree import SyntaxTree

__all__ = ["RequestActionGenerator"]


class RequestActionGenerator:
    """Point probe and completion per token, range probe per non-empty node."""

    def generate(self, tree: SyntaxTree) -> Iterator[Action]:
        converter = SourceLocationConverter(tree.full_text())
        for span in tree.walk():
            if span.is_token:
                if not span.element.text:
                    continue
                yield CursorInfoAction(converter.position(span.content_start))
                yield CodeCompleteAction(converter.position(span.content_end))
            elif span.content_length > 0:
                yield RangeInfoAction(converter.range(span.content_start, span.content_end))
