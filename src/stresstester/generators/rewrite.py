"""Token-by-token delete and reinsert generators."""

from __future__ import annotations

from typing import Iterable, Iterator

from ..model import (
    Action,
    CodeCompleteAction,
    CursorInfoAction,
    Range,
    RangeInfoAction,
    ReplaceTextAction,
    SourceLocationConverter,
)
from ..syntax.tree import NodeSpan, SyntaxTree, Token

__all__ = ["InsideOutRewriteActionGenerator", "RewriteActionGenerator"]


def reinsert_tokens(spans: Iterable[NodeSpan], converter: SourceLocationConverter) -> Iterator[Action]:
    """Delete then retype each token, probing around the edit.

    Every block restores the original text, so positions taken from the
    original tree stay valid for the blocks that follow in any order.
    """
    for span in spans:
        token = span.element
        assert isinstance(token, Token)
        token_range = converter.range(span.content_start, span.content_end)
        start = token_range.start
        yield ReplaceTextAction(token_range, "")
        yield CodeCompleteAction(start)
        yield ReplaceTextAction(Range(start, start), token.text)
        yield CursorInfoAction(start)
        if not token_range.is_empty:
            yield RangeInfoAction(token_range)


class RewriteActionGenerator:
    """Rewrites every token in document order."""

    def generate(self, tree: SyntaxTree) -> Iterator[Action]:
        converter = SourceLocationConverter(tree.full_text())
        yield from reinsert_tokens(tree.tokens(), converter)


class InsideOutRewriteActionGenerator:
    """Rewrites tokens from the most deeply nested outwards."""

    def generate(self, tree: SyntaxTree) -> Iterator[Action]:
        converter = SourceLocationConverter(tree.full_text())
        # sorted() is stable: tokens at equal depth keep document order.
        ordered = sorted(tree.tokens(), key=lambda span: -span.depth)
        yield from reinsert_tokens(ordered, converter)
