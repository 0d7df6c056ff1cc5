"""Generator whose edits stay within one top-level element at a time."""

from __future__ import annotations

from typing import Iterator

from ..model import (
    Action,
    CodeCompleteAction,
    CursorInfoAction,
    Range,
    ReplaceTextAction,
    SourceLocationConverter,
)
from ..syntax.tree import NodeSpan, SyntaxTree

__all__ = ["ConcurrentRewriteActionGenerator"]


def _top_level_groups(tree: SyntaxTree) -> Iterator[tuple[NodeSpan, list[NodeSpan]]]:
    """Yield each child of the root with the tokens it contains."""
    current: NodeSpan | None = None
    tokens: list[NodeSpan] = []
    for span in tree.walk():
        if span.depth == 1:
            if current is not None:
                yield current, tokens
            current, tokens = span, []
        if span.is_token and current is not None:
            tokens.append(span)
    if current is not None:
        yield current, tokens


class ConcurrentRewriteActionGenerator:
    """Deletes each top-level element and types it back token by token.

    Edits of one block never leave that element's extent and the block ends
    with the original text restored, so any contiguous slice of the sequence
    only disturbs the regions of the blocks it overlaps.
    """

    def generate(self, tree: SyntaxTree) -> Iterator[Action]:
        converter = SourceLocationConverter(tree.full_text())
        for group, tokens in _top_level_groups(tree):
            extent = converter.range(group.start, group.end)
            if extent.is_empty:
                continue
            yield ReplaceTextAction(extent, "")
            # Everything before ``offset`` matches the original text again, so
            # the original line table stays valid for these positions.
            offset = group.start
            for span in tokens:
                text = span.element.full_text
                if not text:
                    continue
                insert_at = converter.position(offset)
                yield ReplaceTextAction(Range(insert_at, insert_at), text)
                offset += len(text.encode("utf-8"))
                yield CodeCompleteAction(converter.position(offset))
                yield CursorInfoAction(converter.position(span.content_start))
