"""Shadow copy of a buffer's text, tracked independently of the service."""

from __future__ import annotations

from dataclasses import dataclass

from .model import Range, RewriteMode

__all__ = ["DocumentInfo", "DocumentModification", "SourceState"]


@dataclass(slots=True)
class SourceState:
    """Tracks the expected content of a source buffer across edits.

    Offsets are byte offsets into the UTF-8 encoding of ``source``; every
    replacement splices the encoded bytes so multi-byte characters keep the
    same offsets the service reports.
    """

    mode: RewriteMode
    source: str
    was_modified: bool = False

    def replace(self, range: Range, text: str) -> bool:
        """Apply ``text`` over ``range`` and return whether the content changed."""
        data = self.source.encode("utf-8")
        if range.end.offset > len(data):
            raise ValueError(
                f"Replacement range {range.start.offset}..{range.end.offset} "
                f"exceeds source length {len(data)}"
            )
        prefix = data[: range.start.offset]
        suffix = data[range.end.offset :]
        self.source = (prefix + text.encode("utf-8") + suffix).decode("utf-8")
        changed = not range.is_empty or bool(text)
        self.was_modified = self.was_modified or changed
        return changed

    def copy(self) -> "SourceState":
        return SourceState(mode=self.mode, source=self.source, was_modified=self.was_modified)


@dataclass(frozen=True, slots=True)
class DocumentModification:
    """In-memory buffer contents that differ from the file on disk."""

    mode: RewriteMode
    content: str


@dataclass(frozen=True, slots=True)
class DocumentInfo:
    """Identifies the document a request targets."""

    path: str
    modification: DocumentModification | None = None

    def describe(self) -> str:
        if self.modification is None:
            return self.path
        return f"{self.path} (modified, {self.modification.mode.value} rewrite)"
