"""Timing runs for the service's purely syntactic edit path."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Sequence

from .document import DEFAULT_TIMEOUT, DocumentSession, SyntacticInfoMode, closing_session
from .generators import generator_for
from .model import ReplaceTextAction, RewriteMode
from .performance import PerformanceDataCollector
from .service.protocol import ServiceConnection
from .syntax.tree import SyntaxTree
from .syntax.visitors import CountingVisitor, LocationComputingVisitor

__all__ = ["EditMode", "SyntacticPerfTester", "SyntacticPerfTesterOptions", "WalkMode"]

LOGGER = logging.getLogger(__name__)


class EditMode(str, Enum):
    """Which tokens get deleted and retyped."""

    NONE = "none"
    REINSERT_ALL = "reinsertAll"
    REINSERT_DEEPEST = "reinsertDeepest"

    @property
    def rewrite_mode(self) -> RewriteMode:
        return {
            EditMode.NONE: RewriteMode.NONE,
            EditMode.REINSERT_ALL: RewriteMode.BASIC,
            EditMode.REINSERT_DEEPEST: RewriteMode.INSIDE_OUT,
        }[self]


class WalkMode(str, Enum):
    """Tree walk performed after every tree the service returns."""

    NONE = "none"
    COUNT_NODES = "countNodes"
    COMPUTE_NODE_LOCATIONS = "computeNodeLocations"


@dataclass(slots=True)
class SyntacticPerfTesterOptions:
    edit_mode: EditMode = EditMode.NONE
    walk_mode: WalkMode = WalkMode.NONE
    repeat_count: int = 1
    warm_up: bool = True
    syntax_mode: SyntacticInfoMode = SyntacticInfoMode.SYNTAX_TREE_JSON
    timeout: float = DEFAULT_TIMEOUT


class SyntacticPerfTester:
    """Replays only the edits of a generator and records how long things take."""

    def __init__(
        self,
        file: Path | str,
        *,
        connection: ServiceConnection,
        collector: PerformanceDataCollector,
        options: SyntacticPerfTesterOptions | None = None,
        compiler_args: Sequence[str] = (),
    ) -> None:
        self.file = Path(file)
        self.connection = connection
        self.collector = collector
        self.options = options or SyntacticPerfTesterOptions()
        self.compiler_args = tuple(compiler_args)
        if self.options.repeat_count < 1:
            raise ValueError(f"Repeat count must be positive, got {self.options.repeat_count}")
        if self.options.syntax_mode.tree_format is None:
            raise ValueError(
                f"Syntactic mode '{self.options.syntax_mode.value}' does not transfer a syntax tree"
            )

    def compute_actions(self, tree: SyntaxTree) -> list[ReplaceTextAction]:
        generator = generator_for(self.options.edit_mode.rewrite_mode)
        return [action for action in generator.generate(tree) if isinstance(action, ReplaceTextAction)]

    def run(self) -> None:
        if self.options.warm_up:
            self.collector.stop_listening()
            try:
                self._run_once()
            finally:
                self.collector.resume_listening()
        for iteration in range(self.options.repeat_count):
            LOGGER.debug("Syntactic perf iteration %d of %d", iteration + 1, self.options.repeat_count)
            self._run_once()

    def _run_once(self) -> None:
        document = DocumentSession(
            str(self.file),
            args=self.compiler_args,
            connection=self.connection,
            contains_errors=True,
            listener=self.collector,
            timeout=self.options.timeout,
        )
        mode = self.options.syntax_mode
        with closing_session(document):
            tree, _ = document.open(mode=mode)
            if tree is None:
                raise ValueError(f"The service returned no syntax tree when opening {self.file}")
            self._walk(tree)
            for action in self.compute_actions(tree):
                updated, _ = document.replace_text(action.range, action.text, mode)
                if updated is not None:
                    self._walk(updated)

    def _walk(self, tree: SyntaxTree) -> None:
        walk_mode = self.options.walk_mode
        if walk_mode is WalkMode.NONE:
            return
        visitor: CountingVisitor | LocationComputingVisitor
        if walk_mode is WalkMode.COUNT_NODES:
            visitor = CountingVisitor()
        else:
            visitor = LocationComputingVisitor()
        started = time.perf_counter()
        visitor.visit(tree)
        elapsed = time.perf_counter() - started
        if self.collector.listening:
            self.collector.finished_tree_walk(elapsed)
