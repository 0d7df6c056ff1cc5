"""Plans and executes one stress-test run against a source file.

A run opens the file, asks the configured generator for the full action
sequence, filters it by enabled request kinds and the AST-rebuild budget,
divides it into pages and executes the selected page. Pages other than the
first start from a buffer state rebuilt by replaying the edits of every
earlier page, so each page can run in its own session.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from itertools import chain
from pathlib import Path
from typing import Iterable, Iterator, Sequence, TypeVar

from .document import DEFAULT_TIMEOUT, DocumentSession, SyntacticInfoMode, closing_session
from .errors import StressTesterError
from .generators import ActionGenerator, generator_for
from .model import (
    Action,
    CodeCompleteAction,
    CursorInfoAction,
    Page,
    RangeInfoAction,
    ReplaceTextAction,
    RequestSet,
    RewriteMode,
)
from .request_info import RequestListener
from .service.protocol import ServiceConnection
from .source_state import SourceState
from .syntax.tree import SyntaxTree

__all__ = [
    "ActionPlan",
    "RunOptions",
    "StressTester",
    "divide_into_pages",
    "filter_actions",
    "replay_edits",
]

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(slots=True)
class RunOptions:
    """Knobs for a single run."""

    requests: RequestSet = RequestSet.ALL
    rewrite_mode: RewriteMode = RewriteMode.NONE
    ast_build_limit: int | None = None
    page: Page = field(default_factory=Page)
    listener: RequestListener | None = None
    syntax_mode: SyntacticInfoMode = SyntacticInfoMode.SYNTAX_TREE_JSON
    tolerate_type_errors: bool = False
    timeout: float = DEFAULT_TIMEOUT


@dataclass(slots=True)
class ActionPlan:
    """The selected page and the buffer state it starts from."""

    state: SourceState
    actions: list[Action]
    locations_invalidated: bool = False
    total_actions: int = 0


def filter_actions(
    actions: Iterable[Action],
    requests: RequestSet,
    ast_build_limit: int | None,
) -> tuple[list[Action], bool]:
    """Drop disabled request kinds and enforce the AST-rebuild budget.

    Completions and edits each trigger an AST rebuild. A completion that finds
    the budget spent is skipped; an edit that finds it spent invalidates every
    later position, so nothing after it is kept. Returns the kept actions and
    whether that cutoff happened.
    """
    limit = ast_build_limit
    rebuilds = 0
    kept: list[Action] = []
    for action in actions:
        if isinstance(action, CursorInfoAction):
            if RequestSet.CURSOR_INFO in requests:
                kept.append(action)
        elif isinstance(action, RangeInfoAction):
            if RequestSet.RANGE_INFO in requests:
                kept.append(action)
        elif isinstance(action, CodeCompleteAction):
            if RequestSet.CODE_COMPLETE not in requests:
                continue
            if limit is not None and rebuilds >= limit:
                continue
            rebuilds += 1
            kept.append(action)
        elif isinstance(action, ReplaceTextAction):
            if limit is not None and rebuilds >= limit:
                return kept, True
            rebuilds += 1
            kept.append(action)
        else:
            raise TypeError(f"Unknown action: {action!r}")
    return kept, False


def divide_into_pages(items: Sequence[T], count: int) -> list[list[T]]:
    """Split ``items`` into ``count`` contiguous, near-equal slices."""
    if count < 1:
        raise ValueError(f"Page count must be positive, got {count}")
    total = len(items)
    return [list(items[index * total // count : (index + 1) * total // count]) for index in range(count)]


def replay_edits(state: SourceState, actions: Iterable[Action]) -> SourceState:
    """Apply every edit in ``actions`` to ``state`` in order; probes are skipped."""
    for action in actions:
        if isinstance(action, ReplaceTextAction):
            state.replace(action.range, action.text)
    return state


class StressTester:
    """Runs one page of a generated action plan against one file."""

    def __init__(
        self,
        file: Path | str,
        *,
        connection: ServiceConnection,
        compiler_args: Sequence[str] = (),
        options: RunOptions | None = None,
    ) -> None:
        self.file = Path(file)
        # Decode without newline translation so byte offsets match the file.
        self.source = self.file.read_bytes().decode("utf-8")
        self.compiler_args = tuple(compiler_args)
        self.options = options or RunOptions()
        self.connection = connection
        if self.options.syntax_mode.tree_format is None:
            raise ValueError(
                f"Syntactic mode '{self.options.syntax_mode.value}' does not transfer a syntax tree"
            )

    @property
    def generator(self) -> ActionGenerator:
        return generator_for(self.options.rewrite_mode)

    def compute_plan(self, tree: SyntaxTree) -> ActionPlan:
        """Generate, filter and paginate the actions for ``tree``."""
        options = self.options
        actions, invalidated = filter_actions(
            self.generator.generate(tree),
            options.requests,
            options.ast_build_limit,
        )
        if invalidated:
            LOGGER.warning(
                "AST rebuild limit %s reached; dropped all actions after action %d",
                options.ast_build_limit,
                len(actions),
            )
        pages = divide_into_pages(actions, options.page.count)
        page = pages[options.page.index]
        state = SourceState(mode=options.rewrite_mode, source=self.source)
        if not options.page.is_first:
            replay_edits(state, chain.from_iterable(pages[: options.page.index]))
        LOGGER.info(
            "Page %s of %s: %d of %d action(s)",
            options.page.number,
            options.page.count,
            len(page),
            len(actions),
        )
        return ActionPlan(
            state=state,
            actions=page,
            locations_invalidated=invalidated,
            total_actions=len(actions),
        )

    def compute_start_state_and_actions(self, tree: SyntaxTree) -> tuple[SourceState, list[Action]]:
        plan = self.compute_plan(tree)
        return plan.state, plan.actions

    def run(self) -> ActionPlan:
        """Execute the configured page; raises :class:`StressTesterError` on failure."""
        if self.options.rewrite_mode is RewriteMode.NONE:
            return self._read_only_run()
        return self._rewrite_run()

    def _document(self, *, contains_errors: bool) -> DocumentSession:
        return DocumentSession(
            str(self.file),
            args=self.compiler_args,
            connection=self.connection,
            contains_errors=contains_errors,
            listener=self.options.listener,
            timeout=self.options.timeout,
        )

    def _read_only_run(self) -> ActionPlan:
        document = self._document(contains_errors=self.options.tolerate_type_errors)
        mode = self.options.syntax_mode
        with closing_session(document):
            tree, _ = document.open(mode=mode)
            plan = self.compute_plan(_require_tree(tree, document))
            # Regrouping below is only sound when nothing edits the buffer.
            if plan.state.was_modified or any(isinstance(action, ReplaceTextAction) for action in plan.actions):
                raise ValueError("Read-only runs cannot contain text replacements")

            cursor_infos = [a.position for a in plan.actions if isinstance(a, CursorInfoAction)]
            range_infos = [a.range for a in plan.actions if isinstance(a, RangeInfoAction)]
            completions = [a.position for a in plan.actions if isinstance(a, CodeCompleteAction)]

            # Same-kind requests run back to back so the service can reuse one AST.
            for position in cursor_infos:
                with _attributed(CursorInfoAction(position)):
                    document.cursor_info(position)
            for source_range in range_infos:
                with _attributed(RangeInfoAction(source_range)):
                    document.range_info(source_range.start, source_range.length)
            for position in completions:
                with _attributed(CodeCompleteAction(position)):
                    document.code_complete(position.offset)
        return plan

    def _rewrite_run(self) -> ActionPlan:
        document = self._document(contains_errors=True)
        mode = self.options.syntax_mode
        with closing_session(document):
            tree, _ = document.open(mode=mode)
            plan = self.compute_plan(_require_tree(tree, document))
        with closing_session(document):
            document.open(state=plan.state, mode=mode)
            for action in plan.actions:
                with _attributed(action):
                    self._execute(document, action, mode)
        return plan

    @staticmethod
    def _execute(document: DocumentSession, action: Action, mode: SyntacticInfoMode) -> None:
        if isinstance(action, CursorInfoAction):
            document.cursor_info(action.position)
        elif isinstance(action, CodeCompleteAction):
            document.code_complete(action.position.offset)
        elif isinstance(action, RangeInfoAction):
            document.range_info(action.range.start, action.range.length)
        elif isinstance(action, ReplaceTextAction):
            document.replace_text(action.range, action.text, mode)
        else:
            raise TypeError(f"Unknown action: {action!r}")


def _require_tree(tree: SyntaxTree | None, document: DocumentSession) -> SyntaxTree:
    if tree is None:
        raise ValueError(f"The service returned no syntax tree when opening {document.file}")
    return tree


@contextmanager
def _attributed(action: Action) -> Iterator[None]:
    try:
        yield
    except StressTesterError as error:
        if error.action is None:
            error.action = action
        raise


