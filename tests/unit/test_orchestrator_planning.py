from __future__ import annotations

from itertools import chain
from pathlib import Path

import pytest

from fake_service import FakeService, parse_source
from stresstester.document import SyntacticInfoMode
from stresstester.model import (
    CodeCompleteAction,
    CursorInfoAction,
    Page,
    RangeInfoAction,
    ReplaceTextAction,
    RequestSet,
    RewriteMode,
    SourceLocationConverter,
)
from stresstester.orchestrator import RunOptions, StressTester, divide_into_pages, filter_actions, replay_edits
from stresstester.source_state import SourceState

SOURCE = "let x = 1\nprint(x + foo(2))\n"


def _tester(tmp_path: Path, **options) -> StressTester:
    path = tmp_path / "plan.src"
    path.write_bytes(SOURCE.encode("utf-8"))
    return StressTester(path, connection=FakeService(), options=RunOptions(**options))


def _sample_actions():
    converter = SourceLocationConverter("abcdef")
    return [
        CodeCompleteAction(converter.position(1)),
        ReplaceTextAction(converter.range(0, 1), ""),
        CodeCompleteAction(converter.position(2)),
        CursorInfoAction(converter.position(3)),
        ReplaceTextAction(converter.range(0, 0), "a"),
        CursorInfoAction(converter.position(4)),
        RangeInfoAction(converter.range(1, 2)),
    ]


def test_filter_without_budget_keeps_enabled_kinds() -> None:
    actions = _sample_actions()

    kept, invalidated = filter_actions(actions, RequestSet.ALL, None)

    assert kept == actions
    assert invalidated is False


def test_filter_drops_disabled_probe_kinds_but_keeps_edits() -> None:
    kept, _ = filter_actions(_sample_actions(), RequestSet.CURSOR_INFO, None)

    assert [type(action) for action in kept] == [
        ReplaceTextAction,
        CursorInfoAction,
        ReplaceTextAction,
        CursorInfoAction,
    ]


def test_budget_skips_completions_and_truncates_at_the_first_blocked_edit() -> None:
    actions = _sample_actions()

    kept, invalidated = filter_actions(actions, RequestSet.ALL, 2)

    assert kept == [actions[0], actions[1], actions[3]]
    assert invalidated is True


def test_disabled_completions_do_not_spend_the_budget() -> None:
    actions = _sample_actions()

    kept, invalidated = filter_actions(actions, RequestSet.CURSOR_INFO | RequestSet.RANGE_INFO, 2)

    assert invalidated is False
    assert kept == [actions[1], actions[3], actions[4], actions[5], actions[6]]


def test_zero_budget_stops_at_the_first_edit() -> None:
    actions = _sample_actions()

    kept, invalidated = filter_actions(actions, RequestSet.ALL, 0)

    assert kept == []
    assert invalidated is True


@pytest.mark.parametrize(("total", "count"), [(10, 3), (2, 4), (0, 2), (7, 1)])
def test_pages_are_contiguous_and_cover_everything(total: int, count: int) -> None:
    items = list(range(total))

    pages = divide_into_pages(items, count)

    assert len(pages) == count
    assert list(chain.from_iterable(pages)) == items
    sizes = [len(page) for page in pages]
    assert max(sizes) - min(sizes) <= 1


def test_page_count_must_be_positive() -> None:
    with pytest.raises(ValueError):
        divide_into_pages([1, 2], 0)


@pytest.mark.parametrize("mode", [RewriteMode.BASIC, RewriteMode.INSIDE_OUT, RewriteMode.CONCURRENT])
def test_pages_concatenate_to_the_single_page_plan(tmp_path: Path, mode: RewriteMode) -> None:
    tree = parse_source(SOURCE)
    whole = _tester(tmp_path, rewrite_mode=mode).compute_plan(tree)

    pieces = [
        _tester(tmp_path, rewrite_mode=mode, page=Page(number, 3)).compute_plan(tree).actions
        for number in range(1, 4)
    ]

    assert list(chain.from_iterable(pieces)) == whole.actions
    assert whole.total_actions == len(whole.actions)


@pytest.mark.parametrize("mode", [RewriteMode.BASIC, RewriteMode.INSIDE_OUT, RewriteMode.CONCURRENT])
def test_page_start_state_equals_sequential_replay(tmp_path: Path, mode: RewriteMode) -> None:
    tree = parse_source(SOURCE)
    whole = _tester(tmp_path, rewrite_mode=mode).compute_plan(tree)
    pages = divide_into_pages(whole.actions, 5)

    for number in range(1, 6):
        plan = _tester(tmp_path, rewrite_mode=mode, page=Page(number, 5)).compute_plan(tree)
        expected = SourceState(mode=mode, source=SOURCE)
        for earlier in pages[: number - 1]:
            for action in earlier:
                if isinstance(action, ReplaceTextAction):
                    expected.replace(action.range, action.text)
        assert plan.state.source == expected.source
        assert plan.actions == pages[number - 1]


def test_plan_is_deterministic(tmp_path: Path) -> None:
    tree = parse_source(SOURCE)
    options = {"rewrite_mode": RewriteMode.BASIC, "page": Page(2, 4), "ast_build_limit": 9}

    first = _tester(tmp_path, **options).compute_plan(tree)
    second = _tester(tmp_path, **options).compute_plan(parse_source(SOURCE))

    assert first.actions == second.actions
    assert first.state.source == second.state.source


def test_budget_cutoff_is_reported_on_the_plan(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    tree = parse_source(SOURCE)

    with caplog.at_level("WARNING", logger="stresstester.orchestrator"):
        plan = _tester(tmp_path, rewrite_mode=RewriteMode.BASIC, ast_build_limit=3).compute_plan(tree)

    assert plan.locations_invalidated is True
    rebuilds = [a for a in plan.actions if isinstance(a, (ReplaceTextAction, CodeCompleteAction))]
    assert len(rebuilds) == 3
    assert "AST rebuild limit" in caplog.text


def test_replay_edits_skips_probes() -> None:
    converter = SourceLocationConverter("let x = 1")
    state = SourceState(mode=RewriteMode.BASIC, source="let x = 1")

    replay_edits(
        state,
        [
            CursorInfoAction(converter.position(0)),
            ReplaceTextAction(converter.range(4, 5), "y"),
            CodeCompleteAction(converter.position(5)),
        ],
    )

    assert state.source == "let y = 1"


def test_tree_less_syntax_mode_is_rejected(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        _tester(tmp_path, syntax_mode=SyntacticInfoMode.SYNTAX_MAP)
