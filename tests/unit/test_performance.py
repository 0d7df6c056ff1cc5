from __future__ import annotations

from pathlib import Path

import pytest

from fake_service import FakeService
from stresstester.document import SyntacticInfoMode
from stresstester.performance import PerformanceDataCollector, PerformanceGroup, PerformanceSeries
from stresstester.request_info import RequestInfo, RequestKind
from stresstester.service.protocol import RequestName
from stresstester.source_state import DocumentInfo
from stresstester.syntactic_perf import EditMode, SyntacticPerfTester, SyntacticPerfTesterOptions, WalkMode


def _info(kind: RequestKind) -> RequestInfo:
    return RequestInfo(kind, DocumentInfo(path="a.src"))


def test_series_summary_line() -> None:
    series = PerformanceSeries(label="cursorInfo")
    series.append(0.5)
    series.append(1.5)

    assert str(series) == "cursorInfo - avg: 1.0, max: 1.5, count: 2"
    assert series.summary() == {"count": 2, "average": 1.0, "maximum": 1.5}


def test_empty_series_reports_zeroes() -> None:
    series = PerformanceSeries(label="rangeInfo")

    assert series.average is None
    assert str(series) == "rangeInfo - avg: 0.0, max: 0.0, count: 0"


def test_group_lists_each_category_under_its_title() -> None:
    group: PerformanceGroup[RequestKind] = PerformanceGroup("Service response time")
    group.append(0.25, RequestKind.EDITOR_OPEN)
    group.append(0.75, RequestKind.CODE_COMPLETE)

    assert str(group).splitlines() == [
        "Service response time:",
        "  editorOpen - avg: 0.25, max: 0.25, count: 1",
        "  codeComplete - avg: 0.75, max: 0.75, count: 1",
    ]


def test_collector_ignores_notifications_while_paused() -> None:
    collector = PerformanceDataCollector()

    collector.stop_listening()
    collector.received_response(_info(RequestKind.CURSOR_INFO), 1.0)
    collector.deserialized_tree(_info(RequestKind.EDITOR_OPEN), 1.0)
    collector.resume_listening()
    collector.received_response(_info(RequestKind.CURSOR_INFO), 2.0)

    assert collector.response_time.data[RequestKind.CURSOR_INFO].values == [2.0]
    assert collector.deserialization_time.data == {}
    summary = collector.summary()
    assert summary["response_time"]["cursorInfo"]["count"] == 1
    assert summary["tree_walk_time"]["count"] == 0


def test_syntactic_perf_run_measures_after_warm_up(source_file: Path, fake_service: FakeService) -> None:
    collector = PerformanceDataCollector()
    options = SyntacticPerfTesterOptions(
        edit_mode=EditMode.REINSERT_ALL,
        walk_mode=WalkMode.COUNT_NODES,
        repeat_count=2,
    )
    tester = SyntacticPerfTester(source_file, connection=fake_service, collector=collector, options=options)

    tester.run()

    names = fake_service.request_names()
    assert names.count(RequestName.EDITOR_OPEN) == 3
    assert RequestName.CURSOR_INFO not in names
    assert RequestName.CODE_COMPLETE not in names
    measured_opens = collector.response_time.data[RequestKind.EDITOR_OPEN].count
    assert measured_opens == 2
    edits_per_run = names.count(RequestName.EDITOR_REPLACE_TEXT) // 3
    # One walk after the open plus one after every edit, for each measured run.
    assert collector.tree_walk_time.count == 2 * (edits_per_run + 1)


def test_syntactic_perf_without_edits_only_opens_and_closes(source_file: Path, fake_service: FakeService) -> None:
    collector = PerformanceDataCollector()
    options = SyntacticPerfTesterOptions(warm_up=False, syntax_mode=SyntacticInfoMode.SYNTAX_TREE_BYTE)

    SyntacticPerfTester(source_file, connection=fake_service, collector=collector, options=options).run()

    assert fake_service.request_names() == [RequestName.EDITOR_OPEN, RequestName.EDITOR_CLOSE]
    assert collector.tree_walk_time.count == 0


def test_syntactic_perf_validates_options(source_file: Path, fake_service: FakeService) -> None:
    collector = PerformanceDataCollector()

    with pytest.raises(ValueError):
        SyntacticPerfTester(
            source_file,
            connection=fake_service,
            collector=collector,
            options=SyntacticPerfTesterOptions(repeat_count=0),
        )
    with pytest.raises(ValueError):
        SyntacticPerfTester(
            source_file,
            connection=fake_service,
            collector=collector,
            options=SyntacticPerfTesterOptions(syntax_mode=SyntacticInfoMode.SYNTAX_MAP),
        )
