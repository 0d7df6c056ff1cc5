from __future__ import annotations

import pytest

from stresstester.model import Page, Range, RequestSet, RewriteMode, SourceLocationConverter
from stresstester.source_state import DocumentInfo, DocumentModification, SourceState


def test_converter_reports_one_based_lines_and_byte_columns() -> None:
    converter = SourceLocationConverter("ab\ncd")

    first = converter.position(1)
    assert (first.offset, first.line, first.column) == (1, 1, 2)
    second_line = converter.position(3)
    assert (second_line.line, second_line.column) == (2, 1)
    end = converter.position(5)
    assert (end.line, end.column) == (2, 3)

    with pytest.raises(ValueError):
        converter.position(6)


def test_converter_counts_columns_in_bytes() -> None:
    converter = SourceLocationConverter("é=1")

    position = converter.position(2)

    assert position.column == 3


def test_range_rejects_inverted_bounds() -> None:
    converter = SourceLocationConverter("hello")

    with pytest.raises(ValueError):
        Range(converter.position(3), converter.position(1))


def test_replace_splices_text_and_marks_state_modified() -> None:
    source = "let x = 1"
    state = SourceState(mode=RewriteMode.BASIC, source=source)

    changed = state.replace(SourceLocationConverter(source).range(4, 5), "y")

    assert changed is True
    assert state.source == "let y = 1"
    assert state.was_modified is True


def test_replace_uses_byte_offsets_for_multibyte_text() -> None:
    source = "héllo wörld"
    state = SourceState(mode=RewriteMode.BASIC, source=source)
    converter = SourceLocationConverter(source)

    # "é" occupies bytes 1..3.
    state.replace(converter.range(1, 3), "e")

    assert state.source == "hello wörld"


def test_empty_replacement_is_not_a_modification() -> None:
    source = "let x = 1"
    state = SourceState(mode=RewriteMode.BASIC, source=source)
    converter = SourceLocationConverter(source)

    changed = state.replace(converter.range(9, 9), "")

    assert changed is False
    assert state.was_modified is False
    assert state.source == source


def test_replace_past_the_end_raises() -> None:
    state = SourceState(mode=RewriteMode.BASIC, source="abc")
    converter = SourceLocationConverter("abcdef")

    with pytest.raises(ValueError):
        state.replace(converter.range(2, 6), "")


def test_copy_is_independent() -> None:
    source = "abc"
    state = SourceState(mode=RewriteMode.BASIC, source=source)
    clone = state.copy()

    clone.replace(SourceLocationConverter(source).range(0, 1), "z")

    assert state.source == "abc"
    assert clone.source == "zbc"


def test_document_info_describes_modified_buffers() -> None:
    plain = DocumentInfo(path="a.src")
    modified = DocumentInfo(
        path="a.src",
        modification=DocumentModification(mode=RewriteMode.INSIDE_OUT, content="x"),
    )

    assert plain.describe() == "a.src"
    assert "modified" in modified.describe()
    assert "insideOut" in modified.describe()


def test_page_parse_and_bounds() -> None:
    page = Page.parse("2/4")

    assert (page.number, page.count, page.index) == (2, 4, 1)
    assert not page.is_first
    assert str(page) == "2/4"
    assert Page.parse("1") == Page(number=1, count=1)

    with pytest.raises(ValueError):
        Page.parse("5/4")
    with pytest.raises(ValueError):
        Page.parse("zero/4")
    with pytest.raises(ValueError):
        Page(number=0, count=1)


def test_request_set_from_names() -> None:
    requests = RequestSet.from_names(["CursorInfo", "code-complete"])

    assert RequestSet.CURSOR_INFO in requests
    assert RequestSet.CODE_COMPLETE in requests
    assert RequestSet.RANGE_INFO not in requests
    assert RequestSet.from_names(["All"]) == RequestSet.ALL
    assert RequestSet.ALL.value_names == ["CodeComplete", "CursorInfo", "RangeInfo"]

    with pytest.raises(ValueError):
        RequestSet.from_names(["Hover"])
