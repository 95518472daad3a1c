"""Tests for the reconciliation pass and its decision table."""

from __future__ import annotations

import pytest

from linegloss.annotations.records import FunctionRecord, RecordIndex, RecordState
from linegloss.annotations.reconciler import Decision, decide, function_slices, reconcile
from linegloss.detection.functions import FunctionSpan, RegexDetector

from tests.helpers import js_document, two_unit_record


FOO = "function foo(a) {\n  return a + 1;\n}\n\n"
BAR = "function bar(b) {\n  return foo(b) * 2;\n}\n"
SPANS = [FunctionSpan("foo", 0), FunctionSpan("bar", 4)]


@pytest.mark.parametrize(
    ("state", "dirty", "expected"),
    [
        (RecordState.FRESH, False, Decision.REUSE),
        (RecordState.FRESH, True, Decision.REUSE),
        (RecordState.STALE, True, Decision.REUSE),
        (RecordState.STALE, False, Decision.REUSE_AND_REGENERATE),
        (RecordState.ORPHANED, False, Decision.GENERATE),
        (RecordState.ORPHANED, True, Decision.SKIP),
    ],
)
def test_decision_table(state: RecordState, dirty: bool, expected: Decision) -> None:
    assert decide(state, dirty) is expected


def test_function_slices_run_to_next_span(sample_js: str) -> None:
    document = js_document(sample_js)

    slices = function_slices(document, SPANS)

    assert [piece.code for piece in slices] == [FOO, BAR]
    assert [piece.end_line for piece in slices] == [4, document.line_count]


def test_detector_spans_match_sample(sample_js: str) -> None:
    assert RegexDetector().detect(js_document(sample_js)) == SPANS


def test_fresh_records_render_without_generation(sample_js: str) -> None:
    document = js_document(sample_js)
    index = RecordIndex([two_unit_record(FOO, 0), two_unit_record(BAR, 4)])

    result = reconcile(document, SPANS, index)

    assert [(entry.line, entry.text, entry.kind) for entry in result.render] == [
        (0, "foo overview", "function"),
        (1, "foo body", "line"),
        (4, "bar overview", "function"),
        (5, "bar body", "line"),
    ]
    assert result.to_generate == []
    assert result.evicted == 0


def test_reconcile_is_idempotent_on_clean_document(sample_js: str) -> None:
    document = js_document(sample_js)
    index = RecordIndex([two_unit_record(FOO, 0), two_unit_record(BAR, 4)])

    first = reconcile(document, SPANS, index)
    second = reconcile(document, SPANS, index)

    assert first.render == second.render
    assert second.to_generate == []
    assert second.changed is False


def test_missing_record_is_generated_when_clean(sample_js: str) -> None:
    document = js_document(sample_js)
    index = RecordIndex([two_unit_record(FOO, 0)])

    result = reconcile(document, SPANS, index)

    assert [task.span.name for task in result.to_generate] == ["bar"]
    assert result.to_generate[0].code == BAR


def test_stale_record_is_reused_and_regenerated_when_clean(sample_js: str) -> None:
    document = js_document(sample_js)
    index = RecordIndex([two_unit_record(FOO, 0, saved="function foo(a) {}\n"), two_unit_record(BAR, 4)])

    result = reconcile(document, SPANS, index)

    assert [task.span.name for task in result.to_generate] == ["foo"]
    assert len(result.render) == 4


def test_dirty_document_never_enqueues_generation(sample_js: str) -> None:
    document = js_document(sample_js, dirty=True)
    index = RecordIndex([two_unit_record(FOO, 0, saved="older foo")])

    for _ in range(3):
        result = reconcile(document, SPANS, index)
        assert result.to_generate == []

    assert [span.name for span in result.deferred] == ["bar"]
    assert len(result.render) == 2


def test_orphan_evicted_on_clean_pass_and_kept_while_dirty(sample_js: str) -> None:
    orphan = two_unit_record("function gone() {\n}\n", 9)
    index = RecordIndex([two_unit_record(FOO, 0), two_unit_record(BAR, 4), orphan])

    dirty_result = reconcile(js_document(sample_js, dirty=True), SPANS, index)
    assert orphan in dirty_result.records
    assert orphan.start_line == 9
    assert dirty_result.evicted == 0

    clean_result = reconcile(js_document(sample_js), SPANS, index)
    assert orphan not in clean_result.records
    assert clean_result.evicted == 1
    assert clean_result.changed is True


def test_record_count_never_exceeds_distinct_slices() -> None:
    text = "function twin() {\n}\nfunction twin() {\n}\n"
    document = js_document(text)
    spans = RegexDetector().detect(document)
    code = "function twin() {\n}\n"
    index = RecordIndex([two_unit_record(code, 0), two_unit_record(code, 2), two_unit_record("stale", 7)])

    result = reconcile(document, spans, index)

    distinct = {piece.code for piece in function_slices(document, spans)}
    assert len(result.records) <= len(distinct)
    assert len(result.render) == 4


def test_duplicate_slices_generate_once() -> None:
    text = "function twin() {\n}\nfunction twin() {\n}\n"
    document = js_document(text)
    spans = RegexDetector().detect(document)

    result = reconcile(document, spans, [])

    assert len(result.to_generate) == 1


def test_reconcile_refreshes_start_line_of_moved_function(sample_js: str) -> None:
    record = two_unit_record(BAR, 0)
    document = js_document(sample_js)

    result = reconcile(document, SPANS, [two_unit_record(FOO, 0), record])

    moved = next(item for item in result.records if item.live_code == BAR)
    assert moved.start_line == 4
    assert result.changed is True


def test_render_lines_are_clamped_into_function_and_document() -> None:
    text = "function tiny() {}\n"
    document = js_document(text)
    spans = [FunctionSpan("tiny", 0)]
    record = FunctionRecord(live_code=text, last_saved_code=text, start_line=0)
    record.units = two_unit_record(text, 0).units + [
        two_unit_record(text, 0).units[1].shifted(40),
    ]

    result = reconcile(document, spans, [record])

    assert all(0 <= entry.line < document.line_count for entry in result.render)
    assert [entry.line for entry in result.render] == [0, 1, 1]


def test_pending_entries_are_opt_in(sample_js: str) -> None:
    document = js_document(sample_js, dirty=True)

    silent = reconcile(document, SPANS, [])
    pending = reconcile(document, SPANS, [], render_pending=True)

    assert silent.render == []
    assert [(entry.line, entry.kind) for entry in pending.render] == [(0, "pending"), (4, "pending")]
