"""End-to-end tests for the annotation provider."""

from __future__ import annotations

import asyncio
from pathlib import Path

from linegloss.annotations.provider import AnnotationProvider
from linegloss.annotations.records import records_to_payload
from linegloss.detection.functions import RegexDetector, default_detector
from linegloss.editor.document_model import ContentChange, DocumentMetadata, DocumentState
from linegloss.editor.events import (
    DocumentChangedEvent,
    DocumentClosedEvent,
    DocumentEventBus,
    DocumentSavedEvent,
)
from linegloss.services.settings import Settings
from linegloss.storage.record_store import InMemoryRecordStore, JsonRecordStore

from tests.helpers import FakeSummarizer, js_document, two_unit_record


FOO = "function foo(a) {\n  return a + 1;\n}\n\n"
BAR = "function bar(b) {\n  return foo(b) * 2;\n}\n"


class _FailingDetector:
    def detect(self, document):
        raise RuntimeError("parser crashed")


def _seeded_store(document: DocumentState) -> InMemoryRecordStore:
    store = InMemoryRecordStore()
    store.save(store.key_for(document), [two_unit_record(FOO, 0), two_unit_record(BAR, 4)])
    store.save_count = 0
    return store


def _lines(render) -> list[tuple[int, str]]:
    return [(entry.line, entry.text) for entry in render]


def test_open_edit_save_scenario_needs_no_generation(sample_js: str) -> None:
    async def _run() -> None:
        document = js_document(sample_js)
        summarizer = FakeSummarizer()
        provider = AnnotationProvider(
            detector=RegexDetector(),
            store=_seeded_store(document),
            summarizer=summarizer,
        )

        opened = provider.provide_annotations(document)
        assert _lines(opened) == [(0, "foo overview"), (1, "foo body"), (4, "bar overview"), (5, "bar body")]

        change = ContentChange.insert(0, 0, "\n")
        document.apply_change(change)
        provider.handle_change(document, [change])
        edited = provider.provide_annotations(document)
        assert document.dirty
        assert _lines(edited) == [(1, "foo overview"), (2, "foo body"), (5, "bar overview"), (6, "bar body")]

        document.mark_saved()
        provider.handle_save(document)
        saved = provider.provide_annotations(document)
        assert [text for _, text in _lines(saved)] == [text for _, text in _lines(edited)]
        assert len(saved) == 4

        await asyncio.sleep(0)
        assert summarizer.calls == []
        assert not provider.scheduler.is_pending(document.document_id)
        await provider.aclose()

    asyncio.run(_run())


def test_missing_records_are_generated_then_rendered(sample_js: str) -> None:
    async def _run() -> None:
        document = js_document(sample_js)
        store = InMemoryRecordStore()
        summarizer = FakeSummarizer()
        provider = AnnotationProvider(detector=RegexDetector(), store=store, summarizer=summarizer)
        notified: list[str] = []
        provider.on_did_change(notified.append)

        assert provider.provide_annotations(document) == []
        await provider.scheduler.wait_idle(document.document_id)

        render = provider.provide_annotations(document)
        assert [entry.line for entry in render] == [0, 1, 4, 5]
        assert render[0].text == "Declares function foo(a) {"
        assert len(summarizer.calls) == 2
        assert notified == [document.document_id, document.document_id]
        assert len(store.load(store.key_for(document))) == 2

        again = provider.provide_annotations(document)
        assert again == render
        await asyncio.sleep(0)
        assert len(summarizer.calls) == 2
        await provider.aclose()

    asyncio.run(_run())


def test_dirty_document_never_triggers_generation(sample_js: str) -> None:
    async def _run() -> None:
        document = js_document(sample_js, dirty=True)
        summarizer = FakeSummarizer()
        provider = AnnotationProvider(detector=RegexDetector(), store=InMemoryRecordStore(), summarizer=summarizer)

        for _ in range(3):
            assert provider.provide_annotations(document) == []
            provider.registry.get(document.document_id).invalidate()
            await asyncio.sleep(0)

        assert summarizer.calls == []
        assert not provider.scheduler.is_pending(document.document_id)
        await provider.aclose()

    asyncio.run(_run())


def test_render_cache_is_reused_until_invalidated(sample_js: str) -> None:
    document = js_document(sample_js)
    store = _seeded_store(document)
    provider = AnnotationProvider(detector=RegexDetector(), store=store, summarizer=FakeSummarizer())

    first = provider.provide_annotations(document)
    saves = store.save_count
    second = provider.provide_annotations(document)

    assert first == second
    assert store.save_count == saves


def test_orphaned_record_is_evicted_from_store(sample_js: str) -> None:
    document = js_document(sample_js)
    store = InMemoryRecordStore()
    key = store.key_for(document)
    store.save(key, [two_unit_record(FOO, 0), two_unit_record(BAR, 4), two_unit_record("function gone() {}\n", 8)])
    provider = AnnotationProvider(detector=RegexDetector(), store=store, summarizer=FakeSummarizer())

    provider.provide_annotations(document)

    assert sorted(record.live_code for record in store.load(key)) == sorted([FOO, BAR])


def test_change_without_records_is_ignored(sample_js: str) -> None:
    document = js_document(sample_js)
    store = InMemoryRecordStore()
    provider = AnnotationProvider(detector=RegexDetector(), store=store, summarizer=FakeSummarizer())

    change = ContentChange.insert(0, 0, "\n")
    document.apply_change(change)
    provider.handle_change(document, [change])

    assert store.save_count == 0


def test_change_persists_shifted_records(sample_js: str, telemetry_events) -> None:
    document = js_document(sample_js)
    store = _seeded_store(document)
    provider = AnnotationProvider(detector=RegexDetector(), store=store, summarizer=FakeSummarizer())
    notified: list[str] = []
    dispose = provider.on_did_change(notified.append)

    change = ContentChange.insert(0, 0, "\n")
    document.apply_change(change)
    provider.handle_change(document, [change])
    dispose()
    provider.handle_change(document, [ContentChange.insert(0, 0, "")])

    starts = {record.live_code: record.start_line for record in store.load(store.key_for(document))}
    assert starts[BAR] == 5
    assert notified == [document.document_id]
    assert any(event["event"] == "annotations.shift" for event in telemetry_events)


def test_event_bus_drives_shift_save_and_close(sample_js: str) -> None:
    document = js_document(sample_js)
    store = _seeded_store(document)
    provider = AnnotationProvider(detector=RegexDetector(), store=store, summarizer=FakeSummarizer())
    bus = DocumentEventBus()
    documents = {document.document_id: document}
    provider.attach(bus, documents.get)
    provider.provide_annotations(document)

    change = ContentChange.insert(0, 0, "\n")
    document.apply_change(change)
    bus.publish(DocumentChangedEvent(document_id=document.document_id, changes=[change]))
    assert provider.registry.get(document.document_id).render_cache is None

    document.mark_saved()
    bus.publish(DocumentSavedEvent(document.document_id))
    assert [entry.line for entry in provider.provide_annotations(document)] == [1, 2, 5, 6]

    bus.publish(DocumentClosedEvent(document_id=document.document_id, reason="closed"))
    assert provider.registry.get(document.document_id) is None

    provider.detach()
    bus.publish(DocumentChangedEvent(document_id=document.document_id, changes=[change]))
    assert len(provider.registry) == 0


def test_excluded_paths_are_never_annotated(sample_js: str) -> None:
    document = DocumentState(
        text=sample_js,
        metadata=DocumentMetadata(path=Path("/work/node_modules/lib/index.js"), language="javascript"),
    )
    store = InMemoryRecordStore()
    provider = AnnotationProvider(detector=RegexDetector(), store=store, summarizer=FakeSummarizer())

    assert provider.provide_annotations(document) == []
    assert len(provider.registry) == 0


def test_detection_failure_degrades_to_no_annotations(sample_js: str) -> None:
    document = js_document(sample_js)
    store = _seeded_store(document)
    provider = AnnotationProvider(detector=_FailingDetector(), store=store, summarizer=FakeSummarizer())

    assert provider.provide_annotations(js_document(sample_js, dirty=True)) == []


def test_pending_entries_follow_settings(sample_js: str) -> None:
    document = js_document(sample_js, dirty=True)
    provider = AnnotationProvider(
        detector=RegexDetector(),
        store=InMemoryRecordStore(),
        summarizer=FakeSummarizer(),
        settings=Settings(render_pending=True),
    )

    render = provider.provide_annotations(document)

    assert [(entry.line, entry.kind) for entry in render] == [(0, "pending"), (4, "pending")]


def test_python_file_round_trip_through_json_store(tmp_path: Path) -> None:
    source = tmp_path / "calc.py"
    source.write_text(
        "import math\n\n\ndef area(r):\n    return math.pi * r * r\n\n\nclass Shape:\n    def scale(self, k):\n        return k\n",
        encoding="utf-8",
    )

    async def _run() -> None:
        document = DocumentState.from_path(source)
        store = JsonRecordStore(tmp_path)
        summarizer = FakeSummarizer()
        provider = AnnotationProvider(detector=default_detector(), store=store, summarizer=summarizer)

        provider.provide_annotations(document)
        await provider.scheduler.wait_idle(document.document_id)
        await provider.aclose()

        reopened = AnnotationProvider(detector=default_detector(), store=store, summarizer=summarizer)
        render = reopened.provide_annotations(DocumentState.from_path(source))
        assert [entry.function_name for entry in render if entry.kind == "function"] == ["area", "scale"]
        assert len(summarizer.calls) == 2
        assert store.path_for("calc.py").exists()
        await reopened.aclose()

    asyncio.run(_run())
