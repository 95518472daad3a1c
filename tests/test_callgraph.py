"""Tests for the same-file call graph."""

from __future__ import annotations

from linegloss.analysis.callgraph import call_graph_to_payload, compute_call_graph
from linegloss.detection.functions import RegexDetector, default_detector
from linegloss.editor.document_model import DocumentMetadata, DocumentState


SOURCE = (
    "function main() {\n"
    "  return parse(load());\n"
    "}\n"
    "function load() {\n"
    "  return read();\n"
    "}\n"
    "function parse(text) {\n"
    "  return text.split(',');\n"
    "}\n"
    "function read() {\n"
    "  return 'a,b';\n"
    "}\n"
)


def _graph(text: str, language: str = "javascript"):
    document = DocumentState(text=text, metadata=DocumentMetadata(language=language))
    entries = compute_call_graph(document, default_detector().detect(document))
    return {entry.name: entry for entry in entries}


def test_direct_and_second_hop_edges() -> None:
    graph = _graph(SOURCE)

    assert graph["main"].depth1_callees == ["load", "parse"]
    assert graph["main"].depth2_callees == ["read"]
    assert graph["read"].depth1_callers == ["load"]
    assert graph["read"].depth2_callers == ["main"]
    assert graph["parse"].depth1_callees == []


def test_definition_line_is_not_a_call() -> None:
    graph = _graph("function solo() {\n  return 1;\n}\n")

    assert graph["solo"].depth1_callers == []
    assert graph["solo"].depth1_callees == []


def test_method_calls_count_as_calls() -> None:
    source = "class Box:\n    def size(self):\n        return 1\n\n    def double(self):\n        return self.size() * 2\n"

    graph = _graph(source, "python")

    assert graph["double"].depth1_callees == ["size"]
    assert graph["size"].depth1_callers == ["double"]


def test_name_prefixes_do_not_match() -> None:
    source = "function get() {\n}\nfunction run() {\n  return forget();\n}\n"

    graph = _graph(source)

    assert graph["run"].depth1_callees == []


def test_empty_document_and_payload_shape() -> None:
    document = DocumentState(text="", metadata=DocumentMetadata(language="javascript"))

    assert compute_call_graph(document, RegexDetector().detect(document)) == []
    payload = call_graph_to_payload(list(_graph(SOURCE).values()))
    assert set(payload[0]) == {"name", "depth1_callers", "depth2_callers", "depth1_callees", "depth2_callees"}
