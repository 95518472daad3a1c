"""Static analysis helpers built on detected function spans."""

from .callgraph import CallGraphEntry, call_graph_to_payload, compute_call_graph

__all__ = ["CallGraphEntry", "compute_call_graph", "call_graph_to_payload"]
