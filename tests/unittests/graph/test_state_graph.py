"""Tests for the graph builder, compile-time validation and export."""

import pytest

from adk_graph.errors import ValidationError
from adk_graph.graph import END
from adk_graph.graph import START
from adk_graph.graph import CompiledGraph
from adk_graph.graph import GraphNode
from adk_graph.graph import InterruptMode
from adk_graph.graph import StateGraph
from adk_graph.graph import StateReducer


def noop(state, ctx):
    return None


def build_linear():
    builder = StateGraph(channels=["x", ("log", StateReducer.APPEND)])
    builder.add_node("a", noop)
    builder.add_node("b", noop)
    builder.add_edge(START, "a")
    builder.add_edge("a", "b")
    builder.set_end("b")
    return builder


class TestGraphStructure:
    """Test graph construction."""

    def test_compile_linear_graph(self):
        graph = build_linear().compile(name="linear")

        assert isinstance(graph, CompiledGraph)
        assert list(graph.nodes) == ["a", "b"]
        assert graph.name == "linear"
        assert graph.recursion_limit == 25
        assert graph.registration_index("b") == 1

    def test_builder_methods_chain(self):
        builder = StateGraph(channels=["x"])
        result = builder.add_node("a", noop).set_start("a").set_end("a")
        assert result is builder

    def test_add_prepared_graph_node(self):
        builder = StateGraph(channels=["x"])
        builder.add_node("a", GraphNode("a", function=noop, timeout=2.0))
        builder.set_start("a")

        graph = builder.compile()
        assert graph.nodes["a"].timeout == 2.0

    def test_add_node_rejects_non_callable(self):
        builder = StateGraph(channels=["x"])
        with pytest.raises(TypeError):
            builder.add_node("a", 42)

    def test_interrupt_modes(self):
        builder = build_linear()
        builder.add_interrupt("a", InterruptMode.BEFORE)
        builder.add_interrupt("b", InterruptMode.BOTH)

        graph = builder.compile(interrupt_after=["a"])

        assert graph.interrupt_before == frozenset({"a", "b"})
        assert graph.interrupt_after == frozenset({"a", "b"})


class TestValidation:
    """Test that compile() reports every structural defect."""

    def test_missing_entry_edge(self):
        builder = StateGraph(channels=["x"])
        builder.add_node("a", noop)

        with pytest.raises(ValidationError) as exc_info:
            builder.compile()

        assert any("entry edge" in p for p in exc_info.value.problems)

    def test_all_problems_reported(self):
        builder = StateGraph(channels=["x"])
        builder.add_node("a", noop)
        builder.add_node("a", noop)
        builder.add_node(END, noop)
        builder.add_edge(START, "a")
        builder.add_edge("a", "ghost")
        builder.add_edge("phantom", "a")
        builder.add_conditional_edges("a", lambda s: "k", {"k": "nowhere"})
        builder.add_interrupt("missing")

        with pytest.raises(ValidationError) as exc_info:
            builder.compile(recursion_limit=0, interrupt_after=["unknown"])

        problems = exc_info.value.problems
        assert any("Duplicate node name 'a'" in p for p in problems)
        assert any("reserved" in p for p in problems)
        assert any("'ghost'" in p for p in problems)
        assert any("'phantom'" in p for p in problems)
        assert any("'nowhere'" in p for p in problems)
        assert any("'missing'" in p for p in problems)
        assert any("'unknown'" in p for p in problems)
        assert any("Recursion limit" in p for p in problems)

    def test_edge_into_start_is_invalid(self):
        builder = build_linear()
        builder.add_edge("b", START)

        with pytest.raises(ValidationError, match="targets START"):
            builder.compile()

    def test_builder_frozen_after_compile(self):
        builder = build_linear()
        builder.compile()

        with pytest.raises(ValidationError):
            builder.add_node("c", noop)
        with pytest.raises(ValidationError):
            builder.add_edge("a", "b")
        with pytest.raises(ValidationError):
            builder.compile()

    def test_compiled_graph_is_immutable(self):
        graph = build_linear().compile()

        with pytest.raises(AttributeError):
            graph.recursion_limit = 100
        with pytest.raises(TypeError):
            graph.nodes["c"] = GraphNode("c", function=noop)


class TestExport:
    """Test D3-style graph export."""

    def test_export_graph_structure(self):
        builder = StateGraph(channels=["x"])
        builder.add_node("a", noop)
        builder.add_node("b", noop)
        builder.add_edge(START, "a")
        builder.add_conditional_edges("a", lambda s: "more", {"more": "b", "done": END})
        builder.add_edge("b", "a")
        builder.add_interrupt("b")

        structure = builder.compile(name="loop").export_graph_structure()

        assert structure["directed"] is True
        assert structure["nodes"] == [
            {"id": "a", "type": "function", "name": "a"},
            {"id": "b", "type": "function", "name": "b"},
        ]
        assert {"source": "a", "target": "b", "conditional": True, "routes": ["more"]} in structure[
            "links"
        ]
        assert {"source": "b", "target": "a", "conditional": False} in structure["links"]
        metadata = structure["metadata"]
        assert metadata["start_nodes"] == ["a"]
        assert metadata["end_nodes"] == ["a"]
        assert metadata["interrupt_before"] == ["b"]
        assert metadata["checkpointing"] is False

    def test_subgraph_node_type(self):
        inner = build_linear().compile(name="inner")
        builder = StateGraph(channels=["x"])
        builder.add_node("sub", inner)
        builder.set_start("sub")

        structure = builder.compile().export_graph_structure()
        assert structure["nodes"][0]["type"] == "graph"
