"""Tests for direct and conditional edges."""

import pytest

from adk_graph.errors import RoutingError
from adk_graph.errors import UnknownRouteError
from adk_graph.graph.graph_edge import END
from adk_graph.graph.graph_edge import ConditionalEdge
from adk_graph.graph.graph_edge import DirectEdge
from adk_graph.graph.graph_edge import FunctionRouter
from adk_graph.graph.graph_edge import Router


class ScoreRouter(Router):
    def route(self, state):
        return "ok" if state["score"] > 0.8 else "retry"


class TestDirectEdge:
    """Test unconditional edges."""

    def test_select_returns_target(self):
        edge = DirectEdge("a", "b")

        assert edge.select({}) == (None, "b")
        assert edge.targets() == ["b"]
        assert not edge.conditional


class TestConditionalEdge:
    """Test router-driven edges."""

    def test_callable_router_is_wrapped(self):
        """Plain callables become FunctionRouters."""
        edge = ConditionalEdge("a", lambda s: "x", {"x": "b"})
        assert isinstance(edge.router, FunctionRouter)

    def test_router_object(self):
        """Router subclasses are used as-is."""
        edge = ConditionalEdge("review", ScoreRouter(), {"ok": END, "retry": "draft"})

        assert edge.select({"score": 0.9}) == ("ok", END)
        assert edge.select({"score": 0.1}) == ("retry", "draft")

    def test_iterable_route_table(self):
        """An iterable of targets maps each name to itself."""
        edge = ConditionalEdge("a", lambda s: s["next"], ["b", "c"])

        assert edge.select({"next": "c"}) == ("c", "c")
        assert edge.targets() == ["b", "c"]

    def test_targets_are_unique(self):
        """Several keys may map to the same target."""
        edge = ConditionalEdge("a", lambda s: 1, {1: "b", 2: "b", 3: END})
        assert edge.targets() == ["b", END]

    def test_unknown_route_key(self):
        """A key missing from the table names the node and the key."""
        edge = ConditionalEdge("a", lambda s: "missing", {"x": "b"})

        with pytest.raises(UnknownRouteError) as exc_info:
            edge.select({}, thread_id="t1", step=4)

        error = exc_info.value
        assert error.node == "a"
        assert error.route_key == "missing"
        assert error.step == 4
        assert error.thread_id == "t1"

    def test_unhashable_route_key(self):
        """Unhashable router output is reported as an unknown route."""
        edge = ConditionalEdge("a", lambda s: ["x"], {"x": "b"})

        with pytest.raises(UnknownRouteError):
            edge.select({})

    def test_router_failure(self):
        """Router exceptions are wrapped and chained."""

        def broken(state):
            raise KeyError("score")

        edge = ConditionalEdge("a", broken, {"x": "b"})

        with pytest.raises(RoutingError) as exc_info:
            edge.select({})

        assert not isinstance(exc_info.value, UnknownRouteError)
        assert isinstance(exc_info.value.__cause__, KeyError)
