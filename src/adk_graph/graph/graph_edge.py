"""Direct and conditional edges for graph routing."""

from __future__ import annotations

from typing import Any, Callable, Dict, Hashable, Iterable, Mapping, Optional, Tuple, Union

from ..errors import RoutingError, UnknownRouteError

# Sentinel constants for graph boundaries
START = "__start__"
END = "__end__"


class Router:
    """Pure function of the post-update state returning a route key.

    Subclass and implement ``route``, or pass a plain callable to
    ``add_conditional_edges`` and it is wrapped in a FunctionRouter.
    """

    def route(self, state: Mapping[str, Any]) -> Hashable:
        raise NotImplementedError


class FunctionRouter(Router):
    """Router backed by a callable."""

    def __init__(self, function: Callable[[Mapping[str, Any]], Hashable]):
        self.function = function

    def route(self, state: Mapping[str, Any]) -> Hashable:
        return self.function(state)

    def __repr__(self) -> str:
        return f"FunctionRouter({getattr(self.function, '__name__', self.function)!r})"


RouterLike = Union[Router, Callable[[Mapping[str, Any]], Hashable]]


class DirectEdge:
    """Edge that fires unconditionally when its source executed.

    Example:
        ```python
        edge = DirectEdge("fetch", "summarize")
        entry = DirectEdge(START, "fetch")
        ```
    """

    conditional = False

    def __init__(self, source: str, target: str):
        self.source = source
        self.target = target

    def targets(self) -> list[str]:
        return [self.target]

    def select(
        self,
        state: Mapping[str, Any],
        thread_id: Optional[str] = None,
        step: Optional[int] = None,
    ) -> Tuple[Optional[Hashable], str]:
        """Return ``(route_key, target)``; direct edges have no route key."""
        return None, self.target

    def __repr__(self) -> str:
        return f"DirectEdge({self.source!r} -> {self.target!r})"


class ConditionalEdge:
    """Edge whose target is chosen by a router and a static route table.

    Example:
        ```python
        edge = ConditionalEdge(
            "review",
            router=lambda s: "ok" if s["score"] > 0.8 else "retry",
            route_table={"ok": END, "retry": "draft"},
        )
        ```
    """

    conditional = True

    def __init__(
        self,
        source: str,
        router: RouterLike,
        route_table: Union[Mapping[Hashable, str], Iterable[str]],
    ):
        """Initialize conditional edge.

        Args:
            source: Name of the node whose completion fires this edge
            router: Router object or callable producing a route key
            route_table: Mapping of route key to target, or an iterable of
                target names used as their own keys
        """
        self.source = source
        self.router = router if isinstance(router, Router) else FunctionRouter(router)
        if isinstance(route_table, Mapping):
            self.route_table: Dict[Hashable, str] = dict(route_table)
        else:
            self.route_table = {target: target for target in route_table}

    def targets(self) -> list[str]:
        return list(dict.fromkeys(self.route_table.values()))

    def select(
        self,
        state: Mapping[str, Any],
        thread_id: Optional[str] = None,
        step: Optional[int] = None,
    ) -> Tuple[Optional[Hashable], str]:
        """Evaluate the router once and map its key to a target.

        Returns:
            The route key and the target it maps to

        Raises:
            RoutingError: If the router raises
            UnknownRouteError: If the key is not in the route table
        """
        try:
            key = self.router.route(state)
        except Exception as e:
            raise RoutingError(
                f"Router for node {self.source!r} failed: {e}",
                thread_id=thread_id,
                step=step,
                node=self.source,
            ) from e
        try:
            return key, self.route_table[key]
        except (KeyError, TypeError):
            raise UnknownRouteError(
                self.source, key, thread_id=thread_id, step=step
            ) from None

    def __repr__(self) -> str:
        return f"ConditionalEdge({self.source!r} -> {self.route_table!r})"


Edge = Union[DirectEdge, ConditionalEdge]
