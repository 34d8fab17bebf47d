"""Graph state management with declared channels and reducers."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Mapping, Sequence, Tuple, Union

from ..errors import InvalidUpdateError

# Marker for "channel has no default value"
_MISSING: Any = object()


class StateReducer(str, Enum):
    """State reduction strategies for merging node outputs.

    Defines how node outputs are merged into the graph state:
    - OVERWRITE: Replace existing value with new value
    - APPEND: Append new value to list (creates list if needed)
    - SUM: Sum numeric values
    - CUSTOM: Use custom reducer function
    """

    OVERWRITE = "overwrite"
    APPEND = "append"
    SUM = "sum"
    CUSTOM = "custom"


class Reducer:
    """Merge strategy for a channel.

    Subclass and implement ``apply`` for a custom merge. Implementations must
    be deterministic and must not mutate ``current`` or ``incoming``.
    """

    kind: StateReducer = StateReducer.CUSTOM

    def apply(self, current: Any, incoming: Any) -> Any:
        raise NotImplementedError

    def default(self) -> Any:
        """Implicit default for channels declared without one."""
        return _MISSING

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class OverwriteReducer(Reducer):
    """Incoming value wins."""

    kind = StateReducer.OVERWRITE

    def apply(self, current: Any, incoming: Any) -> Any:
        return incoming


class AppendReducer(Reducer):
    """Concatenate sequences; a non-sequence incoming value is pushed."""

    kind = StateReducer.APPEND

    def apply(self, current: Any, incoming: Any) -> Any:
        merged = list(current) if current is not None else []
        if isinstance(incoming, (list, tuple)):
            merged.extend(incoming)
        else:
            merged.append(incoming)
        return merged

    def default(self) -> Any:
        return []


class SumReducer(Reducer):
    """Numeric addition."""

    kind = StateReducer.SUM

    def apply(self, current: Any, incoming: Any) -> Any:
        if current is None:
            return incoming
        return current + incoming

    def default(self) -> Any:
        return 0


class CustomReducer(Reducer):
    """Wraps a plain ``(current, incoming) -> new`` callable."""

    kind = StateReducer.CUSTOM

    def __init__(self, function: Callable[[Any, Any], Any]):
        self.function = function

    def apply(self, current: Any, incoming: Any) -> Any:
        return self.function(current, incoming)

    def __repr__(self) -> str:
        name = getattr(self.function, "__name__", repr(self.function))
        return f"CustomReducer({name})"


ReducerLike = Union[Reducer, StateReducer, str, Callable[[Any, Any], Any]]


def resolve_reducer(reducer: ReducerLike) -> Reducer:
    """Turn a reducer name, enum member or callable into a Reducer.

    Raises:
        ValueError: If the reducer cannot be resolved
    """
    if isinstance(reducer, Reducer):
        return reducer
    if isinstance(reducer, (StateReducer, str)):
        kind = StateReducer(reducer)
        if kind == StateReducer.OVERWRITE:
            return OverwriteReducer()
        if kind == StateReducer.APPEND:
            return AppendReducer()
        if kind == StateReducer.SUM:
            return SumReducer()
        raise ValueError("StateReducer.CUSTOM requires a Reducer instance or callable")
    if callable(reducer):
        return CustomReducer(reducer)
    raise ValueError(f"Cannot use {reducer!r} as a reducer")


@dataclass(frozen=True)
class Channel:
    """A named state slot with its merge strategy.

    Example:
        ```python
        Channel("messages", StateReducer.APPEND)
        Channel("total", StateReducer.SUM, default=10)
        Channel("tags", CustomReducer(lambda cur, new: sorted({*(cur or []), *new})))
        ```

    Attributes:
        name: Channel name, unique within a schema
        reducer: Merge strategy (resolved to a Reducer instance)
        default: Initial value; falls back to the reducer's implicit default
    """

    name: str
    reducer: Reducer = field(default_factory=OverwriteReducer)
    default: Any = _MISSING

    def __init__(self, name: str, reducer: ReducerLike = StateReducer.OVERWRITE, default: Any = _MISSING):
        object.__setattr__(self, "name", name)
        object.__setattr__(self, "reducer", resolve_reducer(reducer))
        object.__setattr__(self, "default", default)

    @property
    def has_default(self) -> bool:
        return self.default is not _MISSING or self.reducer.default() is not _MISSING

    def initial_value(self) -> Any:
        if self.default is not _MISSING:
            return copy.deepcopy(self.default)
        return self.reducer.default()


ChannelSpec = Union[Channel, str, Tuple[str, ReducerLike]]


class StateSchema:
    """Ordered, immutable set of channels.

    Produces initial states and merges batches of node updates. Updates are
    applied in the order given, which the engine fixes to node registration
    order so order-sensitive reducers stay deterministic.
    """

    def __init__(self, channels: Iterable[ChannelSpec]):
        resolved: Dict[str, Channel] = {}
        for entry in channels:
            if isinstance(entry, Channel):
                channel = entry
            elif isinstance(entry, str):
                channel = Channel(entry)
            else:
                name, reducer = entry
                channel = Channel(name, reducer)
            if channel.name in resolved:
                raise ValueError(f"Duplicate channel {channel.name!r}")
            resolved[channel.name] = channel
        self._channels = resolved

    @classmethod
    def coerce(cls, value: Union["StateSchema", Iterable[ChannelSpec]]) -> "StateSchema":
        if isinstance(value, StateSchema):
            return value
        return cls(value)

    @property
    def channels(self) -> Mapping[str, Channel]:
        return dict(self._channels)

    @property
    def channel_names(self) -> List[str]:
        return list(self._channels)

    def __contains__(self, name: object) -> bool:
        return name in self._channels

    def initial_state(self) -> Dict[str, Any]:
        """Fresh state holding every channel that has a default."""
        return {
            name: channel.initial_value()
            for name, channel in self._channels.items()
            if channel.has_default
        }

    def apply_updates(
        self,
        state: Mapping[str, Any],
        updates: Sequence[Tuple[str, Mapping[str, Any]]],
    ) -> Dict[str, Any]:
        """Merge ``(writer, updates)`` pairs into a copy of ``state``.

        Args:
            state: Current state, left untouched
            updates: Writer name and partial state, in application order

        Returns:
            The merged state

        Raises:
            InvalidUpdateError: If a writer targets an undeclared channel or a
                reducer fails. Nothing is merged in that case.
        """
        new_state = copy.deepcopy(dict(state))
        for writer, partial in updates:
            for key, value in partial.items():
                channel = self._channels.get(key)
                if channel is None:
                    raise InvalidUpdateError(
                        f"{writer!r} wrote to undeclared channel {key!r}", node=writer
                    )
                current = new_state.get(key)
                try:
                    new_state[key] = channel.reducer.apply(current, copy.deepcopy(value))
                except Exception as e:
                    raise InvalidUpdateError(
                        f"Reducer {channel.reducer!r} failed on channel {key!r}: {e}",
                        node=writer,
                    ) from e
        return new_state

    def filter(self, state: Mapping[str, Any]) -> Dict[str, Any]:
        """Keep only the keys that are channels of this schema."""
        return {k: v for k, v in state.items() if k in self._channels}

    def __repr__(self) -> str:
        return f"StateSchema({list(self._channels.values())!r})"
