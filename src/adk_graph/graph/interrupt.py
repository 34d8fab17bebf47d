"""Human-in-the-loop interrupt modes and markers for graph execution."""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class InterruptMode(str, Enum):
    """When to interrupt execution for human-in-the-loop.

    Interrupts allow pausing graph execution at specific nodes
    to enable human review, approval, or intervention before continuing.

    Example:
        ```python
        from adk_graph import StateGraph, InterruptMode

        builder = StateGraph(channels=["draft"])
        builder.add_node("review", review)
        builder.add_interrupt("review", InterruptMode.BEFORE)
        ```
    """

    BEFORE = "before"  # Interrupt before node execution
    AFTER = "after"  # Interrupt after node execution
    BOTH = "both"  # Interrupt both before and after node execution


class InterruptKind(str, Enum):
    """Why a run was suspended."""

    BEFORE = "before"  # Configured, frontier member in interrupt_before
    AFTER = "after"  # Configured, executed node in interrupt_after
    DYNAMIC = "dynamic"  # Requested by a node at run time


class Interrupt(BaseModel):  # type: ignore[misc]
    """Suspension marker. Not an error: a run that stops here can be resumed.

    Example:
        ```python
        async def approve(state, ctx):
            if not state.get("approved"):
                return NodeOutput(interrupt=Interrupt.dynamic("Need approval"))
            return {"status": "approved"}
        ```
    """

    model_config = ConfigDict(frozen=True)

    kind: InterruptKind
    node: Optional[str] = None
    message: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def before(cls, node: str) -> "Interrupt":
        return cls(kind=InterruptKind.BEFORE, node=node)

    @classmethod
    def after(cls, node: str) -> "Interrupt":
        return cls(kind=InterruptKind.AFTER, node=node)

    @classmethod
    def dynamic(
        cls,
        message: str,
        data: Optional[Dict[str, Any]] = None,
        node: Optional[str] = None,
    ) -> "Interrupt":
        """Interrupt requested by a node; the engine fills in ``node``."""
        return cls(kind=InterruptKind.DYNAMIC, node=node, message=message, data=data or {})

    def describe(self) -> str:
        if self.kind == InterruptKind.DYNAMIC:
            return f"Dynamic interrupt from {self.node}: {self.message}"
        return f"Interrupt {self.kind.value} node: {self.node}"


class Resume(BaseModel):  # type: ignore[misc]
    """Marker passed to ``invoke``/``stream`` to continue a suspended run.

    Attributes:
        input: Optional values merged into the checkpointed state through the
            channel reducers before execution continues
        checkpoint_id: Resume from this checkpoint instead of the latest one
    """

    input: Optional[Dict[str, Any]] = None
    checkpoint_id: Optional[str] = None
