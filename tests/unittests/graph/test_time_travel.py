"""Tests for state inspection and external state edits."""

import pytest

from adk_graph.checkpoints import CheckpointSource
from adk_graph.checkpoints import InMemoryCheckpointer
from adk_graph.errors import CheckpointNotFoundError
from adk_graph.errors import InvalidUpdateError
from adk_graph.graph import END
from adk_graph.graph import START
from adk_graph.graph import InterruptKind
from adk_graph.graph import RunConfig
from adk_graph.graph import StateGraph
from adk_graph.graph import StateReducer


def appender(name):
    async def node(state, ctx):
        return {"log": [name]}

    return node


def build(checkpointer, interrupt_before=()):
    builder = StateGraph(channels=[("log", StateReducer.APPEND), "note"])
    for name in ("a", "b", "c"):
        builder.add_node(name, appender(name))
    builder.add_edge(START, "a")
    builder.add_edge("a", "b")
    builder.add_edge("b", "c")
    builder.add_edge("c", END)
    return builder.compile(checkpointer=checkpointer, interrupt_before=interrupt_before)


@pytest.mark.asyncio
class TestStateInspection:
    """Test get_state and get_state_history."""

    async def test_get_state_latest(self):
        graph = build(InMemoryCheckpointer())
        config = RunConfig(thread_id="t1")
        result = await graph.invoke({}, config)

        state = await graph.get_state(config)

        assert state.checkpoint_id == result.checkpoint_id
        assert state.state == {"log": ["a", "b", "c"]}
        assert state.is_complete

    async def test_get_state_empty_thread(self):
        graph = build(InMemoryCheckpointer())
        assert await graph.get_state(RunConfig(thread_id="nothing")) is None

    async def test_get_state_from_resume_from(self):
        graph = build(InMemoryCheckpointer())
        config = RunConfig(thread_id="t1")
        await graph.invoke({}, config)
        history = await graph.get_state_history(config)

        state = await graph.get_state(
            RunConfig(thread_id="t1", resume_from=history[1].checkpoint_id)
        )

        assert state.step == 1
        assert state.state == {"log": ["a"]}

    async def test_get_state_ignores_other_threads(self):
        graph = build(InMemoryCheckpointer())
        await graph.invoke({}, RunConfig(thread_id="t1"))
        history = await graph.get_state_history(RunConfig(thread_id="t1"))

        state = await graph.get_state(
            RunConfig(thread_id="t2", resume_from=history[0].checkpoint_id)
        )

        assert state is None

    async def test_history_oldest_first(self):
        graph = build(InMemoryCheckpointer())
        config = RunConfig(thread_id="t1")
        await graph.invoke({}, config)

        history = await graph.get_state_history(config)

        assert [cp.step for cp in history] == [0, 1, 2, 3]

    async def test_requires_checkpointer(self):
        graph = build(None)

        with pytest.raises(CheckpointNotFoundError):
            await graph.get_state(RunConfig(thread_id="t1"))
        with pytest.raises(CheckpointNotFoundError):
            await graph.get_state_history(RunConfig(thread_id="t1"))


@pytest.mark.asyncio
class TestUpdateState:
    """Test external state edits."""

    async def test_update_preserves_step_frontier_and_interrupt(self):
        graph = build(InMemoryCheckpointer(), interrupt_before=["b"])
        config = RunConfig(thread_id="t1")
        interrupted = await graph.invoke({}, config)

        updated = await graph.update_state(config, {"log": ["edited"], "note": "hi"})

        assert updated.source == CheckpointSource.UPDATE
        assert updated.parent_checkpoint_id == interrupted.checkpoint_id
        assert updated.step == 1
        assert updated.pending_frontier == ["b"]
        assert updated.interrupt.kind == InterruptKind.BEFORE
        assert updated.state == {"log": ["a", "edited"], "note": "hi"}

        resumed = await graph.invoke(None, config)

        assert resumed.completed
        assert resumed.state == {"log": ["a", "edited", "b", "c"], "note": "hi"}

    async def test_update_seeds_empty_thread(self):
        graph = build(InMemoryCheckpointer())
        config = RunConfig(thread_id="t1")

        seeded = await graph.update_state(config, {"log": ["seed"]})

        assert seeded.step == 0
        assert seeded.pending_frontier == ["a"]
        assert seeded.parent_checkpoint_id is None

        result = await graph.invoke(None, config)
        assert result.state == {"log": ["seed", "a", "b", "c"]}

    async def test_update_undeclared_channel(self):
        graph = build(InMemoryCheckpointer())
        config = RunConfig(thread_id="t1")
        await graph.invoke({}, config)

        with pytest.raises(InvalidUpdateError):
            await graph.update_state(config, {"unknown": 1})

    async def test_update_unknown_resume_from(self):
        graph = build(InMemoryCheckpointer())

        with pytest.raises(CheckpointNotFoundError):
            await graph.update_state(
                RunConfig(thread_id="t1", resume_from="missing"), {"note": "x"}
            )

    async def test_history_is_append_only(self):
        checkpointer = InMemoryCheckpointer()
        graph = build(checkpointer)
        config = RunConfig(thread_id="t1")
        await graph.invoke({}, config)
        before = await graph.get_state_history(config)

        await graph.update_state(config, {"note": "later"})
        after = await graph.get_state_history(config)

        assert after[: len(before)] == before
        assert len(after) == len(before) + 1
