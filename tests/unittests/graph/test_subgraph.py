"""Tests for compiled graphs used as nodes of other graphs."""

import pytest

from adk_graph.checkpoints import CheckpointSource
from adk_graph.checkpoints import InMemoryCheckpointer
from adk_graph.errors import NodeExecutionError
from adk_graph.graph import END
from adk_graph.graph import START
from adk_graph.graph import Interrupt
from adk_graph.graph import InterruptKind
from adk_graph.graph import NodeContext
from adk_graph.graph import NodeOutput
from adk_graph.graph import Resume
from adk_graph.graph import RunConfig
from adk_graph.graph import StateGraph
from adk_graph.graph import StateReducer


def appender(name):
    async def node(state, ctx):
        return {"log": [name]}

    return node


def inner_graph(checkpointer=None):
    async def shout(state, ctx):
        return {"text": state["text"].upper(), "log": ["inner"], "total": 5}

    builder = StateGraph(
        channels=["text", ("log", StateReducer.APPEND), ("total", StateReducer.SUM)]
    )
    builder.add_node("shout", shout)
    builder.set_start("shout")
    builder.set_end("shout")
    return builder.compile(checkpointer=checkpointer, name="inner")


@pytest.mark.asyncio
class TestSubgraph:
    """Test graphs within graphs."""

    async def test_subgraph_updates_shared_channels(self):
        checkpointer = InMemoryCheckpointer()
        seen = {}

        async def peek(state, ctx):
            seen.update(state)
            return None

        outer = StateGraph(
            channels=[
                "text",
                ("log", StateReducer.APPEND),
                ("total", StateReducer.SUM),
                "other",
            ]
        )
        outer.add_node("before", appender("outer"))
        outer.add_node("sub", inner_graph(checkpointer))
        outer.add_node("peek", peek)
        outer.add_edge(START, "before")
        outer.add_edge("before", "sub")
        outer.add_edge("sub", "peek")
        graph = outer.compile(checkpointer=checkpointer)

        result = await graph.invoke(
            {"text": "hi", "total": 10, "other": "x"}, RunConfig(thread_id="t1")
        )

        assert result.state == {
            "text": "HI",
            "log": ["outer", "inner"],
            "total": 15,
            "other": "x",
        }
        assert seen["log"] == ["outer", "inner"]

        inner_history = await checkpointer.list("t1:sub")
        assert inner_history
        assert "other" not in inner_history[0].state
        assert inner_history[0].metadata["parent_thread_id"] == "t1"

    async def test_unshared_inner_channels_are_not_returned(self):
        inner = inner_graph()
        context = NodeContext(
            thread_id="outer",
            step=0,
            node_name="sub",
            config=RunConfig(thread_id="outer"),
            channels=frozenset({"text"}),
        )

        output = await inner.execute({"text": "a", "log": []}, context)

        assert output.updates == {"text": "A"}

    async def test_subgraph_failure_fails_outer_node(self):
        async def fail(state, ctx):
            raise RuntimeError("inner boom")

        inner = StateGraph(channels=["x"])
        inner.add_node("fail", fail)
        inner.set_start("fail")

        outer = StateGraph(channels=["x"])
        outer.add_node("sub", inner.compile())
        outer.set_start("sub")

        with pytest.raises(NodeExecutionError) as exc_info:
            await outer.compile().invoke({}, RunConfig(thread_id="t1"))

        assert exc_info.value.node == "sub"
        assert isinstance(exc_info.value.__cause__, NodeExecutionError)

    async def test_inner_interrupt_surfaces_and_resumes(self):
        checkpointer = InMemoryCheckpointer()

        async def approve(state, ctx):
            if not state.get("approved"):
                return NodeOutput(interrupt=Interrupt.dynamic("approve?"))
            return {"log": ["approved"]}

        inner = StateGraph(channels=[("log", StateReducer.APPEND), "approved"])
        inner.add_node("approve", approve)
        inner.set_start("approve")

        outer = StateGraph(channels=[("log", StateReducer.APPEND), "approved"])
        outer.add_node("prepare", appender("prepare"))
        outer.add_node("sub", inner.compile(checkpointer=checkpointer, name="review"))
        outer.add_node("finish", appender("finish"))
        outer.add_edge(START, "prepare")
        outer.add_edge("prepare", "sub")
        outer.add_edge("sub", "finish")
        graph = outer.compile(checkpointer=checkpointer)
        config = RunConfig(thread_id="t1")

        result = await graph.invoke({}, config)

        assert result.interrupted
        assert result.interrupt.kind == InterruptKind.DYNAMIC
        assert result.interrupt.node == "sub"
        assert result.interrupt.message == "approve?"
        assert result.interrupt.data["thread_id"] == "t1:sub"
        assert result.interrupt.data["graph"] == "review"
        assert result.interrupt.data["interrupt"]["kind"] == "dynamic"
        inner_latest = await checkpointer.load_latest("t1:sub")
        assert inner_latest.source == CheckpointSource.INTERRUPT
        assert result.interrupt.data["checkpoint_id"] == inner_latest.checkpoint_id

        resumed = await graph.invoke(Resume(input={"approved": True}), config)

        assert resumed.completed
        assert resumed.state == {"log": ["prepare", "approved", "finish"], "approved": True}

    async def test_nested_thread_ids(self):
        checkpointer = InMemoryCheckpointer()

        leaf = StateGraph(channels=["x"])
        leaf.add_node("leaf", lambda s, c: {"x": s["x"] + 1})
        leaf.set_start("leaf")

        middle = StateGraph(channels=["x"])
        middle.add_node("inner", leaf.compile(checkpointer=checkpointer))
        middle.set_start("inner")

        outer = StateGraph(channels=["x"])
        outer.add_node("middle", middle.compile(checkpointer=checkpointer))
        outer.add_edge(START, "middle")
        outer.add_edge("middle", END)

        result = await outer.compile().invoke({"x": 1}, RunConfig(thread_id="root"))

        assert result.state == {"x": 2}
        assert await checkpointer.list("root:middle:inner")

    async def test_resume_input_on_shared_channel_is_not_duplicated(self):
        checkpointer = InMemoryCheckpointer()

        inner = StateGraph(channels=[("log", StateReducer.APPEND)])
        inner.add_node("a", appender("a"))
        inner.add_node("b", appender("b"))
        inner.add_edge(START, "a")
        inner.add_edge("a", "b")

        outer = StateGraph(channels=[("log", StateReducer.APPEND)])
        outer.add_node("x", appender("x"))
        outer.add_node(
            "sub", inner.compile(checkpointer=checkpointer, interrupt_after=["a"])
        )
        outer.add_edge(START, "x")
        outer.add_edge("x", "sub")
        graph = outer.compile(checkpointer=checkpointer)
        config = RunConfig(thread_id="t1")

        result = await graph.invoke({}, config)

        assert result.interrupted
        assert result.state == {"log": ["x"]}
        assert result.interrupt.data["updates"] == {"log": ["a"]}

        resumed = await graph.invoke(Resume(input={"log": ["r"]}), config)

        assert resumed.completed
        assert resumed.state == {"log": ["x", "r", "a", "b"]}

    async def test_inner_writes_accumulate_across_repeated_interrupts(self):
        checkpointer = InMemoryCheckpointer()

        def counted(name):
            async def node(state, ctx):
                return {"log": [name], "count": 1}

            return node

        inner = StateGraph(channels=[("log", StateReducer.APPEND), ("count", StateReducer.SUM)])
        for name in ("a", "b", "c"):
            inner.add_node(name, counted(name))
        inner.add_edge(START, "a")
        inner.add_edge("a", "b")
        inner.add_edge("b", "c")

        outer = StateGraph(channels=[("log", StateReducer.APPEND), ("count", StateReducer.SUM)])
        outer.add_node("x", appender("x"))
        outer.add_node(
            "sub", inner.compile(checkpointer=checkpointer, interrupt_after=["a", "b"])
        )
        outer.add_edge(START, "x")
        outer.add_edge("x", "sub")
        graph = outer.compile(checkpointer=checkpointer)
        config = RunConfig(thread_id="t1")

        await graph.invoke({}, config)
        second = await graph.invoke(Resume(), config)

        assert second.interrupted
        assert second.interrupt.data["updates"] == {"log": ["a", "b"], "count": 2}

        final = await graph.invoke(Resume(input={"log": ["r"]}), config)

        assert final.completed
        assert final.state == {"log": ["x", "r", "a", "b", "c"], "count": 3}
