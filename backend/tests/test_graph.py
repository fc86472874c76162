"""Tests for the agent ⇄ tools turn graph."""

import pytest
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage, ToolMessage
from langgraph.checkpoint.memory import MemorySaver

from chain_agent.agents.graph import build_chain_graph
from chain_agent.agents.nodes import content_to_text, should_continue
from chain_agent.agents.prompts import AGENT_SYSTEM_PROMPT
from chain_agent.core.errors import ProviderError, TurnLimitExceeded
from chain_agent.memory.models import unparseable_message

from fakes import FAKE_TOOLS, FailingToolRunner, tool_call_message

ADDRESS_A = "0x" + "a" * 40
ADDRESS_B = "0x" + "b" * 40


def _graph(model, tool_runner=None, max_cycles=5):
    return build_chain_graph(
        llm=model,
        tools=FAKE_TOOLS,
        tool_runner=tool_runner,
        checkpointer=MemorySaver(),
        max_cycles=max_cycles,
    )


def _inputs(*messages, thread_id="t1"):
    return {
        "messages": list(messages) or [HumanMessage(content="hi")],
        "thread_id": thread_id,
        "tool_calls": [],
        "agent_cycles": 0,
    }


def _config(thread_id="t1"):
    return {"configurable": {"thread_id": thread_id}}


# ── Router ────────────────────────────────────────────────────────────────────

def test_should_continue_routes_tool_requests_to_tools():
    state = {"messages": [HumanMessage(content="hi"), tool_call_message(("get_balance", {}, "c1"))]}
    assert should_continue(state) == "tools"


def test_should_continue_ends_on_plain_reply():
    state = {"messages": [HumanMessage(content="hi"), AIMessage(content="hello")]}
    assert should_continue(state) == "__end__"


def test_should_continue_ends_when_last_message_is_not_from_the_model():
    state = {"messages": [HumanMessage(content="hi")]}
    assert should_continue(state) == "__end__"


def test_content_to_text_renders_structured_content_as_json():
    assert content_to_text("plain") == "plain"
    assert content_to_text([{"type": "text", "text": "hi"}]) == '[\n  {\n    "type": "text",\n    "text": "hi"\n  }\n]'


# ── Full turns ────────────────────────────────────────────────────────────────

async def test_plain_reply_ends_after_one_model_call(chat_model):
    chat_model.responses = ["Hello there!"]

    result = await _graph(chat_model).ainvoke(_inputs(), config=_config())

    assert result["messages"][-1].content == "Hello there!"
    assert result["tool_calls"] == []
    assert result["agent_cycles"] == 1
    sent = chat_model.calls[0]
    assert isinstance(sent[0], SystemMessage) and sent[0].content == AGENT_SYSTEM_PROMPT
    assert sent[1].content == "hi"


async def test_two_tool_calls_visit_tools_once(chat_model):
    chat_model.responses = [
        tool_call_message(
            ("get_balance", {"address": ADDRESS_A}, "call_a"),
            ("get_balance", {"address": ADDRESS_B}, "call_b"),
        ),
        "Both addresses hold 42 tokens.",
    ]
    graph = _graph(chat_model)

    visited = []
    async for update in graph.astream(
        _inputs(HumanMessage(content="balances?")), config=_config(), stream_mode="updates"
    ):
        visited.extend(update.keys())
    state = (await graph.aget_state(_config())).values

    assert visited == ["agent", "tools", "agent"]
    assert [tc["id"] for tc in state["tool_calls"]] == ["call_a", "call_b"]
    assert state["tool_calls"][0]["result"] == f"Balance of {ADDRESS_A}: 42"
    assert state["tool_calls"][1]["result"] == f"Balance of {ADDRESS_B}: 42"
    assert state["tool_calls"][0]["name"] == "get_balance"
    assert '"address"' in state["tool_calls"][0]["arguments"]
    tool_messages = [m for m in state["messages"] if isinstance(m, ToolMessage)]
    assert [m.tool_call_id for m in tool_messages] == ["call_a", "call_b"]
    # the follow-up model call sees the tool results
    assert any(isinstance(m, ToolMessage) for m in chat_model.calls[1])
    assert state["messages"][-1].content == "Both addresses hold 42 tokens."


async def test_multi_step_tool_chain(chat_model):
    chat_model.responses = [
        tool_call_message(("get_current_datetime", {}, "c1")),
        tool_call_message(("get_balance", {"address": ADDRESS_A}, "c2")),
        "done",
    ]

    result = await _graph(chat_model).ainvoke(_inputs(), config=_config())

    assert [tc["id"] for tc in result["tool_calls"]] == ["c1", "c2"]
    assert result["agent_cycles"] == 3
    assert result["messages"][-1].content == "done"


async def test_tool_runner_failure_is_downgraded_to_no_results(chat_model):
    runner = FailingToolRunner()
    chat_model.responses = [
        tool_call_message(("get_balance", {"address": ADDRESS_A}, "c1")),
        "I could not check that right now.",
    ]

    result = await _graph(chat_model, tool_runner=runner).ainvoke(_inputs(), config=_config())

    assert runner.invocations == 1
    assert result["messages"][-1].content == "I could not check that right now."
    assert not any(isinstance(m, ToolMessage) for m in result["messages"])
    assert result["tool_calls"] == [
        {"id": "c1", "name": "get_balance", "arguments": f'{{"address": "{ADDRESS_A}"}}', "result": None}
    ]


async def test_unanswered_tool_request_is_not_replayed_to_the_model(chat_model):
    chat_model.responses = [
        tool_call_message(("get_balance", {"address": ADDRESS_A}, "c1")),
        "I could not check that right now.",
    ]

    result = await _graph(chat_model, tool_runner=FailingToolRunner()).ainvoke(
        _inputs(), config=_config()
    )

    follow_up = chat_model.calls[1]
    assert [type(m).__name__ for m in follow_up] == ["SystemMessage", "HumanMessage", "AIMessage"]
    assert follow_up[-1].tool_calls == []
    assert "tool_calls" not in follow_up[-1].additional_kwargs
    # the checkpointed transcript still holds the original request
    assert [tc["id"] for tc in result["messages"][1].tool_calls] == ["c1"]


async def test_tool_results_reach_the_model_paired_with_their_requests(chat_model):
    chat_model.responses = [
        tool_call_message(
            ("get_balance", {"address": ADDRESS_A}, "c1"),
            ("get_current_datetime", {}, "c2"),
        ),
        "done",
    ]

    await _graph(chat_model).ainvoke(_inputs(), config=_config())

    follow_up = chat_model.calls[1]
    requested = {call["id"] for m in follow_up if isinstance(m, AIMessage) for call in m.tool_calls}
    answered = {m.tool_call_id for m in follow_up if isinstance(m, ToolMessage)}
    assert requested == answered == {"c1", "c2"}


async def test_tool_result_without_its_request_is_not_sent(chat_model):
    chat_model.responses = ["ok"]

    await _graph(chat_model).ainvoke(
        _inputs(
            HumanMessage(content="balance?"),
            unparseable_message({"type": "hologram"}),
            ToolMessage(content="Balance: 42", tool_call_id="lost"),
            AIMessage(content="You have 42."),
            HumanMessage(content="thanks"),
        ),
        config=_config(),
    )

    assert [type(m).__name__ for m in chat_model.calls[0]] == [
        "SystemMessage", "HumanMessage", "AIMessage", "HumanMessage",
    ]


async def test_model_error_aborts_the_turn(chat_model):
    chat_model.error = RuntimeError("502 from provider")

    with pytest.raises(ProviderError):
        await _graph(chat_model).ainvoke(_inputs(), config=_config())


async def test_endless_tool_requests_hit_the_cycle_cap(chat_model):
    chat_model.responses = [
        tool_call_message(("get_current_datetime", {}, f"c{i}")) for i in range(10)
    ]

    with pytest.raises(TurnLimitExceeded) as excinfo:
        await _graph(chat_model, max_cycles=3).ainvoke(
            _inputs(), config={**_config(), "recursion_limit": 50}
        )

    assert excinfo.value.max_cycles == 3
    assert len(chat_model.calls) == 3


async def test_unparseable_messages_are_not_sent_to_the_model(chat_model):
    chat_model.responses = ["ok"]

    await _graph(chat_model).ainvoke(
        _inputs(unparseable_message({"type": "hologram"}), HumanMessage(content="hi")),
        config=_config(),
    )

    assert [type(m).__name__ for m in chat_model.calls[0]] == ["SystemMessage", "HumanMessage"]
