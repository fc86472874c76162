"""
LangGraph node implementations.

Graph topology:

    START → agent → (should_continue) → END
              ↑          ↓ tool_calls present
              └──────── tools

agent node:
    - Prepends the fixed persona system message to the thread transcript
    - Sends tool requests and tool results only as answered pairs
    - LLM bound with tools — returns AIMessage (text or tool_calls)
    - Counts model calls; raises TurnLimitExceeded at the per-turn cap

should_continue (router):
    - Conditional edge from agent
    - "tools"   → tools node if the last AIMessage carries tool calls
    - "__end__" → END otherwise

tools node:
    - Runs every requested call through LangGraph's ToolNode (concurrently)
    - Records one ToolCall per request, result matched by position
    - A runner failure is logged and downgraded to "no results"
    - Loops back to agent

Nodes are built by factories so the model and tool runner can be swapped
(tests inject scripted fakes).
"""

import json
from typing import Any, Awaitable, Callable

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage, SystemMessage, ToolMessage
from langchain_core.runnables import Runnable, RunnableConfig

from chain_agent.agents.prompts import AGENT_SYSTEM_PROMPT
from chain_agent.core.errors import ProviderError, ToolRunnerError, TurnLimitExceeded
from chain_agent.core.graph_state import AgentState
from chain_agent.core.logging import get_logger
from chain_agent.memory.models import ToolCall, is_unparseable

log = get_logger(__name__)

NodeFn = Callable[..., Awaitable[dict]]


def content_to_text(content: Any) -> str:
    """Render message content as text; structured content becomes indented JSON."""
    if isinstance(content, str):
        return content
    return json.dumps(content, indent=2, default=str)


def model_input_view(messages: list[BaseMessage]) -> list[BaseMessage]:
    """
    The transcript as the model may see it. Unparseable placeholders are
    dropped, and tool requests and tool results only travel as answered
    pairs: an unanswered call is stripped from its request, and a ToolMessage
    whose request is gone is left out. The stored transcript is untouched.
    """
    history = [m for m in messages if not is_unparseable(m)]
    requested = {call["id"] for m in history if isinstance(m, AIMessage) for call in m.tool_calls}
    answered = {m.tool_call_id for m in history if isinstance(m, ToolMessage)}

    view: list[BaseMessage] = []
    for message in history:
        if isinstance(message, ToolMessage):
            if message.tool_call_id in requested:
                view.append(message)
        elif isinstance(message, AIMessage) and (
            message.invalid_tool_calls
            or any(call["id"] not in answered for call in message.tool_calls)
        ):
            extra = {
                k: v for k, v in message.additional_kwargs.items()
                if k not in ("tool_calls", "function_call")
            }
            view.append(message.model_copy(update={
                "tool_calls": [call for call in message.tool_calls if call["id"] in answered],
                "invalid_tool_calls": [],
                "additional_kwargs": extra,
            }))
        else:
            view.append(message)
    return view


# ── agent node ────────────────────────────────────────────────────────────────

def make_agent_node(llm: Runnable, max_cycles: int) -> NodeFn:
    """
    Build the main reasoning node. `llm` must already have the tools bound.
    Invocation errors are not retried: they abort the turn as ProviderError.
    """

    async def agent_node(state: AgentState) -> dict:
        thread_id = state.get("thread_id", "")
        cycles = state.get("agent_cycles", 0)
        if cycles >= max_cycles:
            log.warning("turn_limit_exceeded", thread_id=thread_id, max_cycles=max_cycles)
            raise TurnLimitExceeded(thread_id, max_cycles)

        history = model_input_view(state["messages"])
        messages_with_system = [SystemMessage(content=AGENT_SYSTEM_PROMPT)] + history

        try:
            response = await llm.ainvoke(messages_with_system)
        except Exception as exc:
            log.error("agent_invoke_failed", thread_id=thread_id, error=str(exc))
            raise ProviderError(f"Model call failed: {exc}") from exc

        if not isinstance(response, AIMessage):
            raise ProviderError(f"Model returned {type(response).__name__}, expected AIMessage")

        log.debug(
            "agent_response",
            thread_id=thread_id,
            cycle=cycles + 1,
            has_tool_calls=bool(response.tool_calls),
            content_length=len(content_to_text(response.content)),
        )

        return {"messages": [response], "agent_cycles": cycles + 1}

    return agent_node


# ── Router (conditional edge function) ────────────────────────────────────────

def should_continue(state: AgentState) -> str:
    """
    Inspect the last message.
    Returns "tools" when it is an AIMessage requesting tool calls,
    or "__end__" to finish the graph.
    """
    last = state["messages"][-1]
    if isinstance(last, AIMessage) and last.tool_calls:
        return "tools"
    return "__end__"


# ── tools node ────────────────────────────────────────────────────────────────

def make_tool_execution_node(tool_runner: Runnable) -> NodeFn:
    """
    Build the tool execution node around a runner with the ToolNode interface:
    ainvoke({"messages": [...]}) -> {"messages": [ToolMessage, ...]}.
    """

    async def tool_execution_node(state: AgentState, config: RunnableConfig) -> dict:
        thread_id = state.get("thread_id", "")
        last = state["messages"][-1]
        requests = last.tool_calls if isinstance(last, AIMessage) else []

        if not requests:
            log.info("no_tool_calls", thread_id=thread_id)
            return {}

        log.info(
            "tool_execution_start",
            thread_id=thread_id,
            tools=[r["name"] for r in requests],
        )

        try:
            response = await _run_tools(tool_runner, state["messages"], config)
        except ToolRunnerError as exc:
            log.error("tool_execution_failed", thread_id=thread_id, error=str(exc))
            response = {"messages": []}

        results = list((response or {}).get("messages") or [])
        if len(results) != len(requests):
            log.warning(
                "tool_result_count_mismatch",
                thread_id=thread_id,
                requested=len(requests),
                returned=len(results),
            )

        records = []
        for index, request in enumerate(requests):
            record = ToolCall.from_request(request)
            if index < len(results):
                record.result = content_to_text(results[index].content)
            records.append(record)

        return {
            "messages": results,
            "tool_calls": list(state.get("tool_calls") or []) + [r.model_dump() for r in records],
        }

    return tool_execution_node


async def _run_tools(tool_runner: Runnable, messages: list, config: RunnableConfig) -> dict:
    try:
        return await tool_runner.ainvoke({"messages": messages}, config)
    except Exception as exc:
        raise ToolRunnerError(f"Tool runner failed: {exc}") from exc


def bind_model_tools(llm: BaseChatModel, tools: list) -> Runnable:
    return llm.bind_tools(tools) if tools else llm
