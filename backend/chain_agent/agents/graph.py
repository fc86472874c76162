"""
Chain agent graph.

    START → agent → (should_continue) → END
              ↑            ↓ tool_calls
              └────────── tools

agent:           LLM with tools bound — produces text or tool_calls
should_continue: routes to tools or END
tools:           executes tool calls (LangGraph built-in ToolNode) and logs ToolCalls
"""

from langchain_core.language_models import BaseChatModel
from langchain_core.runnables import Runnable
from langgraph.checkpoint.base import BaseCheckpointSaver
from langgraph.graph import END, START, StateGraph
from langgraph.prebuilt import ToolNode

from chain_agent.agents.nodes import (
    bind_model_tools,
    make_agent_node,
    make_tool_execution_node,
    should_continue,
)
from chain_agent.agents.tools import ALL_TOOLS
from chain_agent.core.checkpointer import get_checkpointer
from chain_agent.core.config import get_settings
from chain_agent.core.graph_state import AgentState
from chain_agent.core.llm import get_chat_model


def build_chain_graph(
    *,
    llm: BaseChatModel | None = None,
    tools: list | None = None,
    tool_runner: Runnable | None = None,
    checkpointer: BaseCheckpointSaver | None = None,
    max_cycles: int | None = None,
):
    """
    Compile and return the agent graph.

    Every collaborator defaults to the production one: the configured chat
    model, ALL_TOOLS run by a ToolNode, and the process-wide checkpointer.
    The compiled graph holds no per-conversation data — safe to build once
    per process and reuse.
    """
    tools = ALL_TOOLS if tools is None else tools
    llm = llm or get_chat_model()
    tool_runner = tool_runner or ToolNode(tools, handle_tool_errors=True)
    if max_cycles is None:
        max_cycles = get_settings().max_agent_cycles

    workflow = StateGraph(AgentState)

    # Nodes
    workflow.add_node("agent", make_agent_node(bind_model_tools(llm, tools), max_cycles))
    workflow.add_node("tools", make_tool_execution_node(tool_runner))

    # Edges
    workflow.add_edge(START, "agent")
    workflow.add_conditional_edges(
        "agent",
        should_continue,
        {"tools": "tools", "__end__": END},
    )
    workflow.add_edge("tools", "agent")  # loop: tool results → agent reasoning

    return workflow.compile(
        checkpointer=checkpointer if checkpointer is not None else get_checkpointer()
    )
