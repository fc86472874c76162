from typing import Annotated, TypedDict
from langgraph.graph.message import add_messages


class AgentState(TypedDict):
    """Shared state passed between the agent and tools nodes."""
    messages:     Annotated[list, add_messages]  # full thread transcript (merged by message id)
    thread_id:    str
    tool_calls:   list[dict]  # thread tool-call log as ToolCall.model_dump() dicts (last value wins)
    agent_cycles: int         # model calls made so far in this turn
