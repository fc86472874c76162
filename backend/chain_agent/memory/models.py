"""Pydantic records for the thread store."""

import json
from datetime import datetime, timezone
from typing import Any

from langchain_core.messages import AIMessage, BaseMessage, ChatMessage
from pydantic import BaseModel, ConfigDict, Field

# Role of the placeholder used for stored messages that can no longer be parsed.
UNPARSEABLE_ROLE = "unparseable"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ToolCall(BaseModel):
    """One tool invocation requested by the model, plus its raw output once run."""
    id: str
    name: str
    arguments: str = "{}"  # JSON text
    result: str | None = None

    @classmethod
    def from_request(cls, request: dict[str, Any]) -> "ToolCall":
        """Build from a LangChain tool-call dict ({"id", "name", "args"})."""
        return cls(
            id=request.get("id") or "",
            name=request["name"],
            arguments=json.dumps(request.get("args", {})),
        )


class ThreadInfo(BaseModel):
    thread_id: str
    created_at: datetime
    updated_at: datetime


class ThreadState(BaseModel):
    """
    Durable transcript + tool-call log of one thread.

    revision is 0 for a thread that has never been saved and increases by one
    on every successful save; it is the compare-and-swap token for writers.
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    thread_id: str
    messages: list[BaseMessage] = Field(default_factory=list)
    tool_calls: list[ToolCall] = Field(default_factory=list)
    has_loaded_history: bool = False
    revision: int = 0
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def referenced_tool_call_ids(self) -> set[str]:
        ids: set[str] = set()
        for message in self.messages:
            if isinstance(message, AIMessage):
                ids.update(call["id"] for call in message.tool_calls if call.get("id"))
        return ids


def unparseable_message(raw: Any) -> ChatMessage:
    """Placeholder for a stored message that failed to deserialize."""
    return ChatMessage(role=UNPARSEABLE_ROLE, content="", additional_kwargs={"raw": raw})


def is_unparseable(message: BaseMessage) -> bool:
    return isinstance(message, ChatMessage) and message.role == UNPARSEABLE_ROLE
