"""
Conversation session manager — one call per user message.

    handle_message(message, thread_id?)
      1. resolve the thread id (mint a fresh one if absent)
      2. load the stored thread; seed a new or cold thread with summarized
         history + the session persona
      3. run the agent graph to completion
      4. persist transcript + tool-call log (optimistic revision check)
      5. return the reply text and this turn's tool calls

The thread store is the durable transcript. The graph checkpointer only
mirrors it: every turn re-sends the full stored transcript behind a
remove-all marker.
"""

import secrets
import time
import uuid
from functools import lru_cache

from langchain_core.messages import BaseMessage, HumanMessage, RemoveMessage, SystemMessage
from langgraph.checkpoint.base import BaseCheckpointSaver
from langgraph.errors import GraphRecursionError
from langgraph.graph.message import REMOVE_ALL_MESSAGES
from pydantic import BaseModel

from chain_agent.agents.graph import build_chain_graph
from chain_agent.agents.nodes import content_to_text
from chain_agent.agents.prompts import SESSION_PERSONA_PROMPT
from chain_agent.core.config import get_settings
from chain_agent.core.errors import StorageError, TurnLimitExceeded
from chain_agent.core.logging import get_logger
from chain_agent.memory.models import ThreadInfo, ThreadState, ToolCall, utcnow
from chain_agent.memory.summarizer import ThreadSummarizer
from chain_agent.memory.thread_store import ThreadStore, get_thread_store

log = get_logger(__name__)

THREAD_ID_PREFIX = "chain"
# A stored thread with this many messages or fewer counts as cold.
COLD_THREAD_MAX_MESSAGES = 2
_MINT_ATTEMPTS = 5


class TurnResult(BaseModel):
    thread_id: str
    response: str
    tool_calls: list[ToolCall]


def _with_id(message: BaseMessage) -> BaseMessage:
    if message.id is None:
        message.id = str(uuid.uuid4())
    return message


class ConversationSession:
    def __init__(
        self,
        store: ThreadStore,
        summarizer: ThreadSummarizer,
        graph=None,
        max_cycles: int | None = None,
    ):
        self.store = store
        self.summarizer = summarizer
        self.max_cycles = get_settings().max_agent_cycles if max_cycles is None else max_cycles
        self.graph = graph if graph is not None else build_chain_graph(max_cycles=self.max_cycles)

    async def handle_message(self, message: str, thread_id: str | None = None) -> TurnResult:
        """
        Run one turn. Graph errors (ProviderError, TurnLimitExceeded, ...)
        propagate unchanged; a failed save raises StorageError and the
        computed reply is discarded.
        """
        resolved_id = thread_id or await self._mint_thread_id()
        previous = await self.store.load_thread(resolved_id) if thread_id else None

        transcript = [_with_id(m) for m in previous.messages] if previous else []
        prior_tool_calls = list(previous.tool_calls) if previous else []
        has_loaded_history = previous.has_loaded_history if previous else False

        incoming: list[BaseMessage] = []
        if self._needs_history_seed(previous):
            seed = await self.summarizer.build_history_seed(exclude_thread_id=resolved_id)
            if seed is not None:
                incoming.append(seed)
            incoming.append(SystemMessage(content=SESSION_PERSONA_PROMPT))
            has_loaded_history = True
        incoming.append(HumanMessage(content=message))

        log.info(
            "turn_start",
            thread_id=resolved_id,
            new_thread=previous is None,
            prior_messages=len(transcript),
            seeded=len(incoming) > 1,
        )

        inputs = {
            "messages": [RemoveMessage(id=REMOVE_ALL_MESSAGES)]
            + transcript
            + [_with_id(m) for m in incoming],
            "thread_id": resolved_id,
            "tool_calls": [tc.model_dump() for tc in prior_tool_calls],
            "agent_cycles": 0,
        }
        config = {
            "configurable": {"thread_id": resolved_id},
            "recursion_limit": 2 * self.max_cycles + 2,
        }

        try:
            result = await self.graph.ainvoke(inputs, config=config)
        except GraphRecursionError as exc:
            raise TurnLimitExceeded(resolved_id, self.max_cycles) from exc

        messages = list(result["messages"])
        response = content_to_text(messages[-1].content)
        tool_calls = [ToolCall.model_validate(tc) for tc in result.get("tool_calls") or []]
        turn_tool_calls = tool_calls[len(prior_tool_calls):]

        await self.store.save_thread(
            ThreadState(
                thread_id=resolved_id,
                messages=messages,
                tool_calls=tool_calls,
                has_loaded_history=has_loaded_history,
                revision=previous.revision if previous else 0,
                created_at=previous.created_at if previous else utcnow(),
            )
        )

        log.info(
            "turn_complete",
            thread_id=resolved_id,
            message_count=len(messages),
            tool_call_count=len(turn_tool_calls),
        )
        return TurnResult(thread_id=resolved_id, response=response, tool_calls=turn_tool_calls)

    async def get_thread(self, thread_id: str) -> ThreadState | None:
        return await self.store.load_thread(thread_id)

    async def list_threads(self) -> list[ThreadInfo]:
        return await self.store.list_threads()

    async def delete_thread(self, thread_id: str) -> None:
        await self.store.delete_thread(thread_id)
        await self._forget_checkpoints([thread_id])

    async def prune_threads(self, older_than_days: int) -> int:
        """Prune idle threads from the store and drop their graph checkpoints."""
        deleted = await self.store.prune_older_than(older_than_days)
        await self._forget_checkpoints(deleted)
        return len(deleted)

    async def _forget_checkpoints(self, thread_ids: list[str]) -> None:
        checkpointer = getattr(self.graph, "checkpointer", None)
        if not isinstance(checkpointer, BaseCheckpointSaver):
            return
        for thread_id in thread_ids:
            await checkpointer.adelete_thread(thread_id)

    @staticmethod
    def _needs_history_seed(previous: ThreadState | None) -> bool:
        if previous is None:
            return True
        return (
            len(previous.messages) <= COLD_THREAD_MAX_MESSAGES
            and not previous.has_loaded_history
        )

    async def _mint_thread_id(self) -> str:
        """Time + random suffix, re-checked against the store."""
        for _ in range(_MINT_ATTEMPTS):
            candidate = f"{THREAD_ID_PREFIX}_{int(time.time() * 1000)}_{secrets.token_hex(6)}"
            if not await self.store.thread_exists(candidate):
                return candidate
            log.warning("thread_id_collision", thread_id=candidate)
        raise StorageError(f"Could not mint an unused thread id in {_MINT_ATTEMPTS} attempts")


@lru_cache
def get_session() -> ConversationSession:
    store = get_thread_store()
    return ConversationSession(store=store, summarizer=ThreadSummarizer(store))
