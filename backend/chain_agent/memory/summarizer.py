"""
Thread summarizer — compresses stored threads into short context summaries.

    summarize_all_threads(exclude_thread_id)
      → list every thread (newest first)
      → batches of summary_batch_size threads, one LLM request per thread,
        requests inside a batch run concurrently
      → last summary_messages_per_thread messages of each thread
      → list of summary texts

    build_history_seed(max_summaries, exclude_thread_id)
      → "Previous conversations context: s1 | s2 | ..." as a SystemMessage

Summaries are derived on demand and never written back to the store.
"""

import asyncio
from typing import Callable

import httpx
import openai
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage

from chain_agent.agents.nodes import content_to_text
from chain_agent.agents.prompts import (
    HISTORY_SEED_DELIMITER,
    HISTORY_SEED_PREFIX,
    THREAD_SUMMARY_PROMPT,
)
from chain_agent.core.config import get_settings
from chain_agent.core.errors import ProviderError
from chain_agent.core.llm import get_chat_model
from chain_agent.core.logging import get_logger
from chain_agent.memory.models import ThreadInfo, is_unparseable
from chain_agent.memory.thread_store import ThreadStore

log = get_logger(__name__)

# Failures that mean the provider is unreachable, not that one thread was odd.
CONNECTIVITY_ERRORS = (ConnectionError, httpx.TransportError, openai.APIConnectionError)

_ROLE_NAMES = {"human": "user", "ai": "assistant", "system": "system", "tool": "tool"}


def format_transcript(messages: list[BaseMessage]) -> str:
    lines = []
    for message in messages:
        if is_unparseable(message):
            continue
        role = _ROLE_NAMES.get(message.type, message.type)
        lines.append(f"{role}: {content_to_text(message.content)}")
    return "\n".join(lines)


class ThreadSummarizer:
    def __init__(
        self,
        store: ThreadStore,
        llm_factory: Callable[[], BaseChatModel] | None = None,
        batch_size: int | None = None,
        messages_per_thread: int | None = None,
    ):
        settings = get_settings()
        self.store = store
        self._llm_factory = llm_factory or (
            lambda: get_chat_model(model=settings.fast_model, temperature=0.3)
        )
        self.batch_size = settings.summary_batch_size if batch_size is None else batch_size
        self.messages_per_thread = (
            settings.summary_messages_per_thread if messages_per_thread is None else messages_per_thread
        )

    async def summarize_all_threads(self, exclude_thread_id: str | None = None) -> list[str]:
        """
        Summarize every stored thread except exclude_thread_id.

        A failing thread contributes no summary. The run only fails (with
        ProviderError) when the first summarization request cannot reach the
        provider at all.
        """
        threads = [t for t in await self.store.list_threads() if t.thread_id != exclude_thread_id]
        llm = self._llm_factory()
        summaries: list[str] = []
        first_request_done = False

        for start in range(0, len(threads), self.batch_size):
            batch = threads[start:start + self.batch_size]
            batch_number = start // self.batch_size + 1
            log.debug("summary_batch_start", batch=batch_number, size=len(batch))

            results = await asyncio.gather(
                *(self._summarize_thread(llm, info) for info in batch),
                return_exceptions=True,
            )

            for info, result in zip(batch, results):
                if result is None:
                    continue  # no messages, no request issued
                if isinstance(result, BaseException):
                    if not first_request_done and isinstance(result, CONNECTIVITY_ERRORS):
                        log.error("summarizer_unreachable", thread_id=info.thread_id, error=str(result))
                        raise ProviderError(f"Summarization model unreachable: {result}") from result
                    first_request_done = True
                    log.warning("summarize_thread_failed", thread_id=info.thread_id, error=str(result))
                    continue
                first_request_done = True
                if result:
                    summaries.append(result)

        log.info("thread_summaries_generated", threads=len(threads), summaries=len(summaries))
        return summaries

    async def build_history_seed(
        self,
        max_summaries: int | None = None,
        exclude_thread_id: str | None = None,
    ) -> SystemMessage | None:
        """
        Wrap up to max_summaries summaries as one system context message, or None.
        The thread being seeded is passed as exclude_thread_id so it never sees
        its own summary as earlier history.
        """
        limit = get_settings().max_history_summaries if max_summaries is None else max_summaries
        if limit <= 0:
            return None
        summaries = [s.strip() for s in await self.summarize_all_threads(exclude_thread_id)]
        summaries = [s for s in summaries if s][:limit]
        if not summaries:
            return None
        return SystemMessage(content=HISTORY_SEED_PREFIX + HISTORY_SEED_DELIMITER.join(summaries))

    async def _summarize_thread(self, llm: BaseChatModel, info: ThreadInfo) -> str | None:
        state = await self.store.load_thread(info.thread_id)
        if state is None or not state.messages:
            return None

        transcript = format_transcript(state.messages[-self.messages_per_thread:])
        if not transcript:
            return None

        response = await llm.ainvoke([
            SystemMessage(content=THREAD_SUMMARY_PROMPT),
            HumanMessage(content=transcript),
        ])
        return content_to_text(response.content).strip()
