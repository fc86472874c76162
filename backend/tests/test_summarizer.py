"""Tests for ThreadSummarizer batching, failure policy and history seeds."""

import pytest
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage

from chain_agent.agents.prompts import HISTORY_SEED_PREFIX, THREAD_SUMMARY_PROMPT
from chain_agent.core.errors import ProviderError
from chain_agent.memory.models import ThreadState
from chain_agent.memory.summarizer import ThreadSummarizer, format_transcript


async def _seed_threads(store, count: int, empty: tuple[int, ...] = ()):
    for i in range(count):
        messages = [] if i in empty else [
            HumanMessage(content=f"question {i}"),
            AIMessage(content=f"answer {i}"),
            HumanMessage(content=f"follow-up {i}"),
            AIMessage(content=f"final {i}"),
        ]
        await store.save_thread(ThreadState(thread_id=f"thread-{i}", messages=messages))


def _summarizer(store, model, batch_size=5):
    return ThreadSummarizer(store, llm_factory=lambda: model, batch_size=batch_size, messages_per_thread=3)


async def test_six_threads_run_as_two_batches(store, summary_model):
    await _seed_threads(store, 6)

    summaries = await _summarizer(store, summary_model).summarize_all_threads()

    assert len(summaries) == 6
    assert len(summary_model.calls) == 6
    assert summary_model.max_in_flight <= 5
    # the sixth request only starts once the first batch has fully finished
    assert summary_model.starts[-1] == 0


async def test_only_last_three_messages_are_sent(store, summary_model):
    await _seed_threads(store, 1)

    await _summarizer(store, summary_model).summarize_all_threads()

    assert summary_model.calls == ["assistant: answer 0\nuser: follow-up 0\nassistant: final 0"]


async def test_empty_threads_are_skipped_without_a_request(store, summary_model):
    await _seed_threads(store, 6, empty=(2, 4))

    summaries = await _summarizer(store, summary_model).summarize_all_threads()

    assert len(summaries) == 4
    assert len(summary_model.calls) == 4
    assert not any("2" in s or "4" in s for s in summaries)


async def test_failing_thread_does_not_abort_the_batch(store, summary_model):
    await _seed_threads(store, 3)
    summary_model.fail_on = "final 1"

    summaries = await _summarizer(store, summary_model).summarize_all_threads()

    assert sorted(summaries) == ["summary: assistant: final 0", "summary: assistant: final 2"]


async def test_unreachable_provider_on_first_request_raises(store, summary_model):
    await _seed_threads(store, 3)
    summary_model.fail_on = "final"
    summary_model.error_type = ConnectionError

    with pytest.raises(ProviderError):
        await _summarizer(store, summary_model).summarize_all_threads()


async def test_connectivity_error_after_first_success_is_absorbed(store, summary_model):
    await _seed_threads(store, 2)
    # thread-1 is listed first (most recently updated) and succeeds
    summary_model.fail_on = "final 0"
    summary_model.error_type = ConnectionError

    summaries = await _summarizer(store, summary_model).summarize_all_threads()

    assert summaries == ["summary: assistant: final 1"]


async def test_history_seed_joins_trimmed_summaries(store, summary_model):
    await _seed_threads(store, 3)

    seed = await _summarizer(store, summary_model).build_history_seed(max_summaries=2)

    assert isinstance(seed, SystemMessage)
    assert seed.content.startswith(HISTORY_SEED_PREFIX)
    parts = seed.content[len(HISTORY_SEED_PREFIX):].split(" | ")
    assert parts == ["summary: assistant: final 2", "summary: assistant: final 1"]


async def test_history_seed_with_zero_limit_is_none(store, summary_model):
    await _seed_threads(store, 3)

    assert await _summarizer(store, summary_model).build_history_seed(max_summaries=0) is None


async def test_history_seed_skips_the_excluded_thread(store, summary_model):
    await _seed_threads(store, 3)

    seed = await _summarizer(store, summary_model).build_history_seed(exclude_thread_id="thread-1")

    assert "final 1" not in seed.content
    assert "final 0" in seed.content and "final 2" in seed.content
    assert len(summary_model.calls) == 2


async def test_history_seed_is_none_for_empty_store(store, summary_model):
    assert await _summarizer(store, summary_model).build_history_seed() is None
    assert summary_model.calls == []


def test_format_transcript_labels_roles():
    text = format_transcript([HumanMessage(content="hi"), AIMessage(content="hello")])

    assert text == "user: hi\nassistant: hello"
    assert "Context" in THREAD_SUMMARY_PROMPT
