import pytest
from langgraph.checkpoint.memory import MemorySaver

from chain_agent.agents.graph import build_chain_graph
from chain_agent.agents.session import ConversationSession
from chain_agent.core.config import get_settings
from chain_agent.memory.summarizer import ThreadSummarizer
from chain_agent.memory.thread_store import ThreadStore, get_thread_store

from fakes import FAKE_TOOLS, ScriptedChatModel, SummaryChatModel


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "threads.sqlite")


@pytest.fixture
async def store(db_path):
    thread_store = ThreadStore(db_path)
    await thread_store.initialize()
    return thread_store


@pytest.fixture
def isolated_settings(monkeypatch, db_path):
    """Point the cached settings/store singletons at the temporary database."""
    monkeypatch.setenv("THREAD_DB_PATH", db_path)
    get_settings.cache_clear()
    get_thread_store.cache_clear()
    yield get_settings()
    get_settings.cache_clear()
    get_thread_store.cache_clear()


@pytest.fixture
def chat_model():
    return ScriptedChatModel()


@pytest.fixture
def summary_model():
    return SummaryChatModel()


@pytest.fixture
def make_session(store, chat_model, summary_model):
    def _make(llm=None, tool_runner=None, max_cycles=5, thread_store=None):
        thread_store = thread_store or store
        graph = build_chain_graph(
            llm=llm or chat_model,
            tools=FAKE_TOOLS,
            tool_runner=tool_runner,
            checkpointer=MemorySaver(),
            max_cycles=max_cycles,
        )
        summarizer = ThreadSummarizer(thread_store, llm_factory=lambda: summary_model)
        return ConversationSession(
            store=thread_store,
            summarizer=summarizer,
            graph=graph,
            max_cycles=max_cycles,
        )

    return _make
