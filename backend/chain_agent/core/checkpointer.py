from functools import lru_cache

from langgraph.checkpoint.memory import MemorySaver


@lru_cache
def get_checkpointer() -> MemorySaver:
    """
    Returns the process-wide checkpointer for the turn graph.

    Checkpoints are the graph's execution log, keyed by the thread_id
    configurable. They are not the durable transcript — that lives in the
    thread store, and the session manager re-sends it on every turn.
    """
    return MemorySaver()
