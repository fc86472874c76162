"""
Error taxonomy for the agent turn engine.

    ChainAgentError
    ├── ProviderError          LLM unreachable or malformed — fatal to the turn
    │   └── TurnLimitExceeded  agent ⇄ tools cycle cap reached
    ├── ToolRunnerError        absorbed inside the tools node
    └── StorageError           thread store I/O failure — fatal, no retry
        ├── ConcurrentUpdateError  stale revision on save
        └── CorruptRecordError     absorbed by load_thread (placeholder message)

An unknown thread id is not an error: load_thread() returns None.
"""


class ChainAgentError(Exception):
    """Base class for all engine errors."""


class ProviderError(ChainAgentError):
    pass


class TurnLimitExceeded(ProviderError):
    def __init__(self, thread_id: str, max_cycles: int):
        self.thread_id = thread_id
        self.max_cycles = max_cycles
        super().__init__(
            f"Thread {thread_id} exceeded {max_cycles} model calls in a single turn"
        )


class ToolRunnerError(ChainAgentError):
    pass


class StorageError(ChainAgentError):
    pass


class ConcurrentUpdateError(StorageError):
    def __init__(self, thread_id: str, expected_revision: int):
        self.thread_id = thread_id
        self.expected_revision = expected_revision
        super().__init__(
            f"Thread {thread_id} was modified concurrently "
            f"(expected revision {expected_revision})"
        )


class CorruptRecordError(StorageError):
    pass
