"""
Thread store — durable transcript + tool-call log per thread id.

Record shape (one row per thread):
    thread_id (PK) | messages (JSON) | tool_calls (JSON) | has_loaded_history
    | revision | created_at | updated_at

Messages are serialized with LangChain's message_to_dict(), which keeps the
message type, content, id and tool-call requests. A stored message that no
longer parses is loaded as an "unparseable" placeholder carrying its raw
payload, and is written back verbatim on the next save.

No in-memory cache: every call goes to the database file.
"""

import json
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Any

import aiosqlite
from langchain_core.messages import BaseMessage, message_to_dict, messages_from_dict
from pydantic import ValidationError

from chain_agent.core.db import create_schema, get_db, resolve_db_path
from chain_agent.core.errors import ConcurrentUpdateError, CorruptRecordError, StorageError
from chain_agent.core.logging import get_logger
from chain_agent.memory.models import (
    ThreadInfo,
    ThreadState,
    ToolCall,
    is_unparseable,
    unparseable_message,
    utcnow,
)

log = get_logger(__name__)


# ── Serialization ─────────────────────────────────────────────────────────────

def serialize_messages(messages: list[BaseMessage]) -> str:
    payload = [
        m.additional_kwargs.get("raw") if is_unparseable(m) else message_to_dict(m)
        for m in messages
    ]
    return json.dumps(payload, default=str)


def deserialize_message(item: Any) -> BaseMessage:
    """Rebuild one message; raises CorruptRecordError if the payload is unusable."""
    try:
        return messages_from_dict([item])[0]
    except (KeyError, TypeError, ValueError, AttributeError, IndexError) as exc:
        raise CorruptRecordError(f"Unreadable message record: {exc}") from exc


def _format_ts(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _parse_ts(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


# ── Store ─────────────────────────────────────────────────────────────────────

class ThreadStore:
    def __init__(self, db_path: str | None = None):
        self.db_path = resolve_db_path(db_path)

    async def initialize(self) -> None:
        try:
            await create_schema(self.db_path)
        except aiosqlite.Error as exc:
            raise StorageError(f"Could not initialize thread store: {exc}") from exc
        log.info("thread_store_initialized", db_path=self.db_path)

    async def check_connection(self) -> None:
        try:
            async with get_db(self.db_path) as conn:
                await conn.execute("SELECT 1")
        except aiosqlite.Error as exc:
            raise StorageError(str(exc)) from exc

    async def save_thread(
        self,
        state: ThreadState,
        expected_revision: int | None = None,
    ) -> ThreadState:
        """
        Write the full transcript and tool-call log for state.thread_id.

        expected_revision (defaults to state.revision) must match the stored
        revision; 0 means the thread must not exist yet. On mismatch the write
        is rejected with ConcurrentUpdateError.
        """
        expected = state.revision if expected_revision is None else expected_revision
        now = utcnow()
        messages_json = serialize_messages(state.messages)
        tool_calls_json = json.dumps([tc.model_dump() for tc in state.tool_calls])

        log.info(
            "save_thread",
            thread_id=state.thread_id,
            message_count=len(state.messages),
            tool_call_count=len(state.tool_calls),
            expected_revision=expected,
        )

        try:
            async with get_db(self.db_path) as conn:
                if expected == 0:
                    created_at = now
                    try:
                        await conn.execute(
                            """
                            INSERT INTO threads
                                (thread_id, messages, tool_calls, has_loaded_history,
                                 revision, created_at, updated_at)
                            VALUES (?, ?, ?, ?, 1, ?, ?)
                            """,
                            (
                                state.thread_id,
                                messages_json,
                                tool_calls_json,
                                int(state.has_loaded_history),
                                _format_ts(now),
                                _format_ts(now),
                            ),
                        )
                    except aiosqlite.IntegrityError as exc:
                        raise ConcurrentUpdateError(state.thread_id, expected) from exc
                else:
                    created_at = min(state.created_at, now)
                    cursor = await conn.execute(
                        """
                        UPDATE threads
                        SET    messages = ?, tool_calls = ?, has_loaded_history = ?,
                               revision = revision + 1, updated_at = ?
                        WHERE  thread_id = ? AND revision = ?
                        """,
                        (
                            messages_json,
                            tool_calls_json,
                            int(state.has_loaded_history),
                            _format_ts(now),
                            state.thread_id,
                            expected,
                        ),
                    )
                    if cursor.rowcount == 0:
                        raise ConcurrentUpdateError(state.thread_id, expected)
                await conn.commit()
        except ConcurrentUpdateError:
            log.warning("stale_thread_write", thread_id=state.thread_id, expected_revision=expected)
            raise
        except aiosqlite.Error as exc:
            log.error("save_thread_failed", thread_id=state.thread_id, error=str(exc))
            raise StorageError(f"Failed to save thread {state.thread_id}: {exc}") from exc

        return state.model_copy(
            update={"revision": expected + 1, "created_at": created_at, "updated_at": now}
        )

    async def load_thread(self, thread_id: str) -> ThreadState | None:
        """Return the stored thread, or None if the id is unknown."""
        try:
            async with get_db(self.db_path) as conn:
                async with conn.execute(
                    "SELECT * FROM threads WHERE thread_id = ?", (thread_id,)
                ) as cur:
                    row = await cur.fetchone()
        except aiosqlite.Error as exc:
            raise StorageError(f"Failed to load thread {thread_id}: {exc}") from exc

        if row is None:
            log.debug("thread_not_found", thread_id=thread_id)
            return None

        return ThreadState(
            thread_id=row["thread_id"],
            messages=self._load_messages(thread_id, row["messages"]),
            tool_calls=self._load_tool_calls(thread_id, row["tool_calls"]),
            has_loaded_history=bool(row["has_loaded_history"]),
            revision=row["revision"],
            created_at=_parse_ts(row["created_at"]),
            updated_at=_parse_ts(row["updated_at"]),
        )

    async def thread_exists(self, thread_id: str) -> bool:
        try:
            async with get_db(self.db_path) as conn:
                async with conn.execute(
                    "SELECT 1 FROM threads WHERE thread_id = ?", (thread_id,)
                ) as cur:
                    return await cur.fetchone() is not None
        except aiosqlite.Error as exc:
            raise StorageError(str(exc)) from exc

    async def list_threads(self) -> list[ThreadInfo]:
        """All threads, most recently updated first."""
        try:
            async with get_db(self.db_path) as conn:
                async with conn.execute(
                    "SELECT thread_id, created_at, updated_at FROM threads "
                    "ORDER BY updated_at DESC"
                ) as cur:
                    rows = await cur.fetchall()
        except aiosqlite.Error as exc:
            raise StorageError(f"Failed to list threads: {exc}") from exc

        return [
            ThreadInfo(
                thread_id=r["thread_id"],
                created_at=_parse_ts(r["created_at"]),
                updated_at=_parse_ts(r["updated_at"]),
            )
            for r in rows
        ]

    async def delete_thread(self, thread_id: str) -> None:
        """Remove a thread. Deleting an unknown id is a no-op."""
        try:
            async with get_db(self.db_path) as conn:
                await conn.execute("DELETE FROM threads WHERE thread_id = ?", (thread_id,))
                await conn.commit()
        except aiosqlite.Error as exc:
            raise StorageError(f"Failed to delete thread {thread_id}: {exc}") from exc
        log.info("thread_deleted", thread_id=thread_id)

    async def prune_older_than(self, days: int) -> list[str]:
        """Delete threads not updated within the last `days` days. Returns the removed ids."""
        cutoff = _format_ts(utcnow() - timedelta(days=days))
        try:
            async with get_db(self.db_path) as conn:
                await conn.execute("BEGIN IMMEDIATE")
                async with conn.execute(
                    "SELECT thread_id FROM threads WHERE updated_at < ?", (cutoff,)
                ) as cursor:
                    deleted = [row["thread_id"] for row in await cursor.fetchall()]
                await conn.execute("DELETE FROM threads WHERE updated_at < ?", (cutoff,))
                await conn.commit()
        except aiosqlite.Error as exc:
            raise StorageError(f"Failed to prune threads: {exc}") from exc

        log.info("threads_pruned", older_than_days=days, deleted=len(deleted))
        return deleted

    # ── Helpers ───────────────────────────────────────────────────────────────

    def _load_messages(self, thread_id: str, raw: str) -> list[BaseMessage]:
        try:
            items = json.loads(raw)
        except json.JSONDecodeError as exc:
            log.warning("corrupt_record", thread_id=thread_id, field="messages", error=str(exc))
            return [unparseable_message(raw)]
        if not isinstance(items, list):
            log.warning("corrupt_record", thread_id=thread_id, field="messages", error="not a list")
            return [unparseable_message(items)]

        messages: list[BaseMessage] = []
        for position, item in enumerate(items):
            try:
                messages.append(deserialize_message(item))
            except CorruptRecordError as exc:
                log.warning(
                    "corrupt_record",
                    thread_id=thread_id,
                    field="messages",
                    position=position,
                    error=str(exc),
                )
                messages.append(unparseable_message(item))
        return messages

    def _load_tool_calls(self, thread_id: str, raw: str | None) -> list[ToolCall]:
        try:
            items = json.loads(raw or "[]")
        except json.JSONDecodeError as exc:
            log.warning("corrupt_record", thread_id=thread_id, field="tool_calls", error=str(exc))
            return []

        tool_calls: list[ToolCall] = []
        for position, item in enumerate(items if isinstance(items, list) else []):
            try:
                tool_calls.append(ToolCall.model_validate(item))
            except ValidationError as exc:
                log.warning(
                    "corrupt_record",
                    thread_id=thread_id,
                    field="tool_calls",
                    position=position,
                    error=str(exc),
                )
        return tool_calls


@lru_cache
def get_thread_store() -> ThreadStore:
    return ThreadStore()
