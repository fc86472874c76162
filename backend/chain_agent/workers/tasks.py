"""
Celery tasks.

Queue assignment:
  memory — thread retention pruning
"""

import asyncio
import logging
from typing import Any

from chain_agent.core.errors import StorageError
from chain_agent.workers.celery_app import celery

logger = logging.getLogger(__name__)


def _run(coro):
    """Run an async coroutine from a sync Celery task."""
    return asyncio.run(coro)


# ── Retention ─────────────────────────────────────────────────────────────────

@celery.task(
    name="chain_agent.workers.tasks.prune_threads",
    bind=True,
    max_retries=1,
    default_retry_delay=300,
    queue="memory",
)
def prune_threads(self, older_than_days: int = 30) -> dict[str, Any]:
    """Delete threads whose last update is older than older_than_days. Runs daily."""
    try:
        deleted = _run(_prune_threads_async(older_than_days))
        return {"status": "ok", "deleted_threads": deleted}
    except StorageError as exc:
        logger.error("prune_threads failed: %s", exc, exc_info=True)
        raise self.retry(exc=exc)


async def _prune_threads_async(older_than_days: int) -> int:
    from chain_agent.memory.thread_store import get_thread_store

    # Graph checkpoints live in the API process; the worker only owns the store rows.
    store = get_thread_store()
    await store.initialize()
    deleted = len(await store.prune_older_than(older_than_days))
    logger.info("prune_threads: removed %d threads older than %d days", deleted, older_than_days)
    return deleted

