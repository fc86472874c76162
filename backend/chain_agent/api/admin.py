"""
Maintenance endpoints.

POST /api/admin/prune?older_than_days=30 — delete threads idle for N days
GET  /api/admin/summaries                — current thread summaries (history seed input)

Pruning also runs daily as a Celery beat task (chain_agent.workers.tasks).
"""

from fastapi import APIRouter, Depends, HTTPException, Query, status

from chain_agent.agents.session import ConversationSession, get_session
from chain_agent.core.errors import ProviderError, StorageError
from chain_agent.core.logging import get_logger

log = get_logger(__name__)
router = APIRouter(prefix="/api/admin", tags=["admin"])


@router.post("/prune")
async def prune_threads(
    older_than_days: int = Query(30, ge=0),
    session: ConversationSession = Depends(get_session),
):
    """Delete every thread whose last update is older than older_than_days."""
    try:
        deleted = await session.prune_threads(older_than_days)
    except StorageError as exc:
        log.error("prune_failed", error=str(exc))
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Conversation storage is unavailable.",
        ) from exc
    return {"deleted_threads": deleted, "older_than_days": older_than_days}


@router.get("/summaries")
async def get_summaries(session: ConversationSession = Depends(get_session)):
    """
    Regenerate and return the summaries a cold thread would be seeded with.
    Issues one LLM call per stored thread.
    """
    try:
        summaries = await session.summarizer.summarize_all_threads()
    except ProviderError as exc:
        log.error("summaries_failed", error=str(exc))
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Failed to generate summaries.",
        ) from exc
    except StorageError as exc:
        log.error("summaries_failed", error=str(exc))
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Conversation storage is unavailable.",
        ) from exc
    return {"count": len(summaries), "summaries": summaries}
