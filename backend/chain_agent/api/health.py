from fastapi import APIRouter

from chain_agent.core.errors import StorageError
from chain_agent.memory.thread_store import get_thread_store

router = APIRouter(tags=["health"])


@router.get("/health")
async def health():
    """Health check endpoint.  Verifies the thread store database is reachable."""
    try:
        await get_thread_store().check_connection()
        db_status = "ok"
    except StorageError as exc:
        db_status = f"error: {exc}"

    return {"status": "ok", "database": db_status}
