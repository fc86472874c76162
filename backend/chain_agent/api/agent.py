"""
Agent API endpoints.

POST   /api/agent/invoke               — run one conversation turn
GET    /api/agent/threads              — list stored threads (newest first)
GET    /api/agent/threads/{thread_id}  — stored transcript + tool-call log
DELETE /api/agent/threads/{thread_id}  — remove a thread (idempotent)

Provider and storage failures surface as generic error bodies; details go
to the log only.
"""

from fastapi import APIRouter, Depends, HTTPException, Response, status
from langchain_core.messages import message_to_dict
from pydantic import BaseModel

from chain_agent.agents.session import ConversationSession, TurnResult, get_session
from chain_agent.core.errors import ConcurrentUpdateError, ProviderError, StorageError
from chain_agent.core.logging import get_logger
from chain_agent.memory.models import ThreadInfo, is_unparseable

log = get_logger(__name__)
router = APIRouter(prefix="/api/agent", tags=["agent"])


class InvokeRequest(BaseModel):
    message: str
    thread_id: str | None = None


def _thread_failure(exc: Exception, thread_id: str | None) -> HTTPException:
    """Map an engine error to the HTTP error the caller sees."""
    if isinstance(exc, ConcurrentUpdateError):
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Thread was updated by another request. Retry the message.",
        )
    if isinstance(exc, ProviderError):
        log.error("invoke_failed", thread_id=thread_id, error_type=type(exc).__name__, error=str(exc))
        return HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Failed to generate a response.",
        )
    log.error("invoke_failed", thread_id=thread_id, error_type=type(exc).__name__, error=str(exc))
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail="Conversation storage is unavailable.",
    )


# ── Endpoints ─────────────────────────────────────────────────────────────────

@router.post("/invoke", response_model=TurnResult)
async def invoke_agent(
    req: InvokeRequest,
    session: ConversationSession = Depends(get_session),
):
    """Synchronous invocation — waits for the full agent turn."""
    try:
        result = await session.handle_message(req.message, req.thread_id)
    except (ProviderError, StorageError) as exc:
        raise _thread_failure(exc, req.thread_id) from exc

    log.info("invoke_complete", thread_id=result.thread_id, tool_calls=len(result.tool_calls))
    return result


@router.get("/threads", response_model=list[ThreadInfo])
async def list_threads(session: ConversationSession = Depends(get_session)):
    try:
        return await session.list_threads()
    except StorageError as exc:
        raise _thread_failure(exc, None) from exc


@router.get("/threads/{thread_id}")
async def get_thread_state(
    thread_id: str,
    session: ConversationSession = Depends(get_session),
):
    """Retrieve the persisted transcript and tool-call log of a thread."""
    try:
        state = await session.get_thread(thread_id)
    except StorageError as exc:
        raise _thread_failure(exc, thread_id) from exc
    if state is None:
        raise HTTPException(status_code=404, detail="Thread not found")

    return {
        "thread_id": state.thread_id,
        "messages": [
            {"type": "unparseable", "data": m.additional_kwargs.get("raw")}
            if is_unparseable(m) else message_to_dict(m)
            for m in state.messages
        ],
        "tool_calls": [tc.model_dump() for tc in state.tool_calls],
        "revision": state.revision,
        "created_at": state.created_at,
        "updated_at": state.updated_at,
    }


@router.delete("/threads/{thread_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_thread(
    thread_id: str,
    session: ConversationSession = Depends(get_session),
):
    try:
        await session.delete_thread(thread_id)
    except StorageError as exc:
        raise _thread_failure(exc, thread_id) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)
