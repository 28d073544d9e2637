"""Chat Service: streamed, grounded answers over the caller's documents."""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Header, HTTPException, Query
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.responses import Response, StreamingResponse

from docrag.api.health import check_all_dependencies, check_readiness
from docrag.core.config import settings
from docrag.core.dependencies import services
from docrag.core.exceptions import DocRagError
from docrag.models.chat import ChatStreamRequest, MessagePage
from docrag.services.stream import UI_MESSAGE_STREAM_CONTENT_TYPE, QueueStreamWriter

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    await services.initialize()
    logger.info("Chat Service started")
    yield
    await services.shutdown()
    logger.info("Chat Service stopped")


app = FastAPI(title="Chat Service", lifespan=lifespan)

# Strong references so a stream outlives a disconnected client
_stream_tasks: set = set()


def require_owner(owner_id: Optional[str]) -> str:
    if not owner_id:
        raise HTTPException(status_code=401, detail="Missing owner")
    return owner_id


@app.post("/chat/stream")
async def chat_stream(
    request: ChatStreamRequest,
    x_owner_id: Optional[str] = Header(None),
) -> StreamingResponse:
    """
    Answer the latest user message as a server-sent-events stream.

    Args:
        request: Conversation so far, session id and optional redo id.
        x_owner_id: Caller set by the auth layer.

    Returns:
        Event stream of the answer.
    """
    owner_id = require_owner(x_owner_id)
    writer = QueueStreamWriter()
    task = asyncio.create_task(services.chat_processor.stream_chat(request, owner_id, writer))
    _stream_tasks.add(task)
    task.add_done_callback(_stream_tasks.discard)

    async def body():
        try:
            async for chunk in writer.iter_chunks():
                yield chunk
        finally:
            if not task.done():
                logger.info(f"Client disconnected from session {request.session_id}")

    return StreamingResponse(
        body(),
        media_type=UI_MESSAGE_STREAM_CONTENT_TYPE,
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@app.get("/chat/sessions/{session_id}/messages", response_model=MessagePage, response_model_by_alias=True)
async def list_messages(
    session_id: str,
    limit: int = Query(settings.history_default_limit, ge=1, le=settings.history_max_limit),
    cursor: Optional[str] = None,
    x_owner_id: Optional[str] = Header(None),
) -> MessagePage:
    """
    List a session's messages, newest first.

    Args:
        session_id: Session to read.
        limit: Page size.
        cursor: ``nextCursor`` of the previous page.
        x_owner_id: Caller set by the auth layer.

    Returns:
        One page of messages.
    """
    owner_id = require_owner(x_owner_id)
    try:
        return await services.history.list_messages(session_id, owner_id, limit=limit, cursor=cursor)
    except DocRagError as e:
        logger.error(f"Failed to list messages for session {session_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=e.error_code)


@app.get("/metrics")
async def metrics() -> Response:
    """Prometheus metrics endpoint."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


@app.get("/health")
async def health() -> dict:
    """Health check endpoint with dependency verification."""
    result = await check_all_dependencies(services)
    return {"service": "chat-service", **result}


@app.get("/ready")
async def readiness() -> dict:
    """Readiness check endpoint."""
    result = await check_readiness(services)
    return {"service": "chat-service", **result}
