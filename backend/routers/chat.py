import logging

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask

from models.schemas import ChatRequest
from services.relay import UpstreamRelay
from settings import settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["chat"])

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}


def get_relay() -> UpstreamRelay:
    return UpstreamRelay(settings)


@router.post("/chat")
async def chat_completion(request: ChatRequest, relay: UpstreamRelay = Depends(get_relay)):
    messages = [m.model_dump() for m in request.messages]
    logger.info("Relaying chat request with %d messages", len(messages))

    # Fails with UpstreamError before any SSE byte is sent
    upstream = await relay.open(messages)

    return StreamingResponse(
        upstream.frames(),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
        background=BackgroundTask(upstream.aclose),
    )
