from fastapi import APIRouter
from fastapi.responses import StreamingResponse
import structlog

from chat_relay.api.deps import ProviderDep
from chat_relay.core.config import settings
from chat_relay.core.errors import RelayError
from chat_relay.schemas import ChatRequest, ErrorResponse
from chat_relay.services.relay import open_stream, relay_frames, sse_events

router = APIRouter(tags=["chat"])
logger = structlog.get_logger()

SSE_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",  # Disable nginx buffering
    "X-Content-Type-Options": "nosniff",
}


@router.post(
    "/chat",
    response_class=StreamingResponse,
    responses={
        200: {"content": {"text/event-stream": {}}},
        500: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
    },
)
async def chat(payload: ChatRequest, provider: ProviderDep):
    """
    Relay one chat turn as a server-sent event stream.

    The last message is the new turn; everything before it seeds the upstream
    session. Failures before the stream opens come back as a JSON error body.
    """
    try:
        fragments = await open_stream(provider, payload.messages, payload.settings)
    except RelayError:
        raise
    except Exception as e:
        logger.exception("chat_open_failed")
        raise RelayError(str(e) or "Internal server error") from e

    return StreamingResponse(
        sse_events(relay_frames(fragments, timeout_seconds=settings.STREAM_TIMEOUT_SECONDS)),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
