import asyncio
from contextlib import aclosing
from typing import AsyncIterator, List, Optional, Sequence, Tuple

import structlog

from chat_relay.observability import FRAMES_COUNTER
from chat_relay.providers.base import GenerationParams, ModelProvider, ProviderChunk
from chat_relay.schemas import GenerationSettings, Message
from chat_relay.services.frames import (
    Done,
    ErrorFrame,
    StreamFrame,
    TextFragment,
    encode_frame,
)
from chat_relay.services.roles import to_provider_history

logger = structlog.get_logger()

TIMEOUT_MESSAGE = "Stream timeout exceeded"


def split_history(history: Sequence[Message]) -> Tuple[List[Message], str]:
    """Split a conversation into the seeded context and the new turn."""
    if not history:
        raise ValueError("history must contain at least the new turn")
    return list(history[:-1]), history[-1].content


def to_generation_params(gen: GenerationSettings) -> GenerationParams:
    return GenerationParams(
        model=gen.model,
        temperature=gen.temperature,
        top_p=gen.top_p,
        top_k=gen.top_k,
        max_output_tokens=gen.max_tokens,
        system_instruction=gen.system_instruction,
        search_grounding=gen.search_grounding,
    )


async def open_stream(
    provider: ModelProvider,
    history: Sequence[Message],
    gen: GenerationSettings,
) -> AsyncIterator[ProviderChunk]:
    """Start an upstream session seeded with ``history`` and submit its last turn.

    Everything raised here happens before the response has started, so the
    caller can still answer with a plain error response.
    """
    seed, turn = split_history(history)
    session = provider.start_session(to_provider_history(seed), to_generation_params(gen))
    logger.info("relay_session_opened", model=gen.model, seed_turns=len(seed))
    return await session.send_streaming(turn)


async def _aclose(iterator: AsyncIterator) -> None:
    aclose = getattr(iterator, "aclose", None)
    if aclose is not None:
        await aclose()


async def relay_frames(
    fragments: AsyncIterator[ProviderChunk],
    timeout_seconds: Optional[float] = None,
) -> AsyncIterator[StreamFrame]:
    """Re-frame provider chunks as stream frames.

    Yields one ``TextFragment`` per non-empty chunk, in upstream order, then
    ``Done``. Any failure while pulling chunks ends the stream with exactly one
    ``ErrorFrame``. If the consumer stops early the upstream iterator is closed.
    """
    loop = asyncio.get_running_loop()
    # The deadline only covers waits on upstream, never a suspended yield
    deadline = loop.time() + timeout_seconds if timeout_seconds else None
    iterator = fragments.__aiter__()
    count = 0
    try:
        while True:
            try:
                async with asyncio.timeout_at(deadline):
                    chunk = await iterator.__anext__()
            except StopAsyncIteration:
                break
            except TimeoutError:
                logger.error("relay_stream_timeout", timeout_seconds=timeout_seconds, fragments=count)
                yield ErrorFrame(message=TIMEOUT_MESSAGE)
                return
            except Exception as e:
                logger.error("relay_stream_failed", error=str(e), fragments=count)
                yield ErrorFrame(message=str(e) or "Stream error")
                return
            if chunk.text:
                count += 1
                yield TextFragment(text=chunk.text)
    finally:
        await _aclose(iterator)

    logger.info("relay_stream_finished", fragments=count)
    yield Done()


async def sse_events(frames: AsyncIterator[StreamFrame]) -> AsyncIterator[str]:
    # Closing this generator (client went away) closes the frame source with it
    async with aclosing(frames):
        async for frame in frames:
            FRAMES_COUNTER.labels(type(frame).__name__).inc()
            yield encode_frame(frame)
