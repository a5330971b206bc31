"""Client side of the chat relay.

Reads the ``text/event-stream`` body returned by ``POST /api/chat`` and folds
its frames into a single assistant message.
"""
import enum
from dataclasses import dataclass
from typing import AsyncIterator, Callable, Iterable, List, Optional, Sequence, Union

import httpx
import structlog

from chat_relay.schemas import GenerationSettings, Message
from chat_relay.services.frames import Done, ErrorFrame, SSEDecoder, StreamFrame, TextFragment

logger = structlog.get_logger()

FragmentCallback = Callable[[str], None]


class ConsumerState(str, enum.Enum):
    IDLE = "idle"
    REQUESTING = "requesting"
    STREAMING = "streaming"
    COMPLETED = "completed"
    FAILED = "failed"


class ChatRequestFailed(Exception):
    """The relay answered with an error status before any stream began."""

    def __init__(self, status_code: Optional[int], detail: str = "Failed to get response"):
        super().__init__(detail if status_code is None else f"{detail} (HTTP {status_code})")
        self.status_code = status_code
        self.detail = detail


@dataclass
class StreamResult:
    text: str = ""
    error: Optional[str] = None
    # True once [DONE] or an error frame was seen
    terminated: bool = False

    @property
    def failed_midstream(self) -> bool:
        return self.error is not None

    @property
    def partial(self) -> bool:
        """The stream ended without a terminal frame; ``text`` may be cut short."""
        return not self.terminated

    @property
    def ok(self) -> bool:
        return self.terminated and self.error is None


class StreamAccumulator:
    """Folds frames into a :class:`StreamResult`.

    Text keeps accumulating after an error frame; partial output is never
    thrown away. ``[DONE]`` stops the fold and later input is ignored.
    """

    def __init__(self, on_fragment: Optional[FragmentCallback] = None):
        self._decoder = SSEDecoder()
        self._parts: List[str] = []
        self._on_fragment = on_fragment
        self.error: Optional[str] = None
        self.done = False
        self.terminated = False

    def feed(self, chunk: Union[bytes, str]) -> bool:
        """Consume one chunk of the body. Returns True once ``[DONE]`` was read."""
        if not self.done:
            self._apply(self._decoder.feed(chunk))
        return self.done

    def finish(self) -> StreamResult:
        if not self.done:
            self._apply(self._decoder.flush())
        return StreamResult(text="".join(self._parts), error=self.error, terminated=self.terminated)

    def _apply(self, frames: Iterable[StreamFrame]) -> None:
        for frame in frames:
            if isinstance(frame, Done):
                self.done = self.terminated = True
                return
            if isinstance(frame, ErrorFrame):
                logger.error("stream_error_frame", error=frame.message)
                if self.error is None:
                    self.error = frame.message
                self.terminated = True
            elif isinstance(frame, TextFragment):
                self._parts.append(frame.text)
                if self._on_fragment is not None:
                    self._on_fragment(frame.text)


def decode_stream(chunks: Iterable[Union[bytes, str]]) -> StreamResult:
    """Decode a complete event-stream body given as any sequence of chunks."""
    acc = StreamAccumulator()
    for chunk in chunks:
        if acc.feed(chunk):
            break
    return acc.finish()


async def adecode_stream(
    chunks: AsyncIterator[bytes], on_fragment: Optional[FragmentCallback] = None
) -> StreamResult:
    acc = StreamAccumulator(on_fragment)
    try:
        async for chunk in chunks:
            if acc.feed(chunk):
                break
    except httpx.TransportError as e:
        # The connection dropped mid-stream; keep what arrived and flag it partial
        logger.warning("stream_interrupted", error=str(e))
    return acc.finish()


def build_request_body(history: Sequence[Message], settings: GenerationSettings) -> dict:
    return {
        "messages": [m.to_wire() for m in history],
        "settings": settings.to_wire(),
    }


class StreamConsumer:
    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        path: str = "/api/chat",
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 300.0,
    ):
        self.base_url = base_url
        self.path = path
        self.timeout = timeout
        self._client = client
        self.state = ConsumerState.IDLE

    async def send(
        self,
        history: Sequence[Message],
        settings: GenerationSettings,
        on_fragment: Optional[FragmentCallback] = None,
    ) -> StreamResult:
        """Send one turn and return the assembled assistant reply.

        Raises :class:`ChatRequestFailed` only when the request itself fails.
        Once streaming has begun the result always comes back, carrying any
        error frame in ``error`` and an unterminated stream as ``partial``.
        """
        if self._client is not None:
            return await self._send(self._client, history, settings, on_fragment)
        async with httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout) as client:
            return await self._send(client, history, settings, on_fragment)

    async def _send(
        self,
        client: httpx.AsyncClient,
        history: Sequence[Message],
        settings: GenerationSettings,
        on_fragment: Optional[FragmentCallback],
    ) -> StreamResult:
        self.state = ConsumerState.REQUESTING
        body = build_request_body(history, settings)
        result: Optional[StreamResult] = None
        try:
            async with client.stream("POST", self.path, json=body) as response:
                if not response.is_success:
                    self.state = ConsumerState.FAILED
                    raise ChatRequestFailed(response.status_code)
                self.state = ConsumerState.STREAMING
                result = await adecode_stream(response.aiter_bytes(), on_fragment)
        except httpx.TransportError as e:
            if self.state is not ConsumerState.STREAMING:
                self.state = ConsumerState.FAILED
                raise ChatRequestFailed(None, str(e) or "Failed to get response") from e
            # Raised while closing the response after the body was read
            logger.warning("stream_close_failed", error=str(e))
            if result is None:
                result = StreamResult()

        self.state = ConsumerState.COMPLETED
        if result.partial:
            logger.warning("stream_ended_without_terminal_frame", chars=len(result.text))
        return result
