from typing import AsyncIterator, List, Optional, Tuple

import structlog
from google import genai
from google.genai import errors, types
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from chat_relay.core.config import settings
from chat_relay.core.errors import ConfigurationError, UpstreamRejection
from chat_relay.providers.base import (
    GenerationParams,
    ModelProvider,
    ProviderChunk,
    ProviderSession,
    ProviderTurn,
)

logger = structlog.get_logger()


def _to_content(turn: ProviderTurn) -> types.Content:
    return types.Content(role=turn.role, parts=[types.Part.from_text(text=turn.text)])


def _grounding_tools(params: GenerationParams) -> Optional[List[types.Tool]]:
    grounding = params.search_grounding
    if grounding is None or not grounding.enabled:
        return None
    # 1.5 models only understand dynamic retrieval; newer ones use google_search
    if params.model.startswith("gemini-1.5"):
        return [
            types.Tool(
                google_search_retrieval=types.GoogleSearchRetrieval(
                    dynamic_retrieval_config=types.DynamicRetrievalConfig(
                        mode=types.DynamicRetrievalConfigMode.MODE_DYNAMIC,
                        dynamic_threshold=grounding.threshold,
                    )
                )
            )
        ]
    return [types.Tool(google_search=types.GoogleSearch())]


def _build_config(params: GenerationParams) -> types.GenerateContentConfig:
    return types.GenerateContentConfig(
        temperature=params.temperature,
        top_p=params.top_p,
        top_k=params.top_k,
        max_output_tokens=params.max_output_tokens,
        system_instruction=params.system_instruction,
        tools=_grounding_tools(params),
    )


def _rejection(err: errors.APIError) -> UpstreamRejection:
    return UpstreamRejection(f"Gemini API error {err.code}: {err.message or err.status}")


async def _close_stream(stream) -> None:
    aclose = getattr(stream, "aclose", None)
    if aclose is not None:
        await aclose()


class GeminiChunkStream:
    """Chunk iterator over an already-opened SDK stream.

    ``aclose`` releases the SDK stream whether or not iteration ever started.
    """

    def __init__(
        self,
        stream: AsyncIterator[types.GenerateContentResponse],
        first: Optional[types.GenerateContentResponse],
    ) -> None:
        self._stream = stream
        self._first = first
        self._exhausted = first is None
        self._closed = False

    def __aiter__(self) -> "GeminiChunkStream":
        return self

    async def __anext__(self) -> ProviderChunk:
        if self._first is not None:
            first, self._first = self._first, None
            return ProviderChunk(text=first.text or "")
        if self._exhausted:
            await self.aclose()
            raise StopAsyncIteration
        try:
            chunk = await self._stream.__anext__()
        except StopAsyncIteration:
            self._exhausted = True
            await self.aclose()
            raise
        except errors.APIError as err:
            await self.aclose()
            raise _rejection(err) from err
        return ProviderChunk(text=chunk.text or "")

    async def aclose(self) -> None:
        if not self._closed:
            self._closed = True
            await _close_stream(self._stream)


class GeminiSession(ProviderSession):
    def __init__(self, chat) -> None:
        self._chat = chat

    async def send_streaming(self, turn: str) -> GeminiChunkStream:
        try:
            stream, first = await self._open(turn)
        except errors.APIError as err:
            raise _rejection(err) from err
        return GeminiChunkStream(stream, first)

    @retry(
        wait=wait_exponential_jitter(initial=0.5, max=6),
        stop=stop_after_attempt(settings.GEMINI_MAX_ATTEMPTS),
        retry=retry_if_exception_type(errors.ServerError),
        reraise=True,
    )
    async def _open(self, turn: str) -> Tuple[AsyncIterator[types.GenerateContentResponse], Optional[types.GenerateContentResponse]]:
        # The SDK defers the HTTP call to the first iteration; pull one chunk so
        # request-level rejections surface here rather than mid-stream.
        stream = await self._chat.send_message_stream(turn)
        try:
            first = await stream.__anext__()
        except StopAsyncIteration:
            first = None
        except BaseException:
            await _close_stream(stream)
            raise
        return stream, first


class GeminiProvider(ModelProvider):
    name = "gemini"

    def __init__(self, api_key: Optional[str], timeout_seconds: int = 60) -> None:
        self._client: Optional[genai.Client] = None
        if api_key:
            self._client = genai.Client(
                api_key=api_key,
                http_options=types.HttpOptions(timeout=timeout_seconds * 1000),
            )
        else:
            logger.warning("gemini_api_key_missing")

    def start_session(
        self, seed_history: List[ProviderTurn], params: GenerationParams
    ) -> GeminiSession:
        if self._client is None:
            raise ConfigurationError("API key not configured")
        chat = self._client.aio.chats.create(
            model=params.model,
            config=_build_config(params),
            history=[_to_content(t) for t in seed_history],
        )
        return GeminiSession(chat)

    async def aclose(self) -> None:
        if self._client is not None:
            aclose = getattr(self._client.aio, "aclose", None)
            if aclose is not None:
                await aclose()
