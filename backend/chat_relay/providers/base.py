from dataclasses import dataclass
from typing import AsyncIterator, List, Literal, Optional

from chat_relay.schemas import SearchGrounding

ProviderRole = Literal["user", "model"]


@dataclass(frozen=True)
class ProviderTurn:
    role: ProviderRole
    text: str


@dataclass(frozen=True)
class GenerationParams:
    model: str
    temperature: float
    top_p: float
    top_k: int
    max_output_tokens: int
    system_instruction: Optional[str] = None
    search_grounding: Optional[SearchGrounding] = None


@dataclass(frozen=True)
class ProviderChunk:
    text: str


class ProviderSession:
    async def send_streaming(self, turn: str) -> AsyncIterator[ProviderChunk]:
        """Submit ``turn`` and return its chunk stream.

        Errors raised while awaiting this call happen before anything has been
        sent to the client. Errors raised while iterating the returned stream
        happen mid-stream.
        """
        raise NotImplementedError


class ModelProvider:
    name: str = "base"

    def start_session(
        self, seed_history: List[ProviderTurn], params: GenerationParams
    ) -> ProviderSession:
        raise NotImplementedError

    async def aclose(self) -> None:
        return None
