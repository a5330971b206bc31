# Offline provider for local development and demos without an API key.

import asyncio
import re
from typing import AsyncIterator, List

from chat_relay.providers.base import (
    GenerationParams,
    ModelProvider,
    ProviderChunk,
    ProviderSession,
    ProviderTurn,
)


class EchoSession(ProviderSession):
    def __init__(self, seed_history: List[ProviderTurn], params: GenerationParams, delay: float):
        self.seed_history = seed_history
        self.params = params
        self.delay = delay

    async def send_streaming(self, turn: str) -> AsyncIterator[ProviderChunk]:
        return self._words(f"[echo:{self.params.model}] {turn}")

    async def _words(self, text: str) -> AsyncIterator[ProviderChunk]:
        for word in re.findall(r"\S+\s*", text):
            if self.delay:
                await asyncio.sleep(self.delay)
            yield ProviderChunk(text=word)


class EchoProvider(ModelProvider):
    name = "echo"

    def __init__(self, delay: float = 0.0):
        self.delay = delay

    def start_session(self, seed_history: List[ProviderTurn], params: GenerationParams) -> EchoSession:
        return EchoSession(seed_history, params, self.delay)
