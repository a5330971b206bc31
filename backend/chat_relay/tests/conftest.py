from collections.abc import Callable, Generator

import pytest
from fastapi.testclient import TestClient

from chat_relay.api.deps import get_provider
from chat_relay.main import app
from chat_relay.providers.base import ModelProvider
from chat_relay.tests.fakes import ScriptedProvider


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def use_provider() -> Generator[Callable[[ModelProvider], ModelProvider], None, None]:
    def _use(provider: ModelProvider) -> ModelProvider:
        app.dependency_overrides[get_provider] = lambda: provider
        return provider

    yield _use
    app.dependency_overrides.pop(get_provider, None)


@pytest.fixture
def client() -> Generator[TestClient, None, None]:
    # Not entered as a context manager: the lifespan would build the real provider
    yield TestClient(app)


@pytest.fixture
def chat_payload() -> dict:
    return {
        "messages": [{"role": "user", "content": "hi"}],
        "settings": {
            "model": "gemini-1.5-pro",
            "temperature": 0.7,
            "maxTokens": 2048,
            "topP": 0.95,
            "topK": 40,
        },
    }


@pytest.fixture
def scripted(use_provider) -> Callable[..., ScriptedProvider]:
    def _make(*fragments: str, **kwargs) -> ScriptedProvider:
        return use_provider(ScriptedProvider(fragments, **kwargs))

    return _make
