from chat_relay.core.config import Settings
from chat_relay.providers.base import ModelProvider
from chat_relay.providers.echo_provider import EchoProvider
from chat_relay.providers.gemini_provider import GeminiProvider


def build_provider(config: Settings) -> ModelProvider:
    """
    Build the process-wide provider from configuration.
    Called once at startup; the credential is read here and never again.
    """
    if config.LLM_PROVIDER == "echo":
        return EchoProvider()
    return GeminiProvider(
        api_key=config.GEMINI_API_KEY,
        timeout_seconds=config.GEMINI_TIMEOUT_SECONDS,
    )
