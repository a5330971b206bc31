from typing import Annotated, Any, Literal

from pydantic import AnyUrl, BeforeValidator, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


def parse_cors(v: Any) -> list[str] | str:
    if isinstance(v, str) and not v.startswith("["):
        return [i.strip() for i in v.split(",") if i.strip()]
    elif isinstance(v, list | str):
        return v
    raise ValueError(v)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_ignore_empty=True,
        extra="ignore",
    )

    PROJECT_NAME: str = "chat-relay"
    ENVIRONMENT: Literal["local", "staging", "production"] = "local"
    API_PREFIX: str = "/api"

    BACKEND_CORS_ORIGINS: Annotated[
        list[AnyUrl] | str, BeforeValidator(parse_cors)
    ] = []

    @computed_field  # type: ignore[prop-decorator]
    @property
    def all_cors_origins(self) -> list[str]:
        return [str(origin).rstrip("/") for origin in self.BACKEND_CORS_ORIGINS]

    # Upstream model provider
    LLM_PROVIDER: Literal["gemini", "echo"] = "gemini"
    GEMINI_API_KEY: str | None = None
    GEMINI_TIMEOUT_SECONDS: int = 60
    GEMINI_MAX_ATTEMPTS: int = 3

    STREAM_TIMEOUT_SECONDS: int = 300

    SENTRY_DSN: str | None = None
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False


settings = Settings()  # type: ignore
