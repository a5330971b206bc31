import uuid
from datetime import datetime, timezone
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

Role = Literal["user", "assistant"]


def _now() -> datetime:
    return datetime.now(timezone.utc)


class Message(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    role: Role
    content: str
    timestamp: datetime = Field(default_factory=_now)

    def to_wire(self) -> dict:
        # The relay only reads role and content
        return {"role": self.role, "content": self.content}


class SearchGrounding(BaseModel):
    enabled: bool = False
    threshold: float = 0.7


class GenerationSettings(BaseModel):
    """Generation knobs, passed to the provider verbatim.

    Ranges are deliberately not checked here; the provider rejects values it
    does not accept and that rejection is reported back to the caller.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    model: str = "gemini-1.5-pro"
    temperature: float = 0.7
    max_tokens: int = Field(default=2048, alias="maxTokens")
    top_p: float = Field(default=0.95, alias="topP")
    top_k: int = Field(default=40, alias="topK")
    system_instruction: Optional[str] = Field(default=None, alias="systemInstruction")
    search_grounding: Optional[SearchGrounding] = Field(default=None, alias="searchGrounding")

    @field_validator("system_instruction")
    @classmethod
    def _blank_instruction_is_none(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            return None
        return v

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class ChatRequest(BaseModel):
    messages: List[Message] = Field(min_length=1)
    settings: GenerationSettings = Field(default_factory=GenerationSettings)


class ErrorResponse(BaseModel):
    error: str


class ModelInfo(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    description: str
    supports_grounding: bool = Field(default=False, alias="supportsGrounding")
