import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import List

from pydantic import BaseModel, Field

from chat_relay.providers.catalog import DEFAULT_MODEL
from chat_relay.schemas import Message, Role

TITLE_LENGTH = 30
DEFAULT_TITLE = "New Chat"


def _now() -> datetime:
    return datetime.now(timezone.utc)


class Conversation(BaseModel):
    """Client-held chat. The whole history is sent with every turn."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    model: str = DEFAULT_MODEL
    messages: List[Message] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)

    @property
    def title(self) -> str:
        if not self.messages:
            return DEFAULT_TITLE
        return self.messages[0].content[:TITLE_LENGTH] or DEFAULT_TITLE

    def append(self, role: Role, content: str) -> Message:
        message = Message(role=role, content=content)
        self.messages.append(message)
        self.updated_at = message.timestamp
        return message

    def history(self) -> List[Message]:
        return list(self.messages)

    def save(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.model_dump_json(indent=2), encoding="utf-8")

    @classmethod
    def load(cls, path: Path) -> "Conversation":
        return cls.model_validate_json(path.read_text(encoding="utf-8"))
