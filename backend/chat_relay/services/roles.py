from types import MappingProxyType
from typing import Iterable, List, Mapping

from chat_relay.providers.base import ProviderRole, ProviderTurn
from chat_relay.schemas import Message, Role

# Gemini calls the assistant side of a conversation "model".
ROLE_MAP: Mapping[Role, ProviderRole] = MappingProxyType(
    {
        "user": "user",
        "assistant": "model",
    }
)


def to_provider_role(role: Role) -> ProviderRole:
    return ROLE_MAP[role]


def to_provider_history(messages: Iterable[Message]) -> List[ProviderTurn]:
    return [ProviderTurn(role=to_provider_role(m.role), text=m.content) for m in messages]
