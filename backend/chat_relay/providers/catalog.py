from typing import List

from chat_relay.schemas import ModelInfo

AVAILABLE_MODELS: List[ModelInfo] = [
    ModelInfo(
        id="gemini-1.5-pro",
        name="Gemini 1.5 Pro",
        description="Most capable model for complex tasks",
        supports_grounding=True,
    ),
    ModelInfo(
        id="gemini-1.5-flash",
        name="Gemini 1.5 Flash",
        description="Fast and versatile performance",
        supports_grounding=True,
    ),
    ModelInfo(
        id="gemini-2.5-flash",
        name="Gemini 2.5 Flash",
        description="Best for fast responses",
        supports_grounding=True,
    ),
    ModelInfo(
        id="gemini-2.5-pro",
        name="Gemini 2.5 Pro",
        description="Best for complex challenges",
        supports_grounding=True,
    ),
]

DEFAULT_MODEL = AVAILABLE_MODELS[0].id
