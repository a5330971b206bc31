from typing import List

from fastapi import APIRouter

from chat_relay.providers.catalog import AVAILABLE_MODELS
from chat_relay.schemas import ModelInfo

router = APIRouter(prefix="/models", tags=["models"])


@router.get("/", response_model=List[ModelInfo])
async def list_models():
    """
    Models the chat client offers in its model picker.
    """
    return AVAILABLE_MODELS
