from fastapi import APIRouter

from chat_relay.api.routes import chat, models, utils

api_router = APIRouter()
api_router.include_router(utils.router)
api_router.include_router(models.router)
api_router.include_router(chat.router)
