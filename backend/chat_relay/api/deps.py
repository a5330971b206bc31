from typing import Annotated

from fastapi import Depends, Request

from chat_relay.providers.base import ModelProvider


def get_provider(request: Request) -> ModelProvider:
    return request.app.state.provider


ProviderDep = Annotated[ModelProvider, Depends(get_provider)]
