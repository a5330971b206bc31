from contextlib import asynccontextmanager

import sentry_sdk
import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.routing import APIRoute
from starlette.middleware.cors import CORSMiddleware

from chat_relay.api.main import api_router
from chat_relay.core.config import settings
from chat_relay.core.errors import RelayError
from chat_relay.core.logging import configure_logging
from chat_relay.middleware.request_id import RequestIdMiddleware
from chat_relay.observability import MetricsMiddleware, metrics_router
from chat_relay.services.router import build_provider

logger = structlog.get_logger()


def custom_generate_unique_id(route: APIRoute) -> str:
    return f"{route.tags[0]}-{route.name}"


configure_logging()

if settings.SENTRY_DSN and settings.ENVIRONMENT != "local":
    sentry_sdk.init(dsn=str(settings.SENTRY_DSN), enable_tracing=True)


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.provider = build_provider(settings)
    logger.info("provider_ready", provider=app.state.provider.name)
    try:
        yield
    finally:
        await app.state.provider.aclose()


app = FastAPI(
    title=settings.PROJECT_NAME,
    openapi_url=f"{settings.API_PREFIX}/openapi.json",
    generate_unique_id_function=custom_generate_unique_id,
    lifespan=lifespan,
)


@app.exception_handler(RelayError)
async def relay_error_handler(request: Request, exc: RelayError):
    logger.error("request_failed", error=exc.message, status_code=exc.status_code)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    first = exc.errors()[0] if exc.errors() else {}
    loc = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    message = f"{loc}: {first.get('msg', 'invalid request')}" if loc else first.get("msg", "invalid request")
    logger.warning("request_invalid", error=message)
    return JSONResponse(status_code=500, content={"error": message})


app.add_middleware(RequestIdMiddleware)
app.add_middleware(MetricsMiddleware)

# Set all CORS enabled origins
if settings.all_cors_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.all_cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

app.include_router(api_router, prefix=settings.API_PREFIX)
app.include_router(metrics_router)
