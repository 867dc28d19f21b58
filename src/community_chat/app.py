from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

import redis.asyncio as aioredis
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from community_chat.api.middleware.correlation_id import CorrelationIdMiddleware
from community_chat.api.v1.routers import chat, health, ws
from community_chat.application.exceptions import NotFoundError, ValidationError
from community_chat.config import settings
from community_chat.infrastructure.bus.redis_pubsub import (
    RedisPubSubPublisher,
    RedisPubSubSubscriber,
)
from community_chat.infrastructure.db.uow import uow_scope
from community_chat.realtime.hub import ChatHub

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Startup / shutdown lifecycle."""
    app.state.redis = aioredis.from_url(
        settings.REDIS_URL,
        decode_responses=True,
    )
    logger.info("Redis connection pool created")
    app.state.publisher = RedisPubSubPublisher(app.state.redis, settings.REDIS_PUBSUB_CHANNEL)

    hub: ChatHub = app.state.hub
    subscriber = RedisPubSubSubscriber(
        app.state.redis,
        settings.REDIS_PUBSUB_CHANNEL,
        hub.relay,
    )
    await subscriber.start()
    await hub.start()

    yield

    await hub.stop()
    await subscriber.stop()
    await app.state.redis.aclose()
    logger.info("Redis connection pool closed")


def create_app() -> FastAPI:
    app = FastAPI(
        title="Community Chat Service",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.hub = ChatHub(
        uow_scope,
        sweep_interval=settings.PRESENCE_SWEEP_INTERVAL_SECONDS,
        inactivity=settings.PRESENCE_INACTIVITY_SECONDS,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(CorrelationIdMiddleware)

    _register_exception_handlers(app)

    app.include_router(health.router)
    app.include_router(chat.router)
    app.include_router(ws.router)

    return app


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(NotFoundError)
    async def _not_found(_req: Request, exc: NotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": exc.detail})

    @app.exception_handler(ValidationError)
    async def _validation(_req: Request, exc: ValidationError) -> JSONResponse:
        return JSONResponse(status_code=422, content={"detail": exc.detail})
