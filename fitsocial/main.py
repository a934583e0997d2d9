"""
FastAPI Application Entry Point
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException

from fitsocial import __version__
from fitsocial.api.v1.router import api_router
from fitsocial.core.config import settings
from fitsocial.core.errors import (
    AppError,
    app_exception_handler,
    general_exception_handler,
    http_exception_handler,
    validation_exception_handler,
)
from fitsocial.core.logging import RequestIDMiddleware, get_logger, setup_logging
from fitsocial.infra.db import close_db_connection, create_tables
from fitsocial.infra.redis import close_redis_pool, init_redis_pool, redis_client
from fitsocial.infra.storage import LocalBlobStorage
from fitsocial.realtime.feed import change_feed
from fitsocial.realtime.relay import RedisChangeRelay

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    setup_logging()
    if settings.db_auto_create:
        await create_tables()
    LocalBlobStorage().ensure_root()

    relay: Optional[RedisChangeRelay] = None
    if settings.enable_redis_relay:
        await init_redis_pool()
        relay = RedisChangeRelay(redis_client(), change_feed, settings.redis_channel)
        await relay.start()
    logger.info(f"fitsocial {__version__} started ({settings.env})")

    yield

    # Shutdown
    if relay is not None:
        await relay.stop()
        await close_redis_pool()
    await close_db_connection()


def create_app() -> FastAPI:
    app = FastAPI(
        title="fitsocial messaging",
        description="Direct messaging, follow relationships and presence for the fitness community",
        version=__version__,
        openapi_url=f"{settings.api_prefix}/openapi.json",
        lifespan=lifespan,
    )

    # Middleware
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_credentials,
        allow_methods=settings.cors_methods,
        allow_headers=settings.cors_headers,
    )

    # Routes
    app.include_router(api_router, prefix=settings.api_prefix)
    app.mount(
        settings.media_base_url,
        StaticFiles(directory=settings.media_root, check_dir=False),
        name="media",
    )

    # Exception Handlers
    app.add_exception_handler(AppError, app_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    return app


app = create_app()
