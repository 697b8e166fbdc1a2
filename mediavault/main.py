"""FastAPI app entrypoint."""

import logging
from contextlib import asynccontextmanager

import redis.asyncio as redis
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from mediavault.api.routes import router
from mediavault.api.service import MetadataRefresher
from mediavault.config import get_settings
from mediavault.logging_config import setup_logging
from mediavault.scrape import BrowserLaunchError, build_default_engine
from mediavault.store.redis import MediaStore, create_redis_client

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()

    # Initialize logging FIRST so all subsequent operations produce JSON logs
    setup_logging(settings.log_level)
    logger.info("starting media vault")

    redis_client = await create_redis_client(settings.redis_url)
    store = MediaStore(redis_client)
    await store.seed_api_options()

    engine = build_default_engine(settings)
    refresher = MetadataRefresher(engine, store)

    # Attach to app state for dependency injection
    app.state.settings = settings
    app.state.store = store
    app.state.refresher = refresher

    logger.info(
        "media vault ready",
        extra={
            "scrape_batch_size": settings.scrape_batch_size,
            "scrape_headless": settings.scrape_headless,
        },
    )

    yield

    logger.info("shutting down media vault")
    await refresher.aclose()
    await redis_client.aclose()


app = FastAPI(title="Media Vault", lifespan=lifespan)
app.include_router(router)


@app.exception_handler(redis.RedisError)
async def storage_error_handler(request: Request, exc: redis.RedisError):
    logger.error("storage error", extra={"path": request.url.path}, exc_info=exc)
    return JSONResponse(status_code=500, content={"error": "Storage unavailable"})


@app.exception_handler(BrowserLaunchError)
async def browser_error_handler(request: Request, exc: BrowserLaunchError):
    logger.error("browser unavailable", extra={"path": request.url.path}, exc_info=exc)
    return JSONResponse(status_code=503, content={"error": "Scraper unavailable"})
