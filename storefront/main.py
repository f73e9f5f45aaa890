"""
FastAPI Production Application

Main entry point for the storefront backend: connects the database and
change feed, wires services and starts the admin live view.
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles
from redis.exceptions import RedisError

from storefront.analytics.conversions import create_conversion_sink
from storefront.catalog.view import configure_collation
from storefront.config import get_settings
from storefront.config.logging import configure_logging
from storefront.database.capabilities import detect_capabilities
from storefront.database.connection import (
    close_database,
    create_schema,
    get_session_factory,
    init_database,
)
from storefront.realtime.feed import ChangeFeed, LocalChangeFeed, RedisChangeFeed
from storefront.realtime.hub import ChangeHub
from storefront.serving.api.main import create_api_app
from storefront.serving.cache import close_redis, get_redis, init_redis
from storefront.serving.services import build_services

settings = get_settings()
logger = structlog.get_logger(__name__)


async def open_change_feed() -> ChangeFeed:
    """Redis pub/sub when reachable, otherwise an in-process feed"""
    if settings.redis.enabled:
        try:
            await init_redis()
            return RedisChangeFeed(get_redis(), prefix=settings.redis.channel_prefix)
        except (RedisError, OSError) as e:
            logger.warning("Redis unavailable, using in-process change feed", error=str(e))
    return LocalChangeFeed()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    configure_logging()
    logger.info("Starting storefront API", environment=settings.app_env)
    configure_collation(settings.catalog.collation_locale)

    engine = await init_database()
    if settings.database.auto_create:
        await create_schema(engine)
    capabilities = await detect_capabilities(engine)

    feed = await open_change_feed()
    hub = ChangeHub(feed)
    sink = create_conversion_sink()
    services = build_services(
        get_session_factory(),
        capabilities,
        hub,
        sink=sink,
        restock_on_reversal=settings.reconciliation.restock_on_reversal,
    )
    app.state.services = services

    await services.live_view.start()
    await services.live_view.refresh()

    if settings.reconciliation.replay_on_startup:
        outcomes = await services.engine.replay_pending()
        if outcomes:
            logger.info("Replayed pending stock adjustments", count=len(outcomes))

    try:
        yield
    finally:
        logger.info("Shutting down...")
        await services.live_view.stop()
        await hub.close()
        await feed.close()
        await sink.close()
        app.state.services = None
        await close_redis()
        await close_database()


app = create_api_app(lifespan=lifespan)

if settings.media.public_base_url.startswith("/"):
    app.mount(
        settings.media.public_base_url,
        StaticFiles(directory=settings.media.root_path, check_dir=False),
        name="media",
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
