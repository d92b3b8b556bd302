"""
MODULE OVERVIEW:
The FastAPI application factory.

WHAT IS HAPPENING HERE:
The `lifespan` context opens the notification center's three channels and, in
demo mode, spawns the fake change generators as background tasks. On shutdown
the generators are cancelled and the center unsubscribes from every channel
before the process exits.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from realtime.channels import InMemoryRealtimeClient
from realtime.notifications import NotificationCenter
from resilience.rate_limit import SlidingWindowRateLimiter
from server.dummy_data import ChangeDict, get_all_generators
from server.middleware import RateLimitMiddleware
from server.routes import notifications, presence
from shared.config import settings


async def generator_runner(client: InMemoryRealtimeClient, generator: AsyncGenerator[ChangeDict, None]) -> None:
    """Consumes a change generator and publishes each change on the realtime hub."""
    try:
        async for change in generator:
            client.publish_change(change["table"], change["eventType"], new=change["new"], old=change["old"])
    except asyncio.CancelledError:
        logger.debug(f"Generator cancelled: {generator.__name__}")
    except Exception as e:
        logger.error(f"Generator error: {e}")


def create_app(
    client: InMemoryRealtimeClient | None = None,
    start_generators: bool = True,
    limiter: SlidingWindowRateLimiter | None = None,
) -> FastAPI:
    realtime_client = client if client is not None else InMemoryRealtimeClient()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Property portal realtime server starting up...")
        center = NotificationCenter(realtime_client)
        app.state.realtime_client = realtime_client
        app.state.center = center
        await center.start()

        background_tasks = set()
        if start_generators:
            for gen in get_all_generators():
                background_tasks.add(asyncio.create_task(generator_runner(realtime_client, gen)))
            logger.info(f"Started {len(background_tasks)} change generators.")

        yield

        logger.info("Server shutting down. Cancelling background tasks...")
        for task in background_tasks:
            task.cancel()
        if background_tasks:
            await asyncio.gather(*background_tasks, return_exceptions=True)
        await center.stop()
        logger.info("Shutdown complete.")

    app = FastAPI(
        title="Property Portal Realtime",
        description="Notification feed and presence roster over realtime change streams",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        RateLimitMiddleware,
        limiter=limiter or SlidingWindowRateLimiter(settings.RATE_LIMIT_MAX_REQUESTS, settings.RATE_LIMIT_WINDOW_MS),
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(notifications.router, tags=["Notifications"])
    app.include_router(presence.router, tags=["Presence"])

    @app.get("/healthz", tags=["Ops"])
    async def health_check():
        return {"status": "ok"}

    @app.get("/stats", tags=["Ops"])
    async def get_stats():
        return app.state.center.stats()

    return app


app = create_app()
