"""
MODULE OVERVIEW:
The FastAPI application factory.

WHAT IS HAPPENING HERE:
We use a `lifespan` context manager. When Uvicorn starts the server, the
pipeline connects to the broker and spawns its consumer task; if the broker is
unreachable it keeps running degraded so reads and observers still work. When
the server shuts down, the `finally` block cancels the consumer and closes the
channel and the connection before the process exits.
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from loguru import logger

from notify_server.middleware import TimingMiddleware
from notify_server.routes import notifications, sse, status, websocket
from notify_server.service import NotificationPipeline
from notify_shared.config import Settings, settings as default_settings


def create_app(
    settings: Settings | None = None,
    pipeline: NotificationPipeline | None = None,
) -> FastAPI:
    settings = settings or default_settings
    pipeline = pipeline or NotificationPipeline.from_settings(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Notification pipeline starting up...")
        await pipeline.start()
        try:
            yield
        finally:
            logger.info("Server shutting down. Stopping consumer and closing broker...")
            await pipeline.stop()
            logger.info("Shutdown complete.")

    app = FastAPI(
        title="Notification Pipeline",
        description="Asynchronous notification processing over RabbitMQ with real-time status",
        version="1.0.0",
        lifespan=lifespan
    )
    app.state.settings = settings
    app.state.pipeline = pipeline

    app.add_middleware(TimingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(notifications.router, tags=["Notifications"])
    app.include_router(status.router, tags=["Status"])
    app.include_router(websocket.router, tags=["Real-time"])
    app.include_router(sse.router, tags=["Real-time"])

    @app.get("/healthz", tags=["Ops"])
    async def health_check():
        return {"status": "ok", "broker_connected": pipeline.broker_connected}

    @app.get("/stats", tags=["Ops"])
    async def get_stats():
        return pipeline.broadcaster.get_stats()

    return app


app = create_app()
