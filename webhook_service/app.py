from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, Optional

from fastapi import FastAPI, WebSocket, WebSocketDisconnect

from common.db import dispose_engine, init_db_engine
from common.logger import Level, Logger
from common.models import Campaign
from ingest.broadcast import BroadcastHub
from ingest.config import ServiceConfig, load_config
from ingest.integrations import IntegrationRegistry
from ingest.service import WebhookHandler
from ingest.storage import DbStorage, MemoryStorage, Storage
from webhook_service.routes import api_router

CONNECTED = "CONNECTED"


async def seed_active_campaign(storage: Storage, name: str) -> Optional[Campaign]:
    if await storage.get_active_campaign() is not None:
        return None
    campaign = await storage.create_campaign(
        Campaign(name=name, start_date=datetime.now(timezone.utc), is_active=True)
    )
    Logger.info('Seeded active campaign "%s" (%s)', campaign.name, campaign.id)
    return campaign


def create_app(
    cfg: Optional[ServiceConfig] = None,
    *,
    storage: Optional[Storage] = None,
    integrations: Optional[IntegrationRegistry] = None,
) -> FastAPI:
    cfg = cfg or load_config()
    Logger.configure("webhook_service", level=Level.parse(cfg.log_level))
    Logger.silence("httpx", "httpcore", "uvicorn.access", level=Level.WARNING)

    uses_db = storage is None and cfg.uses_database
    if storage is None:
        if uses_db:
            init_db_engine(cfg.database_url)
            storage = DbStorage()
        else:
            storage = MemoryStorage()

    hub = BroadcastHub(send_timeout_sec=cfg.broadcast_send_timeout_seconds)
    integrations = integrations or IntegrationRegistry(
        storage,
        timeout_sec=cfg.http_timeout_seconds,
        graph_api_version=cfg.graph_api_version,
    )
    handler = WebhookHandler(storage, hub, integrations=integrations)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if cfg.seed_campaign and isinstance(storage, MemoryStorage):
            await seed_active_campaign(storage, cfg.seed_campaign_name)
        Logger.info("Webhook service started (%s storage)", "database" if uses_db else "in-memory")
        try:
            yield
        finally:
            await integrations.aclose()
            if uses_db:
                await dispose_engine()
            Logger.info("Webhook service stopped")

    app = FastAPI(title="Contribution webhook service", lifespan=lifespan)
    app.state.config = cfg
    app.state.storage = storage
    app.state.hub = hub
    app.state.integrations = integrations
    app.state.handler = handler
    app.include_router(api_router, prefix="/api")

    @app.websocket("/ws")
    async def live_updates(websocket: WebSocket) -> None:
        await websocket.accept()
        async with hub.connected(websocket):
            await websocket.send_json({"type": CONNECTED})
            try:
                while True:
                    await websocket.receive_text()
            except WebSocketDisconnect:
                pass

    return app
