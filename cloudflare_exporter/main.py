from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from cloudflare_exporter.api.health import router as health_router
from cloudflare_exporter.api.metrics_endpoint import router as metrics_router
from cloudflare_exporter.core.config import Settings
from cloudflare_exporter.core.metrics import InstrumentRegistry
from cloudflare_exporter.services.cloudflare import CloudflareClient
from cloudflare_exporter.services.exporter import CloudflareExporter
from cloudflare_exporter.updater import run_updater

logger = logging.getLogger(__name__)


def build_exporter(
    settings: Settings, client: CloudflareClient | None = None
) -> CloudflareExporter:
    """Wire the API client, a fresh registry and the exporter together.

    Raises ValueError when no authentication method is configured.
    """
    return CloudflareExporter(
        client if client is not None else CloudflareClient.from_settings(settings),
        InstrumentRegistry(strict=settings.strict_labels),
        zones=settings.zones,
        accounts=settings.accounts,
        since=settings.since,
        include_access=settings.include_access,
    )


def create_app(
    settings: Settings,
    exporter: CloudflareExporter | None = None,
    *,
    start_updater: bool = True,
) -> FastAPI:
    exporter = exporter if exporter is not None else build_exporter(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        task: asyncio.Task[None] | None = None
        if start_updater:
            task = asyncio.create_task(
                run_updater(exporter, settings.scrape_interval), name="updater"
            )
        try:
            yield
        finally:
            if task is not None:
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
            close = getattr(exporter.api, "close", None)
            if close is not None:
                close()
            logger.info("Exporter stopped")

    app = FastAPI(
        title="cloudflare-exporter",
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
    )
    app.state.exporter = exporter
    app.state.settings = settings

    app.include_router(metrics_router)
    app.include_router(health_router)

    return app
