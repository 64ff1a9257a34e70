"""FastAPI application for the monitor service."""

import asyncio
import logging
import os
from collections.abc import Mapping
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI
from prometheus_fastapi_instrumentator import Instrumentator

from .api import node_router, reconfigure_router
from .config import Settings, settings
from .inventory import ListenerClient, listener_base_url
from .process import ProcessRunner, PrometheusProcess
from .renderer import ConfigRenderer
from .service import MonitorService
from .shortcuts import ShortcutTable
from .store import ReconciliationStore

logger = logging.getLogger(__name__)


def build_service(
    config: Settings,
    environ: Mapping[str, str],
    process: ProcessRunner | None = None,
) -> MonitorService:
    """Wire store, renderer and process manager from settings."""
    shortcuts = ShortcutTable.load(config.secrets_dir)
    renderer = ConfigRenderer(
        config_path=config.config_path,
        file_sd_dir=config.file_sd_dir,
        secrets_dir=config.secrets_dir,
        alertmanager_url=config.alertmanager_url,
        environ=environ,
    )
    if process is None:
        process = PrometheusProcess(
            binary=config.prometheus_binary,
            config_path=config.config_path,
            environ=environ,
        )
    return MonitorService(
        store=ReconciliationStore(shortcuts),
        renderer=renderer,
        process=process,
        scrape_label_names=config.scrape_label_names,
        node_label_names=config.node_label_names,
    )


async def load_and_render(service: MonitorService, config: Settings, environ: Mapping[str, str]) -> None:
    """Seed the store from inventory and environment, then write the config once."""
    if config.listener_address:
        async with httpx.AsyncClient(
            base_url=listener_base_url(config.listener_address),
            timeout=config.listener_timeout_seconds,
        ) as http:
            await service.load_initial(ListenerClient(http=http), environ)
    else:
        await service.load_initial(None, environ)
    await service.render()


def create_app(
    config: Settings | None = None,
    environ: Mapping[str, str] | None = None,
    process: ProcessRunner | None = None,
) -> FastAPI:
    """
    Build the application.

    Args:
        config: Settings to use (defaults to the environment-loaded settings).
        environ: Source of passthrough and ARG_* variables (defaults to os.environ).
        process: Daemon process manager (defaults to PrometheusProcess).
    """
    config = config or settings
    environ = environ if environ is not None else os.environ
    service = build_service(config, environ, process)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager for startup/shutdown."""
        # Startup
        await load_and_render(service, config, environ)

        daemon_task: asyncio.Task | None = None
        if config.start_daemon:
            daemon_task = asyncio.create_task(service.process.run())

        yield

        # Shutdown
        if daemon_task:
            daemon_task.cancel()
            try:
                await daemon_task
            except asyncio.CancelledError:
                pass

    app = FastAPI(
        title="Monitor Service",
        description="Config sidecar for the metrics daemon",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.service = service

    # Include routers
    app.include_router(reconfigure_router, prefix=config.api_prefix)
    app.include_router(node_router, prefix=config.api_prefix)

    # Setup Prometheus metrics
    Instrumentator().instrument(app).expose(app)

    @app.api_route("/{path:path}", methods=["GET", "POST", "PUT", "DELETE"], include_in_schema=False)
    async def catch_all(path: str) -> dict:
        """Any other path answers 200."""
        return {}

    return app
