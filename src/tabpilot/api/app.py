"""FastAPI app exposing the agent's core operations over HTTP and WebSocket."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from tabpilot import __version__
from tabpilot.agent.orchestrator import Orchestrator
from tabpilot.api.routes import router
from tabpilot.api.ws_routes import ws_router
from tabpilot.monitoring.event_bus import EventBus, LoggingSink
from tabpilot.settings import get_settings

logger = logging.getLogger(__name__)


def create_app(orchestrator: Orchestrator | None = None) -> FastAPI:
    """Build the FastAPI application.

    Args:
        orchestrator: Pre-built orchestrator (tests). When omitted, a
            Playwright browser and a settings-driven orchestrator are
            created at startup and torn down at shutdown.
    """
    settings = get_settings()

    @asynccontextmanager
    async def lifespan(application: FastAPI) -> AsyncIterator[None]:
        host: Any = None
        if orchestrator is not None:
            application.state.orchestrator = orchestrator
            application.state.bus = orchestrator.state_store.bus or EventBus()
        else:
            from tabpilot.agent.factory import build_orchestrator
            from tabpilot.browser.playwright_host import PlaywrightHost

            bus = EventBus()
            bus.add_sink(LoggingSink())
            host = PlaywrightHost.from_settings()
            await host.start()
            application.state.bus = bus
            application.state.orchestrator = build_orchestrator(host, bus=bus)
        application.state.run_tasks = set()
        try:
            yield
        finally:
            tasks: set[asyncio.Task] = application.state.run_tasks
            for task in tasks:
                task.cancel()
            if tasks:
                await asyncio.gather(*tasks, return_exceptions=True)
            if host is not None:
                await host.stop()

    application = FastAPI(
        title="TabPilot",
        description="Local browser agent: plan, act, verify.",
        version=__version__,
        lifespan=lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.api.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    application.include_router(router)
    application.include_router(ws_router)
    return application


app = create_app()
