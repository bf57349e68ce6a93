from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Awaitable
from contextlib import asynccontextmanager
from typing import Callable

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from reivun_bot.runtime import BotServices, build_services
from reivun_bot.settings import Settings
from reivun_bot.web.routes import router

logger = logging.getLogger("reivun_bot.web")

ServicesFactory = Callable[[Settings], Awaitable[BotServices]]


def create_app(
    *,
    settings: Settings | None = None,
    services_factory: ServicesFactory = build_services,
    poll_chart: bool = True,
) -> FastAPI:
    resolved = settings if settings is not None else Settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info("starting_dashboard_api")
        services = await services_factory(resolved)
        app.state.services = services
        if poll_chart:
            services.poller.start(resolved.chart_poll_seconds)
        try:
            yield
        finally:
            logger.info("stopping_dashboard_api")
            await services.aclose()

    app = FastAPI(title="reivun-bot", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(router)
    return app
