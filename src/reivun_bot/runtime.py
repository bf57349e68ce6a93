from __future__ import annotations

import logging
from dataclasses import dataclass, field

import httpx
from sqlalchemy.ext.asyncio import AsyncEngine

from reivun_bot.chart.poller import PricePoller
from reivun_bot.config.bot import Config
from reivun_bot.engine.lifecycle import BotLifecycleController
from reivun_bot.exchange.binance_spot import BinanceSpotClient
from reivun_bot.monitor.client import MonitorClient
from reivun_bot.monitor.synchronizer import MarketDataSynchronizer
from reivun_bot.settings import Settings
from reivun_bot.storage.credentials import CredentialStore
from reivun_bot.storage.db import create_engine, init_db
from reivun_bot.stream.connection import ConnectionManager, Connector

logger = logging.getLogger("reivun_bot")


@dataclass
class BotServices:
    settings: Settings
    engine: AsyncEngine
    credentials: CredentialStore
    monitor: MonitorClient
    controller: BotLifecycleController
    binance: BinanceSpotClient
    poller: PricePoller
    config: Config = field(default_factory=Config)

    async def aclose(self) -> None:
        try:
            await self.poller.stop()
            await self.controller.aclose()
        finally:
            await self.monitor.aclose()
            await self.binance.aclose()
            await self.engine.dispose()


async def build_services(
    settings: Settings,
    *,
    config: Config | None = None,
    monitor_transport: httpx.AsyncBaseTransport | None = None,
    binance_transport: httpx.AsyncBaseTransport | None = None,
    connector: Connector | None = None,
) -> BotServices:
    engine = create_engine(settings.database_url)
    await init_db(engine)

    monitor = MonitorClient(
        base_url=settings.monitor_base_url,
        timeout_seconds=settings.fetch_timeout_seconds,
        transport=monitor_transport,
    )
    controller = BotLifecycleController(
        synchronizer=MarketDataSynchronizer(
            client=monitor,
            timeout_seconds=settings.fetch_timeout_seconds,
        ),
        connections=ConnectionManager(
            connect_timeout_seconds=settings.connect_timeout_seconds,
            connector=connector,
        ),
        endpoint=settings.stream_url(),
    )
    binance = BinanceSpotClient(transport=binance_transport)
    poller = PricePoller(
        client=binance,
        symbol=settings.chart_symbol,
        interval=settings.chart_interval,
        limit=settings.chart_limit,
    )
    logger.info("services_ready", extra={"endpoint": settings.monitor_base_url})
    return BotServices(
        settings=settings,
        engine=engine,
        credentials=CredentialStore(engine),
        monitor=monitor,
        controller=controller,
        binance=binance,
        poller=poller,
        config=config if config is not None else Config(),
    )
