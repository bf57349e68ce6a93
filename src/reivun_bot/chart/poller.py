from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable
from typing import Callable, Optional

from reivun_bot.exchange.binance_spot import BinanceSpotClient
from reivun_bot.types import ChartPoint

logger = logging.getLogger("reivun_bot.chart")

SeriesHandler = Callable[[list[ChartPoint]], None]


class PeriodicTask:
    """Run `func` now and then every `interval_seconds` until stopped.

    An exception from one run is handed to `on_error` and logged; the next run
    still happens on schedule.
    """

    def __init__(
        self,
        name: str,
        func: Callable[[], Awaitable[None]],
        *,
        on_error: Callable[[Exception], None] | None = None,
    ) -> None:
        self._name = name
        self._func = func
        self._on_error = on_error
        self._task: Optional[asyncio.Task[None]] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, interval_seconds: float) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be > 0")
        if self.running:
            return
        self._task = asyncio.create_task(self._run(interval_seconds), name=self._name)

    async def stop(self) -> None:
        task = self._task
        self._task = None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _run(self, interval_seconds: float) -> None:
        while True:
            try:
                await self._func()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.exception("periodic_task_failed", extra={"reason": self._name})
                if self._on_error is not None:
                    try:
                        self._on_error(e)
                    except Exception:
                        logger.exception("periodic_task_on_error_failed", extra={"reason": self._name})
            await asyncio.sleep(interval_seconds)


class PricePoller:
    def __init__(
        self,
        *,
        client: BinanceSpotClient,
        symbol: str = "BTCUSDT",
        interval: str = "1m",
        limit: int = 50,
        on_series: SeriesHandler | None = None,
    ) -> None:
        self._client = client
        self._symbol = symbol
        self._interval = interval
        self._limit = limit
        self._on_series = on_series
        self._latest: list[ChartPoint] = []
        self._last_error: Optional[str] = None
        self._last_success_s = 0.0
        self._task = PeriodicTask("price_poller", self.poll_once, on_error=self._record_error)

    @property
    def symbol(self) -> str:
        return self._symbol

    @property
    def latest(self) -> list[ChartPoint]:
        return list(self._latest)

    @property
    def last_error(self) -> Optional[str]:
        return self._last_error

    @property
    def last_success_s(self) -> float:
        return self._last_success_s

    @property
    def running(self) -> bool:
        return self._task.running

    def start(self, interval_seconds: float) -> None:
        logger.info(
            "price_poller_started",
            extra={"symbol": self._symbol, "interval": self._interval},
        )
        self._task.start(interval_seconds)

    async def stop(self) -> None:
        await self._task.stop()

    async def poll_once(self) -> None:
        series = await self._client.close_series(
            symbol=self._symbol,
            interval=self._interval,
            limit=self._limit,
        )
        self._latest = series
        self._last_error = None
        self._last_success_s = time.time()
        if self._on_series is not None:
            self._on_series(list(series))

    def _record_error(self, error: Exception) -> None:
        self._last_error = f"{type(error).__name__}: {error}"
