from __future__ import annotations

import asyncio
from decimal import Decimal, InvalidOperation
from typing import Any

import httpx

from reivun_bot.types import ChartPoint

_DEFAULT_MAX_RETRIES = 2
_DEFAULT_RETRY_BASE_SECONDS = 0.5
_DEFAULT_RETRY_MAX_SECONDS = 8.0


class BinanceApiError(RuntimeError):
    def __init__(self, *, status_code: int, payload: Any):
        super().__init__(f"Binance API error: status={status_code} payload={payload!r}")
        self.status_code = status_code
        self.payload = payload


def parse_close_series(rows: Any) -> list[ChartPoint]:
    """Map `/api/v3/klines` rows to (open time, close) points.

    Row index 0 is the open time in milliseconds, index 4 the close as a string.
    """
    if not isinstance(rows, list):
        raise ValueError(f"expected a list of kline rows, got {type(rows).__name__}")
    points: list[ChartPoint] = []
    for row in rows:
        if not isinstance(row, list) or len(row) < 5:
            raise ValueError(f"malformed kline row: {row!r}")
        try:
            points.append(ChartPoint(open_time_ms=int(row[0]), close=Decimal(str(row[4]))))
        except (TypeError, ValueError, InvalidOperation) as e:
            raise ValueError(f"malformed kline row: {row!r}") from e
    return points


class BinanceSpotClient:
    """Public market-data endpoints only; nothing here is signed."""

    def __init__(
        self,
        *,
        base_url: str = "https://api.binance.com",
        timeout_seconds: float = 10.0,
        max_retries: int = _DEFAULT_MAX_RETRIES,
        retry_base_seconds: float = _DEFAULT_RETRY_BASE_SECONDS,
        retry_max_seconds: float = _DEFAULT_RETRY_MAX_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._max_retries = int(max(0, max_retries))
        self._retry_base_seconds = float(max(0.0, retry_base_seconds))
        self._retry_max_seconds = float(max(self._retry_base_seconds, retry_max_seconds))
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=httpx.Timeout(timeout_seconds),
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def close_series(self, *, symbol: str, interval: str, limit: int) -> list[ChartPoint]:
        raw = await self._get(
            "/api/v3/klines",
            params={"symbol": symbol, "interval": interval, "limit": limit},
        )
        return parse_close_series(raw)

    async def _get(self, path: str, *, params: dict[str, Any]) -> Any:
        attempt = 0
        while True:
            try:
                response = await self._client.get(path, params=params)
            except (httpx.TimeoutException, httpx.TransportError):
                if attempt >= self._max_retries:
                    raise
                await asyncio.sleep(self._retry_delay_seconds(attempt=attempt, response=None))
                attempt += 1
                continue

            if response.status_code >= 400:
                if (
                    _should_retry_http_error(status_code=response.status_code)
                    and attempt < self._max_retries
                ):
                    await asyncio.sleep(
                        self._retry_delay_seconds(attempt=attempt, response=response)
                    )
                    attempt += 1
                    continue
                payload: Any
                try:
                    payload = response.json()
                except ValueError:
                    payload = response.text
                raise BinanceApiError(status_code=response.status_code, payload=payload)

            return response.json()

    def _retry_delay_seconds(
        self,
        *,
        attempt: int,
        response: httpx.Response | None,
    ) -> float:
        if response is not None:
            retry_after = response.headers.get("Retry-After")
            if retry_after:
                try:
                    value = float(retry_after)
                    if value > 0:
                        return value
                except ValueError:
                    pass
        delay = self._retry_base_seconds * (2**attempt)
        return float(min(delay, self._retry_max_seconds))


def _should_retry_http_error(*, status_code: int) -> bool:
    return status_code in (418, 429) or status_code >= 500
