from __future__ import annotations

from typing import Any

import httpx
import pydantic

from reivun_bot.errors import FetchError
from reivun_bot.types import Credentials, Snapshot, SymbolRecord


def credential_headers(credentials: Credentials) -> dict[str, str]:
    return {
        "API-Key": credentials.api_key,
        "Secret-Key": credentials.secret_key,
        "Passphrase": credentials.passphrase,
    }


def parse_symbol_map(payload: Any) -> Snapshot:
    """Validate a `symbol -> record` JSON object; used for snapshots and stream updates."""
    if not isinstance(payload, dict):
        raise ValueError(f"expected a JSON object keyed by symbol, got {type(payload).__name__}")
    records: Snapshot = {}
    for symbol, raw in payload.items():
        if not isinstance(raw, dict):
            raise ValueError(f"record for {symbol!r} is not an object")
        try:
            records[str(symbol)] = SymbolRecord.model_validate(raw)
        except pydantic.ValidationError as e:
            raise ValueError(f"invalid record for {symbol!r}: {e}") from e
    return records


class MonitorClient:
    def __init__(
        self,
        *,
        base_url: str,
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=httpx.Timeout(timeout_seconds),
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def fetch_symbols(self, credentials: Credentials) -> Snapshot:
        try:
            response = await self._client.get("/symbols", headers=credential_headers(credentials))
        except httpx.TimeoutException as e:
            raise FetchError("snapshot request timed out") from e
        except httpx.TransportError as e:
            raise FetchError(f"snapshot request failed: {type(e).__name__}: {e}") from e

        if response.status_code >= 400:
            raise FetchError(
                f"snapshot request failed: status={response.status_code}",
                status_code=response.status_code,
            )

        try:
            return parse_symbol_map(response.json())
        except ValueError as e:
            # json.JSONDecodeError is a ValueError too.
            raise FetchError(f"malformed snapshot payload: {e}") from e
