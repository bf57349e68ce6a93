from __future__ import annotations

import logging
from typing import Any, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field

from reivun_bot.config.bot import Config
from reivun_bot.errors import ConfigError, ConnectionError, FetchError, ValidationError
from reivun_bot.runtime import BotServices
from reivun_bot.types import Credentials

logger = logging.getLogger("reivun_bot.web")

router = APIRouter(prefix="/api")


class CredentialsPayload(BaseModel):
    apiKey: str = ""
    secretKey: str = ""
    passphrase: str = ""


class ConfigPayload(BaseModel):
    timeframe: Optional[Literal["1m", "5m", "15m"]] = None
    leverage: Optional[float] = Field(default=None, gt=0)
    tradeAmount: Optional[float] = Field(default=None, gt=0)
    demoMode: Optional[bool] = None


def get_services(request: Request) -> BotServices:
    return request.app.state.services


def _status_body(services: BotServices) -> dict[str, Any]:
    status = services.controller.status()
    return {
        "state": status.state.value,
        "generation": status.generation,
        "connected": status.connected,
        "last_error": status.last_error,
        "symbols": status.symbols,
        "demo_mode": services.config.demo_mode,
    }


@router.get("/status")
async def get_status(services: BotServices = Depends(get_services)) -> dict[str, Any]:
    return _status_body(services)


@router.get("/symbols")
async def get_symbols(services: BotServices = Depends(get_services)) -> dict[str, Any]:
    snapshot = services.controller.snapshot()
    return {
        symbol: record.model_dump(by_alias=True)
        for symbol, record in sorted(snapshot.items())
    }


@router.post("/bot/start")
async def start_bot(services: BotServices = Depends(get_services)) -> dict[str, Any]:
    credentials = await services.credentials.load() or Credentials()
    try:
        await services.controller.start(credentials, services.config)
    except (ValidationError, ConfigError) as e:
        logger.warning("start_rejected", extra={"reason": str(e)})
        raise HTTPException(status_code=400, detail=str(e)) from e
    except (FetchError, ConnectionError) as e:
        raise HTTPException(status_code=502, detail=str(e)) from e
    return _status_body(services)


@router.post("/bot/stop")
async def stop_bot(services: BotServices = Depends(get_services)) -> dict[str, Any]:
    await services.controller.stop()
    return _status_body(services)


@router.get("/credentials")
async def get_credentials(services: BotServices = Depends(get_services)) -> dict[str, bool]:
    credentials = await services.credentials.load() or Credentials()
    return {
        "has_api_key": bool(credentials.api_key),
        "has_secret_key": bool(credentials.secret_key),
        "has_passphrase": bool(credentials.passphrase),
    }


@router.put("/credentials")
async def save_credentials(
    payload: CredentialsPayload,
    services: BotServices = Depends(get_services),
) -> dict[str, bool]:
    credentials = Credentials.model_validate(payload.model_dump())
    await services.credentials.save(credentials)
    return {
        "has_api_key": bool(credentials.api_key),
        "has_secret_key": bool(credentials.secret_key),
        "has_passphrase": bool(credentials.passphrase),
    }


@router.get("/config")
async def get_config(services: BotServices = Depends(get_services)) -> dict[str, Any]:
    return services.config.model_dump(by_alias=True)


@router.put("/config")
async def update_config(
    payload: ConfigPayload,
    services: BotServices = Depends(get_services),
) -> dict[str, Any]:
    changes = payload.model_dump(exclude_none=True)
    services.config = Config.model_validate(
        {**services.config.model_dump(by_alias=True), **changes}
    )
    logger.info("config_updated", extra={"reason": ",".join(sorted(changes))})
    return services.config.model_dump(by_alias=True)


@router.get("/chart")
async def get_chart(services: BotServices = Depends(get_services)) -> dict[str, Any]:
    poller = services.poller
    return {
        "symbol": poller.symbol,
        "points": [
            {"time": point.open_time_ms, "close": str(point.close)} for point in poller.latest
        ],
        "last_error": poller.last_error,
    }
