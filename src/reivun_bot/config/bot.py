from __future__ import annotations

import tomllib
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class Config(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    timeframe: Literal["1m", "5m", "15m"] = "1m"
    leverage: float = Field(default=1.0, gt=0)
    trade_amount: float = Field(default=100.0, gt=0, alias="tradeAmount")
    demo_mode: bool = Field(default=True, alias="demoMode")


class BotConfigFile(BaseModel):
    bot: Config = Field(default_factory=Config)


def load_bot_config(path: Path) -> Config:
    raw = tomllib.loads(path.read_text(encoding="utf-8"))
    return BotConfigFile.model_validate(raw).bot
