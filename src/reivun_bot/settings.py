from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Monitoring service (snapshot + stream)
    monitor_base_url: str = Field(
        default="https://reivun-gkdi.vercel.app",
        validation_alias="MONITOR_BASE_URL",
    )
    fetch_timeout_seconds: float = Field(default=10.0, gt=0, validation_alias="FETCH_TIMEOUT_SECONDS")
    connect_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        validation_alias="CONNECT_TIMEOUT_SECONDS",
    )

    # Local storage
    database_url: str = Field(
        default="sqlite+aiosqlite:///reivun_bot.db",
        validation_alias="DATABASE_URL",
    )

    # Price chart (Binance public klines)
    chart_symbol: str = Field(default="BTCUSDT", validation_alias="CHART_SYMBOL")
    chart_interval: str = Field(default="1m", validation_alias="CHART_INTERVAL")
    chart_limit: int = Field(default=50, ge=1, le=1000, validation_alias="CHART_LIMIT")
    chart_poll_seconds: float = Field(default=60.0, gt=0, validation_alias="CHART_POLL_SECONDS")

    # Logging
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

    def stream_url(self) -> str:
        base = self.monitor_base_url.rstrip("/")
        if base.startswith("https://"):
            base = "wss://" + base[len("https://") :]
        elif base.startswith("http://"):
            base = "ws://" + base[len("http://") :]
        return f"{base}/socket.io/?EIO=4&transport=websocket"
