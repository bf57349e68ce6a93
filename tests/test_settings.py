from pathlib import Path

import pytest
from pydantic import ValidationError

from reivun_bot.config.bot import Config, load_bot_config
from reivun_bot.settings import Settings


def test_stream_url_uses_websocket_transport() -> None:
    settings = Settings(MONITOR_BASE_URL="https://monitor.example.com/")
    assert settings.stream_url() == "wss://monitor.example.com/socket.io/?EIO=4&transport=websocket"

    settings = Settings(MONITOR_BASE_URL="http://localhost:3000")
    assert settings.stream_url() == "ws://localhost:3000/socket.io/?EIO=4&transport=websocket"


def test_timeouts_must_be_positive() -> None:
    with pytest.raises(ValidationError):
        Settings(FETCH_TIMEOUT_SECONDS=0)


def test_config_defaults_match_dashboard() -> None:
    cfg = Config()
    assert cfg.timeframe == "1m"
    assert cfg.leverage == 1
    assert cfg.trade_amount == 100
    assert cfg.demo_mode is True


def test_load_bot_config(tmp_path: Path) -> None:
    p = tmp_path / "bot.toml"
    p.write_text(
        """
[bot]
timeframe = "15m"
leverage = 3
tradeAmount = 250
demoMode = false
""",
        encoding="utf-8",
    )
    cfg = load_bot_config(p)
    assert cfg.timeframe == "15m"
    assert cfg.leverage == 3
    assert cfg.trade_amount == 250
    assert cfg.demo_mode is False


def test_load_bot_config_rejects_unknown_timeframe(tmp_path: Path) -> None:
    p = tmp_path / "bad.toml"
    p.write_text(
        """
[bot]
timeframe = "4h"
""",
        encoding="utf-8",
    )
    with pytest.raises(ValidationError):
        load_bot_config(p)


def test_load_bot_config_rejects_non_positive_amount(tmp_path: Path) -> None:
    p = tmp_path / "bad.toml"
    p.write_text(
        """
[bot]
tradeAmount = 0
""",
        encoding="utf-8",
    )
    with pytest.raises(ValidationError):
        load_bot_config(p)
