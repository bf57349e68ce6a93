import asyncio
import json
from decimal import Decimal
from pathlib import Path
from typing import Any, Optional

import httpx
import pytest
from typer.testing import CliRunner

from conftest import FakeSocketServer, FakeWebSocket
from reivun_bot import cli
from reivun_bot.config.bot import Config
from reivun_bot.engine.lifecycle import BotStatus, RunState
from reivun_bot.runtime import BotServices, build_services
from reivun_bot.settings import Settings
from reivun_bot.storage.credentials import CredentialStore
from reivun_bot.storage.db import create_engine
from reivun_bot.types import ChartPoint


@pytest.fixture(autouse=True)
def _quiet_logging(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(cli, "configure_logging", lambda level: None)


def test_format_status_is_json() -> None:
    status = BotStatus(
        state=RunState.RUNNING,
        generation=3,
        connected=True,
        last_error=None,
        symbols=2,
    )
    assert json.loads(cli._format_status(status)) == {
        "state": "running",
        "generation": 3,
        "connected": True,
        "symbols": 2,
        "last_error": None,
    }


def test_format_series_reports_last_close() -> None:
    points = [
        ChartPoint(open_time_ms=1, close=Decimal("1.5")),
        ChartPoint(open_time_ms=2, close=Decimal("2.5")),
    ]
    assert cli._format_series(points) == "2 points, last close=2.5 at 2"
    assert cli._format_series([]) == "[]"


def test_redact_hides_values() -> None:
    assert cli._redact("secret") == "***"
    assert cli._redact("") == ""


def test_show_config_reads_toml(tmp_path: Path) -> None:
    p = tmp_path / "bot.toml"
    p.write_text('[bot]\ntimeframe = "5m"\n', encoding="utf-8")

    result = CliRunner().invoke(cli.app, ["show-config", "--config", str(p)])

    assert result.exit_code == 0, result.output
    assert "'timeframe': '5m'" in result.output
    assert "'demoMode': True" in result.output


def test_show_config_rejects_invalid_file(tmp_path: Path) -> None:
    p = tmp_path / "bot.toml"
    p.write_text('[bot]\ntimeframe = "2h"\n', encoding="utf-8")

    result = CliRunner().invoke(cli.app, ["show-config", "--config", str(p)])

    assert result.exit_code != 0


_SNAPSHOT = {"BTCUSDT": {"open": 100, "close": 102, "timestamp": "t0"}}


def _use_tmp_services(
    monkeypatch: pytest.MonkeyPatch,
    tmp_path: Path,
    *,
    connector: Any,
    monitor_status: int = 200,
) -> str:
    db_url = f"sqlite+aiosqlite:///{tmp_path / 'cli.db'}"
    monkeypatch.setenv("DATABASE_URL", db_url)
    monkeypatch.setenv("MONITOR_BASE_URL", "http://monitor.test")

    def monitor(request: httpx.Request) -> httpx.Response:
        if monitor_status != 200:
            return httpx.Response(monitor_status, json={"error": "nope"})
        return httpx.Response(200, json=_SNAPSHOT)

    async def fake_build_services(
        settings: Settings, *, config: Optional[Config] = None
    ) -> BotServices:
        return await build_services(
            settings,
            config=config,
            monitor_transport=httpx.MockTransport(monitor),
            binance_transport=httpx.MockTransport(lambda request: httpx.Response(200, json=[])),
            connector=connector,
        )

    monkeypatch.setattr(cli, "build_services", fake_build_services)
    return db_url


def _save() -> None:
    result = CliRunner().invoke(
        cli.app,
        ["save-credentials", "--api-key", "k1", "--secret-key", "s1", "--passphrase", "p1"],
    )
    assert result.exit_code == 0, result.output
    assert "k1" not in result.output
    assert "s1" not in result.output


def test_save_credentials_persists_to_database(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    db_url = _use_tmp_services(monkeypatch, tmp_path, connector=FakeSocketServer())
    _save()

    async def _load() -> Any:
        engine = create_engine(db_url)
        try:
            return await CredentialStore(engine).load()
        finally:
            await engine.dispose()

    loaded = asyncio.run(_load())

    assert loaded is not None
    assert (loaded.api_key, loaded.secret_key, loaded.passphrase) == ("k1", "s1", "p1")


def test_watch_exits_nonzero_when_start_fails(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    server = FakeSocketServer()
    _use_tmp_services(monkeypatch, tmp_path, connector=server, monitor_status=401)
    _save()

    result = CliRunner().invoke(
        cli.app, ["watch", "--config", str(tmp_path / "missing.toml"), "--print-every", "0.5"]
    )

    assert result.exit_code == 1
    assert "start failed: FetchError" in result.output
    assert server.urls == []


def test_watch_without_credentials_exits_nonzero(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    server = FakeSocketServer()
    _use_tmp_services(monkeypatch, tmp_path, connector=server)

    result = CliRunner().invoke(cli.app, ["watch", "--config", str(tmp_path / "missing.toml")])

    assert result.exit_code == 1
    assert "ValidationError" in result.output


def test_watch_exits_nonzero_when_stream_closes(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    server = FakeSocketServer()

    async def dropping_connector(url: str) -> FakeWebSocket:
        ws = await server(url)
        ws.drop()
        return ws

    _use_tmp_services(monkeypatch, tmp_path, connector=dropping_connector)
    _save()

    result = CliRunner().invoke(
        cli.app, ["watch", "--config", str(tmp_path / "missing.toml"), "--print-every", "0.5"]
    )

    assert result.exit_code == 1
    states = [
        json.loads(line)["state"]
        for line in result.output.splitlines()
        if line.startswith("{") and '"state"' in line
    ]
    assert states[0] == "starting"
    assert "running" in states
    assert "failed" in states
    assert server.urls == ["ws://monitor.test/socket.io/?EIO=4&transport=websocket"]
