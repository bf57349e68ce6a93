from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path

import typer
import uvicorn

from reivun_bot.chart.poller import PricePoller
from reivun_bot.config.bot import Config, load_bot_config
from reivun_bot.engine.lifecycle import BotStatus, RunState
from reivun_bot.errors import BotError
from reivun_bot.exchange.binance_spot import BinanceSpotClient
from reivun_bot.logging_utils import configure_logging
from reivun_bot.runtime import build_services
from reivun_bot.settings import Settings
from reivun_bot.types import ChartPoint, Credentials
from reivun_bot.web.app import create_app

app = typer.Typer(no_args_is_help=True, add_completion=False)
logger = logging.getLogger("reivun_bot")


def _load_config(path: Path) -> Config:
    if not path.exists():
        return Config()
    try:
        return load_bot_config(path)
    except Exception as e:
        raise typer.BadParameter(f"invalid config: {e}") from e


def _redact(value: str) -> str:
    return "***" if value else ""


def _format_status(status: BotStatus) -> str:
    return json.dumps(
        {
            "state": status.state.value,
            "generation": status.generation,
            "connected": status.connected,
            "symbols": status.symbols,
            "last_error": status.last_error,
        },
        ensure_ascii=False,
    )


def _format_series(points: list[ChartPoint]) -> str:
    if not points:
        return "[]"
    last = points[-1]
    return f"{len(points)} points, last close={last.close} at {last.open_time_ms}"


@app.command()
def show_config(
    config: Path = typer.Option(Path("configs/bot.toml"), help="Bot config file (TOML)."),
) -> None:
    settings = Settings()
    configure_logging(settings.log_level)
    bot_config = _load_config(config)
    logger.info("loaded_config", extra={"endpoint": settings.monitor_base_url})
    typer.echo({"settings": settings.model_dump(), "bot": bot_config.model_dump(by_alias=True)})


@app.command()
def save_credentials(
    api_key: str = typer.Option(..., prompt=True, hide_input=True),
    secret_key: str = typer.Option(..., prompt=True, hide_input=True),
    passphrase: str = typer.Option(..., prompt=True, hide_input=True),
) -> None:
    """
    Store the monitoring credentials in the local database (overwrites).
    """
    settings = Settings()
    configure_logging(settings.log_level)
    credentials = Credentials(api_key=api_key, secret_key=secret_key, passphrase=passphrase)

    async def _run() -> None:
        services = await build_services(settings)
        try:
            await services.credentials.save(credentials)
        finally:
            await services.aclose()

    asyncio.run(_run())
    typer.echo(
        {
            "ok": True,
            "apiKey": _redact(credentials.api_key),
            "secretKey": _redact(credentials.secret_key),
            "passphrase": _redact(credentials.passphrase),
        }
    )


@app.command()
def watch(
    config: Path = typer.Option(Path("configs/bot.toml"), help="Bot config file (TOML)."),
    print_every: float = typer.Option(5.0, min=0.5, help="Seconds between snapshot prints."),
) -> None:
    """
    Start the bot with the saved credentials and print the snapshot until interrupted.
    """
    settings = Settings()
    configure_logging(settings.log_level)
    bot_config = _load_config(config)

    async def _run() -> int:
        services = await build_services(settings, config=bot_config)
        try:
            credentials = await services.credentials.load() or Credentials()
            controller = services.controller
            controller.add_listener(lambda status: typer.echo(_format_status(status)))
            try:
                await controller.start(credentials, bot_config)
            except BotError as e:
                typer.echo(f"start failed: {type(e).__name__}: {e}", err=True)
                return 1
            while controller.state == RunState.RUNNING:
                await asyncio.sleep(print_every)
                snapshot = {
                    symbol: record.model_dump(by_alias=True)
                    for symbol, record in sorted(controller.snapshot().items())
                }
                typer.echo(json.dumps(snapshot, ensure_ascii=False))
            return 0 if controller.state == RunState.IDLE else 1
        finally:
            await services.aclose()

    try:
        code = asyncio.run(_run())
    except KeyboardInterrupt:
        logger.info("watch_stopped")
        code = 0
    if code:
        raise typer.Exit(code=code)


@app.command()
def chart(
    symbol: str | None = typer.Option(None, help="Override: chart symbol."),
    interval: str | None = typer.Option(None, help="Override: kline interval."),
    every: float | None = typer.Option(None, help="Override: seconds between polls."),
) -> None:
    """
    Poll the public Binance klines feed and print each refreshed series.
    """
    settings = Settings()
    configure_logging(settings.log_level)
    chart_symbol = (symbol or settings.chart_symbol).strip().upper()
    chart_interval = (interval or settings.chart_interval).strip()
    poll_seconds = every if every is not None else settings.chart_poll_seconds

    async def _run() -> None:
        client = BinanceSpotClient()
        poller = PricePoller(
            client=client,
            symbol=chart_symbol,
            interval=chart_interval,
            limit=settings.chart_limit,
            on_series=lambda points: typer.echo(_format_series(points)),
        )
        try:
            poller.start(poll_seconds)
            await asyncio.Event().wait()
        finally:
            await poller.stop()
            await client.aclose()

    try:
        asyncio.run(_run())
    except KeyboardInterrupt:
        logger.info("chart_stopped")


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", help="Bind address."),
    port: int = typer.Option(8000, help="Bind port."),
) -> None:
    """
    Serve the dashboard control API.
    """
    settings = Settings()
    configure_logging(settings.log_level)
    uvicorn.run(create_app(settings=settings), host=host, port=port, log_config=None)
