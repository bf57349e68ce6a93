from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from functools import partial
from types import TracebackType
from typing import Callable, Optional

from reivun_bot.config.bot import Config
from reivun_bot.errors import ConfigError, InvalidTransition
from reivun_bot.monitor.synchronizer import MarketDataSynchronizer
from reivun_bot.storage.credentials import CredentialStore
from reivun_bot.stream.connection import ConnectionHandle, ConnectionManager
from reivun_bot.types import Credentials, Snapshot

logger = logging.getLogger("reivun_bot.lifecycle")


class RunState(str, Enum):
    IDLE = "idle"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    FAILED = "failed"


class RunEvent(str, Enum):
    START = "start"
    STARTED = "started"
    FAILED = "failed"
    RESET = "reset"
    STOP = "stop"
    STOPPED = "stopped"
    LOST = "lost"


_TRANSITIONS: dict[tuple[RunState, RunEvent], RunState] = {
    (RunState.IDLE, RunEvent.START): RunState.STARTING,
    (RunState.FAILED, RunEvent.START): RunState.STARTING,
    (RunState.STARTING, RunEvent.STARTED): RunState.RUNNING,
    (RunState.STARTING, RunEvent.FAILED): RunState.FAILED,
    (RunState.FAILED, RunEvent.RESET): RunState.IDLE,
    (RunState.STARTING, RunEvent.STOP): RunState.STOPPING,
    (RunState.RUNNING, RunEvent.STOP): RunState.STOPPING,
    (RunState.FAILED, RunEvent.STOP): RunState.STOPPING,
    (RunState.STOPPING, RunEvent.STOPPED): RunState.IDLE,
    (RunState.RUNNING, RunEvent.LOST): RunState.FAILED,
}


def transition(state: RunState, event: RunEvent) -> RunState:
    try:
        return _TRANSITIONS[(state, event)]
    except KeyError:
        raise InvalidTransition(f"{event.value!r} is not allowed in state {state.value!r}") from None


@dataclass(frozen=True)
class BotStatus:
    state: RunState
    generation: int
    connected: bool
    last_error: Optional[str]
    symbols: int


StatusListener = Callable[[BotStatus], None]


class BotLifecycleController:
    """Run-state machine for one monitoring bot.

    Every start() and every effective stop() bumps `generation`. Work started
    under an older generation (a snapshot read, a handshake, stream events) is
    dropped when it completes, so stop() never has to wait for the network.
    """

    def __init__(
        self,
        *,
        synchronizer: MarketDataSynchronizer,
        connections: ConnectionManager,
        endpoint: str,
    ) -> None:
        self._synchronizer = synchronizer
        self._connections = connections
        self._endpoint = endpoint
        self._state = RunState.IDLE
        self._generation = 0
        self._handle: Optional[ConnectionHandle] = None
        self._healthy = False
        self._last_error: Optional[str] = None
        self._listeners: list[StatusListener] = []
        self._stopped: Optional[asyncio.Event] = None

    async def __aenter__(self) -> BotLifecycleController:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    @property
    def state(self) -> RunState:
        return self._state

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def last_error(self) -> Optional[str]:
        return self._last_error

    def snapshot(self) -> Snapshot:
        return self._synchronizer.snapshot()

    def status(self) -> BotStatus:
        return BotStatus(
            state=self._state,
            generation=self._generation,
            connected=self._healthy and self._connections.is_connected(),
            last_error=self._last_error,
            symbols=len(self._synchronizer.snapshot()),
        )

    def add_listener(self, listener: StatusListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    async def start(self, credentials: Credentials, config: Config) -> None:
        if self._state in (RunState.STARTING, RunState.RUNNING, RunState.STOPPING):
            logger.info("start_ignored", extra={"state": self._state.value})
            return
        if not config.demo_mode:
            raise ConfigError("bot cannot run when demo mode is off")
        CredentialStore.validate(credentials)

        self._generation += 1
        generation = self._generation
        self._last_error = None
        self._healthy = False
        self._apply(RunEvent.START)
        self._synchronizer.begin_run(generation)

        try:
            await self._synchronizer.fetch_snapshot(credentials, generation=generation)
            if generation != self._generation:
                logger.info("stale_start_abandoned", extra={"generation": generation})
                return
            handle = await self._connections.connect(
                self._endpoint,
                on_update=partial(self._on_update, generation),
                on_error=partial(self._on_error, generation),
                on_closed=partial(self._on_closed, generation),
                on_connected=partial(self._on_connected, generation),
            )
        except asyncio.CancelledError as e:
            if generation == self._generation:
                self._fail(e)
            raise
        except Exception as e:
            if generation != self._generation:
                logger.info(
                    "stale_start_failure_discarded",
                    extra={"generation": generation, "reason": str(e)},
                )
                return
            self._fail(e)
            raise

        if generation != self._generation:
            # stop() won the race against the handshake.
            if self._connections.handle is handle:
                await self._connections.disconnect()
            return

        self._handle = handle
        self._apply(RunEvent.STARTED)

    async def stop(self) -> None:
        if self._state == RunState.STOPPING:
            if self._stopped is not None:
                await self._stopped.wait()
            return
        if self._state == RunState.IDLE:
            return

        stopped = asyncio.Event()
        self._stopped = stopped
        self._generation += 1
        self._apply(RunEvent.STOP)
        self._synchronizer.end_run()
        self._handle = None
        try:
            await self._connections.disconnect()
        finally:
            self._healthy = False
            self._apply(RunEvent.STOPPED)
            stopped.set()

    async def aclose(self) -> None:
        await self.stop()

    def _fail(self, error: BaseException) -> None:
        self._last_error = str(error) or type(error).__name__
        self._healthy = False
        logger.warning(
            "start_failed",
            extra={"generation": self._generation, "reason": self._last_error},
        )
        self._apply(RunEvent.FAILED)
        self._synchronizer.end_run()
        self._apply(RunEvent.RESET)

    def _on_connected(self, generation: int) -> None:
        if generation != self._generation:
            return
        self._healthy = True
        self._notify()

    def _on_update(self, generation: int, update: Snapshot) -> None:
        if generation != self._generation:
            logger.debug("stale_update_dropped", extra={"generation": generation})
            return
        self._synchronizer.merge(update, generation=generation)

    def _on_error(self, generation: int, reason: str) -> None:
        if generation != self._generation:
            return
        self._last_error = reason
        self._healthy = False
        logger.warning("stream_error", extra={"generation": generation, "reason": reason})
        self._notify()

    def _on_closed(self, generation: int) -> None:
        if generation != self._generation:
            return
        self._handle = None
        self._healthy = False
        if self._state != RunState.RUNNING:
            return
        if self._last_error is None:
            self._last_error = "stream closed"
        logger.warning("stream_lost", extra={"generation": generation, "reason": self._last_error})
        self._synchronizer.end_run()
        self._apply(RunEvent.LOST)

    def _apply(self, event: RunEvent) -> None:
        self._state = transition(self._state, event)
        logger.info(
            "state_changed",
            extra={
                "generation": self._generation,
                "state": self._state.value,
                "reason": event.value,
            },
        )
        self._notify()

    def _notify(self) -> None:
        status = self.status()
        for listener in list(self._listeners):
            try:
                listener(status)
            except Exception:
                logger.exception("status_listener_failed")
