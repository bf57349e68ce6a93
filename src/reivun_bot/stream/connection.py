from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from reivun_bot.errors import AlreadyConnectedError, ConnectionError
from reivun_bot.monitor.client import parse_symbol_map
from reivun_bot.stream.socketio import (
    EnginePacket,
    EnginePacketType,
    Packet,
    PacketType,
    ProtocolError,
    decode_engine,
    decode_packet,
    encode_engine,
    event_args,
    message_frame,
)
from reivun_bot.types import Snapshot

logger = logging.getLogger("reivun_bot.stream")

UPDATE_EVENT = "symbolsData"
ERROR_EVENT = "error"

Connector = Callable[[str], Awaitable[Any]]
UpdateHandler = Callable[[Snapshot], None]
ErrorHandler = Callable[[str], None]
ClosedHandler = Callable[[], None]
ConnectedHandler = Callable[[], None]


@dataclass(eq=False)
class ConnectionHandle:
    connection_id: int
    endpoint: str
    sid: str
    _ws: Any = field(repr=False)
    _on_closed: Optional[ClosedHandler] = field(default=None, repr=False)
    _reader: Optional[asyncio.Task[None]] = field(default=None, repr=False)
    _closed: bool = field(default=False, repr=False)
    _notified: bool = field(default=False, repr=False)

    @property
    def closed(self) -> bool:
        return self._closed


class ConnectionManager:
    """Owns at most one Socket.IO connection at a time.

    Inbound events are delivered to synchronous callbacks from a single reader
    task, in receipt order. `closed` fires exactly once per handle, whatever
    ended the transport. There is no reconnect.
    """

    def __init__(
        self,
        *,
        connect_timeout_seconds: float = 10.0,
        connector: Connector | None = None,
    ) -> None:
        self._connect_timeout_seconds = connect_timeout_seconds
        self._connector: Connector = connector or websockets.connect
        self._handle: Optional[ConnectionHandle] = None
        self._pending: Optional[asyncio.Task[tuple[Any, str]]] = None
        self._abandoned: set[asyncio.Task[tuple[Any, str]]] = set()
        self._next_id = 0

    @property
    def handle(self) -> Optional[ConnectionHandle]:
        return self._handle

    def is_connected(self) -> bool:
        return self._handle is not None and not self._handle.closed

    async def connect(
        self,
        endpoint: str,
        *,
        on_update: UpdateHandler,
        on_error: ErrorHandler,
        on_closed: ClosedHandler,
        on_connected: ConnectedHandler | None = None,
    ) -> ConnectionHandle:
        if self._handle is not None or self._pending is not None:
            raise AlreadyConnectedError("a streaming connection is already open; disconnect first")

        pending = asyncio.ensure_future(self._handshake(endpoint))
        self._pending = pending
        try:
            ws, sid = await asyncio.wait_for(pending, timeout=self._connect_timeout_seconds)
        except asyncio.TimeoutError as e:
            raise ConnectionError(
                f"handshake with {endpoint} exceeded {self._connect_timeout_seconds}s"
            ) from e
        except asyncio.CancelledError:
            if pending in self._abandoned:
                raise ConnectionError("connect abandoned by disconnect") from None
            raise
        except (OSError, WebSocketException, ProtocolError) as e:
            raise ConnectionError(f"handshake with {endpoint} failed: {type(e).__name__}: {e}") from e
        finally:
            self._abandoned.discard(pending)
            if self._pending is pending:
                self._pending = None

        self._next_id += 1
        handle = ConnectionHandle(
            connection_id=self._next_id,
            endpoint=endpoint,
            sid=sid,
            _ws=ws,
            _on_closed=on_closed,
        )
        self._handle = handle
        handle._reader = asyncio.create_task(
            self._read_loop(handle, on_update=on_update, on_error=on_error)
        )
        logger.info("stream_connected", extra={"endpoint": endpoint})
        if on_connected is not None:
            self._emit(on_connected)
        return handle

    async def disconnect(self) -> None:
        pending = self._pending
        if pending is not None:
            if not pending.done():
                self._abandoned.add(pending)
                pending.cancel()
            # The cancelled handshake closes its socket before it finishes.
            await asyncio.wait({pending})
            if self._pending is pending:
                self._pending = None

        handle = self._handle
        if handle is None:
            return
        self._handle = None

        if not handle.closed:
            try:
                await handle._ws.send(message_frame(Packet(type=PacketType.DISCONNECT)))
            except (ConnectionClosed, OSError):
                pass
        reader = handle._reader
        if reader is not None and reader is not asyncio.current_task() and not reader.done():
            reader.cancel()
            try:
                await reader
            except asyncio.CancelledError:
                pass
        await self._finish(handle)
        logger.info("stream_disconnected", extra={"endpoint": handle.endpoint})

    async def _handshake(self, endpoint: str) -> tuple[Any, str]:
        ws = await self._connector(endpoint)
        try:
            opened = decode_engine(await ws.recv())
            if opened.type != EnginePacketType.OPEN:
                raise ProtocolError(f"expected engine open packet, got {opened.type.name}")
            await ws.send(message_frame(Packet(type=PacketType.CONNECT)))
            while True:
                packet = decode_engine(await ws.recv())
                if packet.type == EnginePacketType.PING:
                    await ws.send(encode_engine(EnginePacket(type=EnginePacketType.PONG)))
                    continue
                if packet.type == EnginePacketType.CLOSE:
                    raise ProtocolError("server closed the session during handshake")
                if packet.type != EnginePacketType.MESSAGE:
                    continue
                reply = decode_packet(packet.data)
                if reply.namespace != "/":
                    continue
                if reply.type == PacketType.CONNECT:
                    sid = reply.data.get("sid", "") if isinstance(reply.data, dict) else ""
                    return ws, str(sid)
                if reply.type == PacketType.CONNECT_ERROR:
                    raise ProtocolError(f"namespace connect rejected: {reply.data!r}")
        except BaseException:
            await ws.close()
            raise

    async def _read_loop(
        self,
        handle: ConnectionHandle,
        *,
        on_update: UpdateHandler,
        on_error: ErrorHandler,
    ) -> None:
        try:
            while True:
                try:
                    frame = await handle._ws.recv()
                except ConnectionClosed as e:
                    code = e.rcvd.code if e.rcvd is not None else None
                    logger.info(
                        "stream_closed_by_transport",
                        extra={"endpoint": handle.endpoint, "reason": f"code={code}"},
                    )
                    return
                except OSError as e:
                    self._emit(on_error, f"transport error: {type(e).__name__}: {e}")
                    return
                try:
                    keep_open = await self._dispatch(
                        handle,
                        frame,
                        on_update=on_update,
                        on_error=on_error,
                    )
                except ProtocolError as e:
                    self._emit(on_error, f"malformed packet: {e}")
                    continue
                if not keep_open:
                    logger.info("stream_closed_by_server", extra={"endpoint": handle.endpoint})
                    return
        finally:
            if self._handle is handle:
                self._handle = None
            await self._finish(handle)

    async def _dispatch(
        self,
        handle: ConnectionHandle,
        frame: str | bytes,
        *,
        on_update: UpdateHandler,
        on_error: ErrorHandler,
    ) -> bool:
        packet = decode_engine(frame)
        if packet.type == EnginePacketType.PING:
            await handle._ws.send(encode_engine(EnginePacket(type=EnginePacketType.PONG)))
            return True
        if packet.type == EnginePacketType.CLOSE:
            return False
        if packet.type != EnginePacketType.MESSAGE:
            return True

        message = decode_packet(packet.data)
        if message.namespace != "/":
            return True
        if message.type == PacketType.DISCONNECT:
            return False
        if message.type == PacketType.CONNECT_ERROR:
            self._emit(on_error, f"server rejected namespace: {message.data!r}")
            return True
        if message.type != PacketType.EVENT:
            return True

        name, args = event_args(message)
        if name == UPDATE_EVENT:
            if not args:
                raise ProtocolError(f"{UPDATE_EVENT} event without payload")
            try:
                update = parse_symbol_map(args[0])
            except ValueError as e:
                raise ProtocolError(str(e)) from e
            self._emit(on_update, update)
        elif name == ERROR_EVENT:
            detail = args[0] if args else ""
            self._emit(on_error, f"server error: {detail!r}")
        else:
            logger.debug("stream_event_ignored", extra={"reason": name})
        return True

    async def _finish(self, handle: ConnectionHandle) -> None:
        if not handle._closed:
            handle._closed = True
            try:
                await handle._ws.close()
            except (WebSocketException, OSError):
                logger.warning(
                    "stream_close_failed",
                    extra={"endpoint": handle.endpoint},
                    exc_info=True,
                )
        if not handle._notified and handle._on_closed is not None:
            handle._notified = True
            self._emit(handle._on_closed)

    def _emit(self, callback: Callable[..., None], *args: Any) -> None:
        try:
            callback(*args)
        except Exception:
            logger.exception("stream_callback_failed")
