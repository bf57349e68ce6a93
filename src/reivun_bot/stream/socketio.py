"""Socket.IO v5 text packets over the Engine.IO v4 websocket transport.

Only what a read-only client on the default namespace needs: the handshake
(`0` open, `40` connect), heartbeats (`2` ping / `3` pong) and JSON events
(`42["name", ...]`). Binary attachments are rejected.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Optional


class ProtocolError(ValueError):
    pass


class EnginePacketType(IntEnum):
    OPEN = 0
    CLOSE = 1
    PING = 2
    PONG = 3
    MESSAGE = 4
    UPGRADE = 5
    NOOP = 6


class PacketType(IntEnum):
    CONNECT = 0
    DISCONNECT = 1
    EVENT = 2
    ACK = 3
    CONNECT_ERROR = 4
    BINARY_EVENT = 5
    BINARY_ACK = 6


@dataclass(frozen=True)
class EnginePacket:
    type: EnginePacketType
    data: str = ""

    def json(self) -> Any:
        if not self.data:
            return None
        try:
            return json.loads(self.data)
        except json.JSONDecodeError as e:
            raise ProtocolError(f"invalid JSON in engine packet: {e}") from e


@dataclass(frozen=True)
class Packet:
    type: PacketType
    namespace: str = "/"
    data: Any = None
    ack_id: Optional[int] = None


def decode_engine(frame: str | bytes) -> EnginePacket:
    if isinstance(frame, bytes):
        raise ProtocolError("binary frames are not supported")
    if not frame or not frame[0].isdigit():
        raise ProtocolError(f"invalid engine packet: {frame[:16]!r}")
    try:
        packet_type = EnginePacketType(int(frame[0]))
    except ValueError as e:
        raise ProtocolError(f"unknown engine packet type: {frame[0]!r}") from e
    return EnginePacket(type=packet_type, data=frame[1:])


def encode_engine(packet: EnginePacket) -> str:
    return f"{int(packet.type)}{packet.data}"


def decode_packet(text: str) -> Packet:
    if not text or not text[0].isdigit():
        raise ProtocolError(f"invalid socket packet: {text[:16]!r}")
    try:
        packet_type = PacketType(int(text[0]))
    except ValueError as e:
        raise ProtocolError(f"unknown socket packet type: {text[0]!r}") from e
    if packet_type in (PacketType.BINARY_EVENT, PacketType.BINARY_ACK):
        raise ProtocolError("binary packets are not supported")

    i = 1
    namespace = "/"
    if i < len(text) and text[i] == "/":
        end = text.find(",", i)
        if end == -1:
            namespace = text[i:]
            i = len(text)
        else:
            namespace = text[i:end]
            i = end + 1

    start = i
    while i < len(text) and text[i].isdigit():
        i += 1
    ack_id = int(text[start:i]) if i > start else None

    data: Any = None
    if i < len(text):
        try:
            data = json.loads(text[i:])
        except json.JSONDecodeError as e:
            raise ProtocolError(f"invalid JSON in socket packet: {e}") from e
    return Packet(type=packet_type, namespace=namespace, data=data, ack_id=ack_id)


def encode_packet(packet: Packet) -> str:
    parts = [str(int(packet.type))]
    if packet.namespace != "/":
        parts.append(f"{packet.namespace},")
    if packet.ack_id is not None:
        parts.append(str(packet.ack_id))
    if packet.data is not None:
        parts.append(json.dumps(packet.data, separators=(",", ":")))
    return "".join(parts)


def message_frame(packet: Packet) -> str:
    return encode_engine(EnginePacket(type=EnginePacketType.MESSAGE, data=encode_packet(packet)))


def event_args(packet: Packet) -> tuple[str, list[Any]]:
    data = packet.data
    if not isinstance(data, list) or not data or not isinstance(data[0], str):
        raise ProtocolError("event payload must be a list starting with the event name")
    return data[0], list(data[1:])
