__all__ = ["ConnectionHandle", "ConnectionManager"]

from reivun_bot.stream.connection import ConnectionHandle, ConnectionManager
