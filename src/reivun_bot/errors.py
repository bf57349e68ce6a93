from __future__ import annotations

import builtins


class BotError(Exception):
    pass


class ValidationError(BotError):
    def __init__(self, missing: list[str]):
        super().__init__(f"missing credentials: {', '.join(missing)}")
        self.missing = missing


class ConfigError(BotError):
    pass


class FetchError(BotError):
    def __init__(self, message: str, *, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class ConnectionError(BotError, builtins.ConnectionError):
    pass


class AlreadyConnectedError(ConnectionError):
    pass


class InvalidTransition(BotError):
    pass
