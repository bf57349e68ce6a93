__all__ = ["BotLifecycleController", "BotStatus", "RunEvent", "RunState", "transition"]

from reivun_bot.engine.lifecycle import (
    BotLifecycleController,
    BotStatus,
    RunEvent,
    RunState,
    transition,
)
