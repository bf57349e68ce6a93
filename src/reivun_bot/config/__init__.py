__all__ = ["Config", "load_bot_config"]

from reivun_bot.config.bot import Config, load_bot_config
