__all__ = ["create_app"]

from reivun_bot.web.app import create_app
