__all__ = ["MarketDataSynchronizer", "MonitorClient"]

from reivun_bot.monitor.client import MonitorClient
from reivun_bot.monitor.synchronizer import MarketDataSynchronizer
