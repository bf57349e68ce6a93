__all__ = ["PeriodicTask", "PricePoller"]

from reivun_bot.chart.poller import PeriodicTask, PricePoller
