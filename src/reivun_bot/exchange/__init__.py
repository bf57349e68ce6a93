__all__ = ["BinanceApiError", "BinanceSpotClient"]

from reivun_bot.exchange.binance_spot import BinanceApiError, BinanceSpotClient
