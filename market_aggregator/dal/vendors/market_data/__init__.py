"""Market data provider plugins."""

from .alphavantage import AlphaVantagePlugin
from .binance import BinancePlugin
from .oanda import OandaPlugin
from .twelvedata import TwelveDataPlugin
from .yahoo import YahooFinancePlugin

__all__ = [
    "AlphaVantagePlugin",
    "BinancePlugin",
    "OandaPlugin",
    "TwelveDataPlugin",
    "YahooFinancePlugin",
]
