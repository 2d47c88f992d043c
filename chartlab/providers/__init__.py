from chartlab.providers.base import OHLCVProvider
from chartlab.providers.yahoo_provider import YahooOHLCVProvider

__all__ = ["OHLCVProvider", "YahooOHLCVProvider"]
