"""
Provider package - market data sources, reasoning engines, snapshot cache.

    from providers import MarketDataCache, MarketSnapshot
    from providers.price import get_market_data_source
    from providers.llm import get_llm_provider
"""
from providers.base import (
    BaseLLMProvider,
    BaseMarketDataSource,
    MarketSnapshot,
    Quote,
)
from providers.cache import MarketDataCache, CacheEntry

__all__ = [
    "BaseLLMProvider",
    "BaseMarketDataSource",
    "MarketSnapshot",
    "Quote",
    "MarketDataCache",
    "CacheEntry",
]
