"""
Market data source plugins.
"""
from typing import Optional

from loguru import logger

from config.settings import Settings, get_settings
from providers.base import BaseMarketDataSource
from utils.error_handler import ConfigurationError


def get_market_data_source(settings: Optional[Settings] = None,
                           name: Optional[str] = None) -> BaseMarketDataSource:
    """Build the market data source for the configured data mode.

    live -> yfinance. demo -> synthetic unless a name is given explicitly.
    Asking for synthetic data in live mode is a configuration error.
    """
    settings = settings or get_settings()
    name = (name or ("synthetic" if settings.is_demo else "yfinance")).strip().lower()

    if name == "synthetic":
        if not settings.is_demo:
            raise ConfigurationError(
                "Synthetic market data is only allowed with DATA_MODE=demo"
            )
        from providers.price.synthetic_provider import SyntheticProvider
        logger.warning("Using SYNTHETIC market data (demo mode), not for trading")
        return SyntheticProvider()

    if name == "yfinance":
        from providers.price.yfinance_provider import YFinanceProvider
        return YFinanceProvider(
            history_period=settings.history_period,
            timeout_seconds=settings.call_timeout_seconds,
        )

    raise ConfigurationError(f"Unknown market data source '{name}'")
