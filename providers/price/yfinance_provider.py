"""
yfinance market data source.

Free, no API key needed. US tickers are passed through unchanged.
Every call is bounded by call_with_timeout() for hang protection.
"""
from typing import Any, Dict, List

import yfinance as yf
from loguru import logger

from providers.base import BaseMarketDataSource, Quote
from utils.error_handler import MarketDataUnavailable
from utils.platform import call_with_timeout


class YFinanceProvider(BaseMarketDataSource):
    """Yahoo Finance via yfinance. Quote from Ticker.info, closes from Ticker.history."""

    SOURCE = "yahoo_finance"

    def __init__(self, history_period: str = "1y", timeout_seconds: float = 10.0):
        self._history_period = history_period
        self._timeout = timeout_seconds

    @property
    def name(self) -> str:
        return "yfinance"

    def is_available(self) -> bool:
        return True  # No API key required

    def _raw_quote(self, symbol: str) -> Dict[str, Any]:
        ticker = yf.Ticker(symbol)
        info = dict(ticker.info or {})
        if not info.get("regularMarketPrice"):
            # Thin .info payloads happen; fast_info usually still has the price
            fast = ticker.fast_info
            info.setdefault("regularMarketPreviousClose", getattr(fast, "previous_close", None))
            info["regularMarketPrice"] = getattr(fast, "last_price", None)
            info.setdefault("regularMarketDayHigh", getattr(fast, "day_high", None))
            info.setdefault("regularMarketDayLow", getattr(fast, "day_low", None))
            info.setdefault("fiftyTwoWeekHigh", getattr(fast, "year_high", None))
            info.setdefault("fiftyTwoWeekLow", getattr(fast, "year_low", None))
            info.setdefault("regularMarketVolume", getattr(fast, "last_volume", None))
        return info

    def fetch_quote(self, symbol: str) -> Quote:
        """Latest quote, validated into a Quote. Raises MarketDataUnavailable."""
        try:
            raw = call_with_timeout(
                lambda: self._raw_quote(symbol), self._timeout,
                label=f"yfinance quote {symbol}",
            )
        except Exception as e:
            logger.error(f"yfinance quote failed for {symbol}: {e}")
            raise MarketDataUnavailable(
                f"Unable to fetch data for symbol: {symbol} ({e})",
                symbol=symbol, source=self.SOURCE,
            ) from e

        # Drop None values so validation applies the explicit defaults
        raw = {k: v for k, v in raw.items() if v is not None}
        return Quote.from_payload(symbol, raw, source=self.SOURCE)

    def fetch_history(self, symbol: str) -> List[float]:
        """Daily closes over history_period, oldest first."""
        period = self._history_period

        def _fetch():
            return yf.Ticker(symbol).history(period=period, interval="1d")

        df = call_with_timeout(_fetch, self._timeout, label=f"yfinance history {symbol}")
        if df is None or df.empty or "Close" not in df.columns:
            return []
        return [float(c) for c in df["Close"].dropna().tolist()]
