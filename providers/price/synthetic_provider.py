"""
Synthetic market data source for demo and test modes.

Generates a plausible quote and close history per symbol. Output is seeded
from the symbol, so the same symbol always yields the same data. Snapshots
built from it carry synthetic=True.

Never used for live trading: get_market_data_source() refuses to build it
unless DATA_MODE=demo.
"""
import hashlib
import random
from typing import List

from providers.base import BaseMarketDataSource, Quote


class SyntheticProvider(BaseMarketDataSource):
    """Seeded random-walk data. NOT MARKET DATA."""

    SOURCE = "synthetic"

    def __init__(self, history_days: int = 250):
        self._history_days = history_days

    @property
    def name(self) -> str:
        return "synthetic"

    @property
    def synthetic(self) -> bool:
        return True

    def is_available(self) -> bool:
        return True

    @staticmethod
    def _rng(symbol: str) -> random.Random:
        seed = int(hashlib.md5(symbol.upper().encode()).hexdigest()[:8], 16)
        return random.Random(seed)

    def fetch_history(self, symbol: str) -> List[float]:
        rng = self._rng(symbol)
        price = 100 + rng.random() * 500
        closes = []
        for _ in range(self._history_days):
            price = max(1.0, price * (1 + rng.gauss(0, 0.015)))
            closes.append(round(price, 2))
        return closes

    def fetch_quote(self, symbol: str) -> Quote:
        closes = self.fetch_history(symbol)
        rng = self._rng(symbol + ":quote")
        last = closes[-1]
        prev = closes[-2]
        window = closes[-250:]
        return Quote(
            symbol=symbol.upper(),
            price=last,
            change_percent=round((last - prev) / prev * 100, 2),
            volume=int(rng.random() * 10_000_000),
            day_high=round(max(last, prev) * 1.01, 2),
            day_low=round(min(last, prev) * 0.99, 2),
            week52_high=max(window),
            week52_low=min(window),
            market_cap=None,
        )
