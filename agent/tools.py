"""
Agent tools - the external capabilities a run calls, each recorded as a
ToolInvocation.

MarketDataTool:   cache -> source -> indicators -> cache put
TechnicalAnalysisTool: snapshot -> signals, trend, sentiment, risks

Tools never raise on a failed call. The invocation comes back with `error`
set and no payload, and the orchestrator decides what that means for the run.
"""
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import asdict
from typing import Dict, Iterable, Optional, Tuple

from loguru import logger

from agent.models import ToolInvocation
from features.signals import SignalAnalysis, SignalAnalyzer
from features.technical import TechnicalIndicators
from providers.base import BaseMarketDataSource, MarketSnapshot
from providers.cache import MarketDataCache


GET_MARKET_DATA = "get_market_data"
ANALYZE_TECHNICALS = "analyze_technicals"


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 1)


class MarketDataTool:
    """Cached market snapshot lookup."""

    def __init__(self, cache: MarketDataCache, source: BaseMarketDataSource,
                 macd_smoothing: bool = True):
        self.cache = cache
        self.source = source
        self.macd_smoothing = macd_smoothing

    def _fetch_snapshot(self, symbol: str) -> MarketSnapshot:
        # Network sources bound each of their own calls
        quote, closes = self.source.fetch(symbol)
        indicators = TechnicalIndicators.compute(closes, macd_smoothing=self.macd_smoothing)
        return MarketSnapshot.from_quote(
            quote, indicators,
            source=self.source.SOURCE,
            synthetic=self.source.synthetic,
        )

    def get_market_data(self, symbol: str) -> Tuple[Optional[MarketSnapshot], ToolInvocation]:
        """Snapshot for `symbol` plus the invocation record.

        The snapshot is None when the fetch failed; the reason is on
        invocation.error.
        """
        symbol = symbol.upper()
        start = time.perf_counter()

        snapshot = self.cache.get(symbol)
        if snapshot is not None:
            logger.debug(f"Market data cache hit: {symbol}")
            return snapshot, ToolInvocation(
                tool=GET_MARKET_DATA,
                symbol=symbol,
                parameters={"symbol": symbol},
                result=snapshot.to_dict(),
                cache_hit=True,
                duration_ms=_elapsed_ms(start),
                data_source=snapshot.source,
            )

        try:
            snapshot = self._fetch_snapshot(symbol)
        except Exception as e:
            logger.warning(f"Market data fetch failed for {symbol}: {e}")
            return None, ToolInvocation(
                tool=GET_MARKET_DATA,
                symbol=symbol,
                parameters={"symbol": symbol},
                duration_ms=_elapsed_ms(start),
                data_source=self.source.SOURCE,
                error=str(e) or type(e).__name__,
            )

        self.cache.put(symbol, snapshot)
        logger.debug(f"Market data fetched: {symbol} @ {snapshot.current_price}")
        return snapshot, ToolInvocation(
            tool=GET_MARKET_DATA,
            symbol=symbol,
            parameters={"symbol": symbol},
            result=snapshot.to_dict(),
            cache_hit=False,
            duration_ms=_elapsed_ms(start),
            data_source=snapshot.source,
        )

    def fetch_many(self, symbols: Iterable[str], max_workers: int = 4) -> Dict[str, MarketSnapshot]:
        """Snapshots for several symbols fetched in parallel. Failed symbols are left out."""
        unique = list(dict.fromkeys(s.upper() for s in symbols))
        results: Dict[str, MarketSnapshot] = {}
        if not unique:
            return results

        with ThreadPoolExecutor(max_workers=max(1, min(max_workers, len(unique)))) as pool:
            futures = {pool.submit(self.get_market_data, s): s for s in unique}
            for future in as_completed(futures):
                snapshot, _ = future.result()
                if snapshot is not None:
                    results[futures[future]] = snapshot

        if len(results) < len(unique):
            logger.info(f"fetch_many: {len(results)}/{len(unique)} symbols fetched")
        return results


class TechnicalAnalysisTool:
    """Signal analysis over a snapshot."""

    def analyze(self, snapshot: MarketSnapshot) -> Tuple[Optional[SignalAnalysis], ToolInvocation]:
        start = time.perf_counter()
        try:
            analysis = SignalAnalyzer.analyze(snapshot)
        except Exception as e:
            logger.warning(f"Technical analysis failed for {snapshot.symbol}: {e}")
            return None, ToolInvocation(
                tool=ANALYZE_TECHNICALS,
                symbol=snapshot.symbol,
                parameters={"symbol": snapshot.symbol},
                duration_ms=_elapsed_ms(start),
                data_source=snapshot.source,
                error=str(e) or type(e).__name__,
            )

        return analysis, ToolInvocation(
            tool=ANALYZE_TECHNICALS,
            symbol=snapshot.symbol,
            parameters={"symbol": snapshot.symbol},
            result=asdict(analysis),
            cache_hit=False,
            duration_ms=_elapsed_ms(start),
            data_source=snapshot.source,
        )
