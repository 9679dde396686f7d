"""
Technical indicators calculation.
All indicators are computed with explicit formulas for transparency.

Every function is pure: same price series in, same numbers out. Short series
never raise; each indicator degrades to a documented neutral value instead.
"""
from dataclasses import dataclass, field
from typing import Sequence

import pandas as pd
from loguru import logger


NEUTRAL_RSI = 50.0


@dataclass(frozen=True)
class MacdResult:
    value: float = 0.0
    signal: float = 0.0
    histogram: float = 0.0


@dataclass(frozen=True)
class Indicators:
    """Indicator block carried on every MarketSnapshot."""
    rsi: float = NEUTRAL_RSI
    macd: MacdResult = field(default_factory=MacdResult)
    ma50: float = 0.0
    ma200: float = 0.0


class TechnicalIndicators:
    """
    Calculate technical indicators from a daily close series.

    All calculations are deterministic and use standard formulas, rounded to
    2 decimals the way they are displayed.
    """

    @staticmethod
    def rsi(prices: Sequence[float], period: int = 14) -> float:
        """
        Relative Strength Index over the last `period` close-to-close deltas.

        Average gain and average loss are plain means of the last `period`
        deltas. Returns 50 when fewer than period + 1 samples exist and 100
        when the average loss is zero.
        """
        if len(prices) < period + 1:
            return NEUTRAL_RSI

        deltas = pd.Series(prices, dtype=float).diff().dropna().tail(period)
        avg_gain = deltas.clip(lower=0).sum() / period
        avg_loss = (-deltas.clip(upper=0)).sum() / period

        if avg_loss == 0:
            return 100.0
        rs = avg_gain / avg_loss
        return round(100 - 100 / (1 + rs), 2)

    @staticmethod
    def sma(prices: Sequence[float], period: int) -> float:
        """Mean of the last `period` values, or the last price if the series is shorter."""
        if not prices:
            return 0.0
        if len(prices) < period:
            return float(prices[-1])
        return round(float(pd.Series(prices[-period:], dtype=float).mean()), 2)

    @staticmethod
    def macd(prices: Sequence[float], fast: int = 12, slow: int = 26,
             signal: int = 9, smoothing: bool = True) -> MacdResult:
        """
        MACD from simple moving averages: value = SMA(fast) - SMA(slow).

        With smoothing, the signal line is an EMA(signal) of the MACD-value
        series and the histogram is value - signal. Without it the signal line
        equals the value and the histogram is always 0.

        Returns all zeros when fewer than `slow` samples exist.
        """
        if len(prices) < slow:
            return MacdResult()

        value = round(
            TechnicalIndicators.sma(prices, fast) - TechnicalIndicators.sma(prices, slow), 2
        )
        if not smoothing:
            return MacdResult(value=value, signal=value, histogram=0.0)

        close = pd.Series(prices, dtype=float)
        macd_line = (
            close.rolling(window=fast).mean() - close.rolling(window=slow).mean()
        ).dropna()
        signal_value = round(float(macd_line.ewm(span=signal, adjust=False).mean().iloc[-1]), 2)
        return MacdResult(
            value=value,
            signal=signal_value,
            histogram=round(value - signal_value, 2),
        )

    @staticmethod
    def compute(prices: Sequence[float], rsi_period: int = 14,
                ma_medium: int = 50, ma_long: int = 200,
                macd_smoothing: bool = True) -> Indicators:
        """
        Calculate the full indicator block for a snapshot.

        Args:
            prices: Daily closes, oldest first (may be empty)
            rsi_period: RSI lookback
            ma_medium / ma_long: moving average windows
            macd_smoothing: use a smoothed MACD signal line

        Returns:
            Indicators with neutral defaults where history is too short
        """
        if len(prices) < ma_long:
            logger.debug(
                f"Short history for indicators: {len(prices)} closes (MA{ma_long} needs {ma_long})"
            )

        return Indicators(
            rsi=TechnicalIndicators.rsi(prices, period=rsi_period),
            macd=TechnicalIndicators.macd(prices, smoothing=macd_smoothing),
            ma50=TechnicalIndicators.sma(prices, ma_medium),
            ma200=TechnicalIndicators.sma(prices, ma_long),
        )
