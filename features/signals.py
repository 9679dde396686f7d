"""
Signal analysis - turns a MarketSnapshot into readable signals, trend,
sentiment and risk factors for the reasoning context.

Thresholds:
- RSI zones: < 30 oversold, > 70 overbought
- High volume: > 1,000,000 shares
- Sentiment: daily change > +2% positive, < -2% negative
- Risk: intraday range > 5% of price, RSI > 75 or < 25,
  price within 5% of the 52-week high/low

sentiment() is a price-change heuristic, not a news or sentiment model.
"""
from dataclasses import dataclass, field
from typing import List

from providers.base import MarketSnapshot


RSI_OVERSOLD = 30
RSI_OVERBOUGHT = 70
RSI_EXTREME_HIGH = 75
RSI_EXTREME_LOW = 25
HIGH_VOLUME_SHARES = 1_000_000
SENTIMENT_MOVE_PCT = 2.0
HIGH_RANGE_PCT = 5.0
NEAR_52W_PCT = 0.05

BULLISH_MARKERS = ("bullish", "Golden", "above")
BEARISH_MARKERS = ("bearish", "Death", "below")

TREND_UP = "Strong uptrend - multiple bullish indicators"
TREND_DOWN = "Downtrend - caution advised"
TREND_NEUTRAL = "Sideways/neutral trend - mixed signals"

STANDARD_RISK = "Standard market risk - normal volatility"


@dataclass
class SignalAnalysis:
    """Everything SignalAnalyzer derives from one snapshot."""
    technical_signals: List[str] = field(default_factory=list)
    trend_analysis: str = ""
    sentiment: str = ""
    risk_factors: List[str] = field(default_factory=list)


class SignalAnalyzer:
    """Stateless rule set over a snapshot."""

    @staticmethod
    def technical_signals(snapshot: MarketSnapshot) -> List[str]:
        """Ordered signals: RSI zone, MACD momentum, price vs MA50, MA cross, volume."""
        ind = snapshot.indicators
        signals: List[str] = []

        if ind.rsi < RSI_OVERSOLD:
            signals.append(f"RSI oversold at {ind.rsi:.1f} (strong buy signal)")
        elif ind.rsi > RSI_OVERBOUGHT:
            signals.append(f"RSI overbought at {ind.rsi:.1f} (potential sell signal)")
        else:
            signals.append(f"RSI neutral at {ind.rsi:.1f}")

        if ind.macd.histogram > 0:
            signals.append("MACD bullish crossover (positive momentum)")
        else:
            signals.append("MACD bearish crossover (negative momentum)")

        if snapshot.current_price > ind.ma50:
            signals.append(f"Price above 50-day MA at ${ind.ma50:.2f} (bullish)")
        else:
            signals.append(f"Price below 50-day MA at ${ind.ma50:.2f} (bearish)")

        if ind.ma50 > ind.ma200:
            signals.append("Golden cross (50-day > 200-day MA)")
        elif ind.ma50 < ind.ma200:
            signals.append("Death cross (50-day < 200-day MA)")

        if snapshot.volume > HIGH_VOLUME_SHARES:
            signals.append(f"High volume ({snapshot.volume / 1_000_000:.1f}M shares)")

        return signals

    @staticmethod
    def trend(snapshot: MarketSnapshot) -> str:
        """Majority vote of bullish vs bearish signals; tie is neutral."""
        signals = SignalAnalyzer.technical_signals(snapshot)
        bullish = sum(1 for s in signals if any(m in s for m in BULLISH_MARKERS))
        bearish = sum(1 for s in signals if any(m in s for m in BEARISH_MARKERS))

        if bullish > bearish:
            return TREND_UP
        if bearish > bullish:
            return TREND_DOWN
        return TREND_NEUTRAL

    @staticmethod
    def sentiment(snapshot: MarketSnapshot) -> str:
        if snapshot.change_percent > SENTIMENT_MOVE_PCT:
            return "Positive - strong upward momentum today"
        if snapshot.change_percent < -SENTIMENT_MOVE_PCT:
            return "Negative - significant decline today"
        return "Neutral - stable price action"

    @staticmethod
    def risk_factors(snapshot: MarketSnapshot) -> List[str]:
        risks: List[str] = []
        price = snapshot.current_price
        rsi = snapshot.indicators.rsi

        if price > 0:
            daily_range = (snapshot.daily_high - snapshot.daily_low) / price * 100
            if daily_range > HIGH_RANGE_PCT:
                risks.append("High intraday volatility (>5% range)")

        if rsi > RSI_EXTREME_HIGH:
            risks.append("Extreme overbought conditions - potential reversal")
        if rsi < RSI_EXTREME_LOW:
            risks.append("Extreme oversold conditions - high risk")

        if price >= snapshot.week52_high * (1 - NEAR_52W_PCT):
            risks.append("Trading near 52-week high - limited upside")
        if price <= snapshot.week52_low * (1 + NEAR_52W_PCT):
            risks.append("Trading near 52-week low - catching falling knife risk")

        if not risks:
            risks.append(STANDARD_RISK)
        return risks

    @classmethod
    def analyze(cls, snapshot: MarketSnapshot) -> SignalAnalysis:
        return SignalAnalysis(
            technical_signals=cls.technical_signals(snapshot),
            trend_analysis=cls.trend(snapshot),
            sentiment=cls.sentiment(snapshot),
            risk_factors=cls.risk_factors(snapshot),
        )
