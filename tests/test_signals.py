"""
Tests for features/signals.py - SignalAnalyzer rules.
"""
import pytest

from features.signals import (
    STANDARD_RISK, TREND_DOWN, TREND_NEUTRAL, TREND_UP, SignalAnalyzer,
)
from features.technical import Indicators, MacdResult
from tests.conftest import make_snapshot


def _snap(rsi=50.0, hist=0.5, ma50=90.0, ma200=80.0, price=100.0, volume=500_000, **kw):
    ind = Indicators(rsi=rsi, macd=MacdResult(1.0, 1.0 - hist, hist), ma50=ma50, ma200=ma200)
    kw.setdefault("daily_high", price * 1.01)
    kw.setdefault("daily_low", price * 0.99)
    kw.setdefault("week52_high", price * 2)
    kw.setdefault("week52_low", price / 2)
    return make_snapshot("TEST", price, indicators=ind, volume=volume, **kw)


# ============================================
# TECHNICAL SIGNALS
# ============================================

class TestTechnicalSignals:

    def test_order_and_content(self):
        signals = SignalAnalyzer.technical_signals(_snap(rsi=25.0, volume=2_500_000))
        assert signals == [
            "RSI oversold at 25.0 (strong buy signal)",
            "MACD bullish crossover (positive momentum)",
            "Price above 50-day MA at $90.00 (bullish)",
            "Golden cross (50-day > 200-day MA)",
            "High volume (2.5M shares)",
        ]

    def test_overbought_and_bearish(self):
        signals = SignalAnalyzer.technical_signals(
            _snap(rsi=75.5, hist=-0.2, ma50=110.0, ma200=120.0)
        )
        assert signals[0] == "RSI overbought at 75.5 (potential sell signal)"
        assert signals[1] == "MACD bearish crossover (negative momentum)"
        assert signals[2] == "Price below 50-day MA at $110.00 (bearish)"
        assert signals[3] == "Death cross (50-day < 200-day MA)"
        assert len(signals) == 4

    def test_equal_mas_have_no_cross_signal(self):
        signals = SignalAnalyzer.technical_signals(_snap(ma50=90.0, ma200=90.0))
        assert not any("cross (50-day" in s for s in signals)

    def test_volume_threshold_is_strict(self):
        signals = SignalAnalyzer.technical_signals(_snap(volume=1_000_000))
        assert not any("High volume" in s for s in signals)


# ============================================
# TREND
# ============================================

class TestTrend:

    def test_bullish_majority(self):
        assert SignalAnalyzer.trend(_snap()) == TREND_UP

    def test_bearish_majority(self):
        snap = _snap(hist=-0.5, ma50=110.0, ma200=120.0)
        assert SignalAnalyzer.trend(snap) == TREND_DOWN

    def test_mixed_signals_majority_then_tie(self):
        snap = _snap(hist=-0.5, ma50=90.0, ma200=95.0)
        # bearish MACD, above MA50 (bullish), death cross -> 1 bullish, 2 bearish
        assert SignalAnalyzer.trend(snap) == TREND_DOWN
        snap = _snap(hist=0.5, ma50=90.0, ma200=95.0, price=85.0)
        # bullish MACD, below MA50, death cross -> 1 bullish, 2 bearish
        assert SignalAnalyzer.trend(snap) == TREND_DOWN
        snap = _snap(hist=0.5, ma50=90.0, ma200=90.0, price=85.0)
        # bullish MACD, below MA50, no cross -> 1 each
        assert SignalAnalyzer.trend(snap) == TREND_NEUTRAL


# ============================================
# SENTIMENT
# ============================================

class TestSentiment:

    @pytest.mark.parametrize("change,prefix", [
        (2.5, "Positive"),
        (2.0, "Neutral"),
        (0.0, "Neutral"),
        (-2.0, "Neutral"),
        (-3.1, "Negative"),
    ])
    def test_thresholds(self, change, prefix):
        assert SignalAnalyzer.sentiment(_snap(change_percent=change)).startswith(prefix)


# ============================================
# RISK FACTORS
# ============================================

class TestRiskFactors:

    def test_standard_risk_when_nothing_triggers(self):
        assert SignalAnalyzer.risk_factors(_snap()) == [STANDARD_RISK]

    def test_high_intraday_range(self):
        risks = SignalAnalyzer.risk_factors(_snap(daily_high=104.0, daily_low=97.0))
        assert "High intraday volatility (>5% range)" in risks

    def test_rsi_extremes(self):
        assert "Extreme overbought conditions - potential reversal" in \
            SignalAnalyzer.risk_factors(_snap(rsi=80.0))
        assert "Extreme oversold conditions - high risk" in \
            SignalAnalyzer.risk_factors(_snap(rsi=20.0))

    def test_near_52_week_high_and_low(self):
        risks = SignalAnalyzer.risk_factors(_snap(week52_high=104.0))
        assert "Trading near 52-week high - limited upside" in risks
        risks = SignalAnalyzer.risk_factors(_snap(week52_low=96.0))
        assert "Trading near 52-week low - catching falling knife risk" in risks
        assert STANDARD_RISK not in risks


class TestAnalyze:

    def test_bundles_all_parts(self):
        snap = _snap()
        analysis = SignalAnalyzer.analyze(snap)
        assert analysis.technical_signals == SignalAnalyzer.technical_signals(snap)
        assert analysis.trend_analysis == TREND_UP
        assert analysis.sentiment.startswith("Neutral")
        assert analysis.risk_factors == [STANDARD_RISK]
