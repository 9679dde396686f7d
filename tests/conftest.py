"""
Shared test fixtures for trade-copilot tests.

Provides FakeSource and FakeLLM (no network), a temporary TradeDB, a fixed
clock and sample snapshots.
"""
import sys
import os
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, List, Optional

import pytest

# Ensure project root is on path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

# Patch env BEFORE importing project modules so Settings doesn't pick up a local .env
os.environ["TELEGRAM_BOT_TOKEN"] = ""
os.environ["TELEGRAM_CHAT_ID"] = ""
os.environ["OPENAI_API_KEY"] = ""
os.environ["DATA_MODE"] = "live"
os.environ["CALL_TIMEOUT_SECONDS"] = "5"
os.environ["DEFAULT_QUANTITY"] = "10"

from agent.orchestrator import AgentOrchestrator
from agent.tools import MarketDataTool
from config.settings import Settings
from features.technical import Indicators, MacdResult
from providers.base import BaseLLMProvider, BaseMarketDataSource, MarketSnapshot, Quote
from providers.cache import MarketDataCache
from storage.trade_db import TradeDB
from utils.error_handler import MarketDataUnavailable


# ============================================
# FAKE COLLABORATORS (no network)
# ============================================

class FakeSource(BaseMarketDataSource):
    """Controllable market data source. Counts every fetch."""

    SOURCE = "fake"

    def __init__(self, quotes: Optional[Dict[str, Quote]] = None,
                 closes: Optional[List[float]] = None):
        self.quotes = quotes or {}
        self.closes = closes if closes is not None else [100.0 + i for i in range(60)]
        self.quote_calls: List[str] = []
        self.history_calls: List[str] = []
        self.fail_history = False

    @property
    def name(self) -> str:
        return "fake"

    def is_available(self) -> bool:
        return True

    def fetch_quote(self, symbol: str) -> Quote:
        self.quote_calls.append(symbol)
        if symbol not in self.quotes:
            raise MarketDataUnavailable(f"Unable to fetch data for symbol: {symbol}", symbol)
        return self.quotes[symbol]

    def fetch_history(self, symbol: str) -> List[float]:
        self.history_calls.append(symbol)
        if self.fail_history:
            raise ConnectionError("history endpoint down")
        return list(self.closes)


class FakeLLM(BaseLLMProvider):
    """Reasoning engine returning a canned reply (or raising)."""

    def __init__(self, reply: Optional[str] = "Action: HOLD\nConfidence: 0.5",
                 error: Optional[Exception] = None):
        self.reply = reply
        self.error = error
        self.calls: List[list] = []

    @property
    def name(self) -> str:
        return "fake-llm"

    def is_available(self) -> bool:
        return True

    def complete(self, messages, temperature=0.2, max_tokens=800, json_mode=False):
        self.calls.append(messages)
        if self.error:
            raise self.error
        return self.reply


class FixedClock:
    """Manually advanced clock for cache expiry tests."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2024, 6, 3, 14, 30, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


def make_quote(symbol: str = "NVDA", price: float = 485.23, **overrides) -> Quote:
    data = dict(
        symbol=symbol,
        price=price,
        change_percent=1.2,
        volume=45_000_000,
        day_high=price * 1.01,
        day_low=price * 0.99,
        week52_high=price * 1.5,
        week52_low=price * 0.5,
        market_cap=1.2e12,
    )
    data.update(overrides)
    return Quote(**data)


def make_snapshot(symbol: str = "NVDA", price: float = 485.23,
                  indicators: Optional[Indicators] = None, **overrides) -> MarketSnapshot:
    data = dict(
        symbol=symbol,
        current_price=price,
        change_percent=1.2,
        volume=45_000_000,
        daily_high=price * 1.01,
        daily_low=price * 0.99,
        week52_high=price * 1.5,
        week52_low=price * 0.5,
        indicators=indicators or Indicators(
            rsi=55.0, macd=MacdResult(2.0, 1.5, 0.5), ma50=470.0, ma200=420.0,
        ),
        market_cap=1.2e12,
    )
    data.update(overrides)
    return MarketSnapshot(**data)


# ============================================
# FIXTURES
# ============================================

@pytest.fixture
def settings(tmp_path):
    return Settings(
        OPENAI_API_KEY="sk-test",
        DB_PATH=tmp_path / "settings.db",
        CALL_TIMEOUT_SECONDS=5,
    )


@pytest.fixture
def trade_db(tmp_path):
    """TradeDB backed by a temp file, cleaned up with tmp_path."""
    return TradeDB(db_path=tmp_path / "test_trades.db")


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def cache(clock):
    return MarketDataCache(ttl_minutes=15, clock=clock)


@pytest.fixture
def fake_source():
    return FakeSource(quotes={"NVDA": make_quote("NVDA", 485.23), "AAPL": make_quote("AAPL", 190.0)})


@pytest.fixture
def fake_llm():
    return FakeLLM()


@pytest.fixture
def sample_snapshot():
    return make_snapshot()


@pytest.fixture
def market_tool(cache, fake_source):
    return MarketDataTool(cache=cache, source=fake_source)


@pytest.fixture
def orchestrator(market_tool, fake_llm, trade_db, settings):
    return AgentOrchestrator(
        market_tool=market_tool,
        llm=fake_llm,
        trace_recorder=trade_db,
        settings=settings,
    )
