"""
Abstract Base Classes for all data providers, plus the market data model.

Each provider type has a minimal contract. The raw provider payload is parsed
exactly once, at the source boundary, into a fully-typed Quote; everything
downstream works on MarketSnapshot.
"""
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from features.technical import Indicators, MacdResult
from utils.error_handler import MarketDataUnavailable
from utils.platform import now_utc


# ============================================================
# MARKET DATA MODEL
# ============================================================

class QuotePayload(BaseModel):
    """Validated view of a raw quote payload (Yahoo field names).

    Missing optional fields collapse to explicit defaults: day and 52-week
    ranges fall back to the current price, previous close to the current price
    (zero change), volume to 0.
    """
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    price: float = Field(gt=0, alias="regularMarketPrice")
    previous_close: Optional[float] = Field(default=None, alias="regularMarketPreviousClose")
    volume: int = Field(default=0, ge=0, alias="regularMarketVolume")
    day_high: Optional[float] = Field(default=None, alias="regularMarketDayHigh")
    day_low: Optional[float] = Field(default=None, alias="regularMarketDayLow")
    week52_high: Optional[float] = Field(default=None, alias="fiftyTwoWeekHigh")
    week52_low: Optional[float] = Field(default=None, alias="fiftyTwoWeekLow")
    market_cap: Optional[float] = Field(default=None, alias="marketCap")

    @model_validator(mode="after")
    def fill_defaults(self):
        for name in ("previous_close", "day_high", "day_low", "week52_high", "week52_low"):
            value = getattr(self, name)
            if value is None or value <= 0:
                setattr(self, name, self.price)
        return self


@dataclass(frozen=True)
class Quote:
    """Point-in-time quote for one symbol."""
    symbol: str
    price: float
    change_percent: float
    volume: int
    day_high: float
    day_low: float
    week52_high: float
    week52_low: float
    market_cap: Optional[float] = None

    @classmethod
    def from_payload(cls, symbol: str, raw: Dict[str, Any],
                     source: str = "yahoo_finance") -> "Quote":
        """Parse a raw provider payload. Raises MarketDataUnavailable if unusable."""
        try:
            payload = QuotePayload.model_validate(raw or {})
        except ValidationError as e:
            raise MarketDataUnavailable(
                f"Invalid quote payload for {symbol}: {e.errors()[0]['msg']}",
                symbol=symbol, source=source,
            ) from e

        change = (payload.price - payload.previous_close) / payload.previous_close * 100
        return cls(
            symbol=symbol.upper(),
            price=payload.price,
            change_percent=round(change, 2),
            volume=payload.volume,
            day_high=payload.day_high,
            day_low=payload.day_low,
            week52_high=payload.week52_high,
            week52_low=payload.week52_low,
            market_cap=payload.market_cap,
        )


@dataclass(frozen=True)
class MarketSnapshot:
    """Point-in-time market data record for one symbol. Immutable once created."""
    symbol: str
    current_price: float
    change_percent: float
    volume: int
    daily_high: float
    daily_low: float
    week52_high: float
    week52_low: float
    indicators: Indicators = field(default_factory=Indicators)
    market_cap: Optional[float] = None
    fetched_at: datetime = field(default_factory=now_utc)
    source: str = "yahoo_finance"
    synthetic: bool = False

    @classmethod
    def from_quote(cls, quote: Quote, indicators: Indicators,
                   source: str = "yahoo_finance", synthetic: bool = False,
                   fetched_at: Optional[datetime] = None) -> "MarketSnapshot":
        return cls(
            symbol=quote.symbol,
            current_price=quote.price,
            change_percent=quote.change_percent,
            volume=quote.volume,
            daily_high=quote.day_high,
            daily_low=quote.day_low,
            week52_high=quote.week52_high,
            week52_low=quote.week52_low,
            indicators=indicators,
            market_cap=quote.market_cap,
            fetched_at=fetched_at or now_utc(),
            source=source,
            synthetic=synthetic,
        )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["fetched_at"] = self.fetched_at.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MarketSnapshot":
        data = dict(data)
        ind = dict(data.pop("indicators", {}) or {})
        macd = MacdResult(**(ind.pop("macd", {}) or {}))
        fetched_at = data.pop("fetched_at", None)
        return cls(
            indicators=Indicators(macd=macd, **ind),
            fetched_at=datetime.fromisoformat(fetched_at) if fetched_at else now_utc(),
            **data,
        )


# ============================================================
# PROVIDER ABCs
# ============================================================

class BaseMarketDataSource(ABC):
    """Plugin interface for quote + daily close history sources.

    Implementations should NOT cache; MarketDataTool does that. Network
    sources bound each of their own calls with call_with_timeout().
    """

    # Label recorded on snapshots and tool invocations
    SOURCE = "unknown"

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique source identifier (e.g., 'yfinance')."""
        ...

    @property
    def synthetic(self) -> bool:
        """True for generated (non-market) data."""
        return False

    @abstractmethod
    def fetch_quote(self, symbol: str) -> Quote:
        """Fetch the latest quote. Raises MarketDataUnavailable on failure."""
        ...

    @abstractmethod
    def fetch_history(self, symbol: str) -> List[float]:
        """Fetch daily closes, oldest first. May raise on failure."""
        ...

    @abstractmethod
    def is_available(self) -> bool:
        ...

    def fetch(self, symbol: str) -> Tuple[Quote, List[float]]:
        """Quote + close history.

        A failed quote is a hard failure. A failed history alone degrades to an
        empty series so the indicators fall back to their neutral defaults.
        """
        symbol = symbol.upper()
        quote = self.fetch_quote(symbol)
        try:
            closes = self.fetch_history(symbol)
        except Exception as e:
            logger.warning(f"History fetch failed for {symbol}, using empty series: {e}")
            closes = []
        return quote, closes


class BaseLLMProvider(ABC):
    """Plugin interface for reasoning engines (OpenAI, etc.)."""

    @property
    @abstractmethod
    def name(self) -> str:
        ...

    @abstractmethod
    def complete(self, messages: List[Dict[str, str]],
                 temperature: float = 0.2,
                 max_tokens: int = 800,
                 json_mode: bool = False) -> Optional[str]:
        """Chat completion. Returns response text or None when the reply is empty."""
        ...

    @abstractmethod
    def is_available(self) -> bool:
        ...
