"""
Error Handler - exception taxonomy for the decision pipeline.

Provides:
- Categorized exceptions for each failure the pipeline can hit
- categorize_exception() for arbitrary errors coming out of SDKs

No retry helpers: a pipeline step fails once and the run terminates at ERROR.
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


class ErrorCategory(Enum):
    """Categories of errors for handling decisions."""
    TRANSIENT = "TRANSIENT"      # Network issues, timeouts
    RATE_LIMIT = "RATE_LIMIT"    # Provider throttled us
    FATAL = "FATAL"              # Needs manual intervention
    DATA = "DATA"                # Bad input or state, skip this item
    AUTH = "AUTH"                # Authentication failure


class TradingException(Exception):
    """Base exception for the trade decision pipeline."""

    def __init__(self, message: str, category: ErrorCategory = ErrorCategory.TRANSIENT):
        self.message = message
        self.category = category
        self.timestamp = datetime.now(timezone.utc)
        super().__init__(message)


class SymbolNotIdentified(TradingException):
    """No ticker could be extracted from the intent text."""

    def __init__(self, intent: str):
        super().__init__(
            "Could not identify a stock symbol in your request. "
            "Please include a ticker symbol (e.g., NVDA, AAPL).",
            ErrorCategory.DATA,
        )
        self.intent = intent


class MarketDataUnavailable(TradingException):
    """Quote fetch failed, timed out, or returned an unusable payload."""

    def __init__(self, message: str, symbol: str, source: str = "yahoo_finance"):
        super().__init__(message, ErrorCategory.TRANSIENT)
        self.symbol = symbol
        self.source = source


class ReasoningEngineError(TradingException):
    """Reasoning engine call failed or returned nothing usable."""
    pass


class TraceWriteError(TradingException):
    """Persisting an agent run failed. Never invalidates the run itself."""

    def __init__(self, message: str, run_id: str):
        super().__init__(message, ErrorCategory.FATAL)
        self.run_id = run_id


class InvalidTransition(TradingException):
    """Order transition not allowed from the order's current status."""

    def __init__(self, order_id: str, current: Optional[str], target: str, reason: str = ""):
        detail = f": {reason}" if reason else ""
        super().__init__(
            f"Order {order_id}: cannot transition {current} -> {target}{detail}",
            ErrorCategory.DATA,
        )
        self.order_id = order_id
        self.current = current
        self.target = target


class OrderNotFound(TradingException):
    """Order id does not exist in the order store."""

    def __init__(self, order_id: str):
        super().__init__(f"Order {order_id} not found", ErrorCategory.DATA)
        self.order_id = order_id


class ConfigurationError(TradingException):
    """Component wired with settings it cannot run under."""

    def __init__(self, message: str):
        super().__init__(message, ErrorCategory.FATAL)


def categorize_exception(e: Exception) -> ErrorCategory:
    """
    Categorize an exception for handling decisions.
    """
    # Check our custom exceptions first
    if isinstance(e, TradingException):
        return e.category

    if isinstance(e, TimeoutError):
        return ErrorCategory.TRANSIENT

    error_str = str(e).lower()

    # Rate limiting
    if any(x in error_str for x in ['429', 'rate limit', 'too many requests', 'throttle', 'quota exceeded']):
        return ErrorCategory.RATE_LIMIT

    # Authentication
    if any(x in error_str for x in ['401', '403', 'unauthorized', 'invalid api key', 'invalid key']):
        return ErrorCategory.AUTH

    # Transient network issues
    if any(x in error_str for x in [
        'timeout', 'timed out', 'connectionerror', 'connection error', 'socket', 'dns',
        '500', '502', '503', '504', 'service unavailable'
    ]):
        return ErrorCategory.TRANSIENT

    # Data issues
    if any(x in error_str for x in ['no data', 'not found', 'invalid symbol', 'empty response']):
        return ErrorCategory.DATA

    # Default to fatal for unknown errors
    return ErrorCategory.FATAL
