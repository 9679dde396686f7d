"""
Ticker extraction from free-text intents.

Company aliases are checked first (case-insensitive substring). Otherwise the
first 2-5 letter uppercase token that is not a common word is taken as the
ticker.
"""
import re
from typing import Optional

from utils.error_handler import SymbolNotIdentified


SYMBOL_ALIASES = {
    "nvidia": "NVDA",
    "apple": "AAPL",
    "tesla": "TSLA",
    "microsoft": "MSFT",
    "amazon": "AMZN",
    "google": "GOOGL",
    "meta": "META",
    "netflix": "NFLX",
    "amd": "AMD",
    "intel": "INTC",
    "facebook": "META",
}

STOP_WORDS = frozenset({
    "I", "A", "THE", "AND", "OR", "FOR", "TO", "IN", "IS", "IT", "AI",
})

_TICKER_RE = re.compile(r"\b([A-Z]{2,5})\b")


def find_symbol(intent: str) -> Optional[str]:
    """Ticker mentioned in `intent`, or None."""
    lowered = intent.lower()
    for name, ticker in SYMBOL_ALIASES.items():
        if name in lowered:
            return ticker

    for match in _TICKER_RE.finditer(intent):
        token = match.group(1)
        if token not in STOP_WORDS:
            return token
    return None


def extract_symbol(intent: str) -> str:
    """Like find_symbol, but raises SymbolNotIdentified when nothing matches."""
    symbol = find_symbol(intent or "")
    if symbol is None:
        raise SymbolNotIdentified(intent)
    return symbol
