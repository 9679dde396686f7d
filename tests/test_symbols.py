"""
Tests for agent/symbols.py - ticker extraction.
"""
import pytest

from agent.symbols import extract_symbol, find_symbol
from utils.error_handler import ErrorCategory, SymbolNotIdentified


class TestAliases:

    @pytest.mark.parametrize("intent,expected", [
        ("What do you think about Nvidia?", "NVDA"),
        ("should i buy APPLE stock", "AAPL"),
        ("Tesla looks weak", "TSLA"),
        ("Is facebook a buy", "META"),
        ("thoughts on google", "GOOGL"),
        ("intel earnings next week", "INTC"),
    ])
    def test_alias_case_insensitive(self, intent, expected):
        assert find_symbol(intent) == expected

    def test_alias_wins_over_ticker_token(self):
        assert find_symbol("Compare MSFT with nvidia") == "NVDA"


class TestTickerTokens:

    def test_plain_ticker(self):
        assert find_symbol("Should I buy NVDA today?") == "NVDA"

    def test_stop_words_skipped(self):
        assert find_symbol("I think THE AI trade IS over for PLTR") == "PLTR"

    def test_length_bounds(self):
        assert find_symbol("X is cool") is None
        assert find_symbol("TOOLONG ticker") is None
        assert find_symbol("buy GE now") == "GE"

    def test_lowercase_tokens_ignored(self):
        assert find_symbol("buy pltr now") is None


class TestExtractSymbol:

    def test_no_ticker_raises(self):
        with pytest.raises(SymbolNotIdentified) as exc:
            extract_symbol("I think the market is nice today")
        assert exc.value.category == ErrorCategory.DATA
        assert "Could not identify a stock symbol" in exc.value.message

    def test_empty_intent_raises(self):
        with pytest.raises(SymbolNotIdentified):
            extract_symbol("")

    def test_returns_symbol(self):
        assert extract_symbol("analyze AMD please") == "AMD"
