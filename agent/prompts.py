"""
Reasoning engine prompts.

One fixed system turn, then one user turn per run carrying the assembled
market context.
"""
from typing import Dict, List

from features.signals import SignalAnalysis
from providers.base import MarketSnapshot


SYSTEM_PROMPT = """You are a trading copilot that analyzes markets and proposes swing trades for US equities.

CORE PRINCIPLES:
1. You NEVER execute trades. You only analyze and propose.
2. You always explain your reasoning using technical signals, trends, and risks.
3. You provide a confidence score (0-1) for each proposal.
4. You are cautious and risk-aware. A human approves every trade.

RESPONSE FORMAT:
Reply with a single JSON object:
{
  "action": "BUY" | "SELL" | "HOLD",
  "confidence": number between 0.0 and 1.0,
  "quantity": positive integer (reasonable position size),
  "rationale": short explanation citing the indicators you used
}

If you cannot produce JSON, end your answer with these lines instead:
Action: BUY, SELL, or HOLD
Confidence: 0.0 to 1.0
Quantity: number of shares

If conditions are not favorable, recommend HOLD and explain why.
Be honest about uncertainty and consider the risk-reward ratio.
"""


def _fmt_volume(volume: int) -> str:
    return f"{volume:,}" if volume else "N/A"


def build_user_prompt(intent: str, symbol: str, snapshot: MarketSnapshot,
                      analysis: SignalAnalysis) -> str:
    ind = snapshot.indicators
    lines = [
        f'USER REQUEST: "{intent}"',
        "",
        f"MARKET DATA FOR {symbol}:",
        f"- Current Price: ${snapshot.current_price:.2f}",
        f"- Daily Change: {snapshot.change_percent:.2f}%",
        f"- Volume: {_fmt_volume(snapshot.volume)}",
        f"- 52-Week High: ${snapshot.week52_high:.2f}",
        f"- 52-Week Low: ${snapshot.week52_low:.2f}",
        "",
        "TECHNICAL INDICATORS:",
        f"- RSI: {ind.rsi:.2f}",
        f"- MACD: {ind.macd.value:.2f} (Signal: {ind.macd.signal:.2f}, Histogram: {ind.macd.histogram:.2f})",
        f"- 50-day MA: ${ind.ma50:.2f}",
        f"- 200-day MA: ${ind.ma200:.2f}",
        "",
        "TECHNICAL SIGNALS:",
        *analysis.technical_signals,
        "",
        "TREND ANALYSIS:",
        analysis.trend_analysis,
        "",
        "SENTIMENT:",
        analysis.sentiment,
        "",
        "RISK FACTORS:",
        *analysis.risk_factors,
    ]
    if snapshot.synthetic:
        lines += ["", "NOTE: market data is synthetic demo data, not live quotes."]
    lines += [
        "",
        "Based on this data, provide your trade proposal (BUY, SELL, or HOLD) "
        "in the response format from your instructions.",
    ]
    return "\n".join(lines)


def build_messages(intent: str, symbol: str, snapshot: MarketSnapshot,
                   analysis: SignalAnalysis) -> List[Dict[str, str]]:
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": build_user_prompt(intent, symbol, snapshot, analysis)},
    ]
